"""
Error taxonomy for registry, discovery and circuit breaker operations.

Every error raised by the package derives from ResilientMeshError so that
application code can catch the whole family at a single seam while still
telling apart the classes that matter for retry decisions:

- RegistrationError / NotFoundError: registry-side client mistakes, never retried
- NoInstancesAvailable: discovery exhaustion, not a dependency failure
- CircuitOpenError: fail-fast rejection, retry policy belongs to the caller
- DependencyError / DependencyTimeout / NetworkError: counted by the breaker
"""

from __future__ import annotations


class ResilientMeshError(Exception):
    """Base class for all resilient-mesh errors."""


class ConfigurationError(ResilientMeshError):
    """Base configuration error."""


class ValidationError(ConfigurationError):
    """Configuration validation error."""


class RegistrationError(ResilientMeshError):
    """Malformed registration or status input."""


class NotFoundError(ResilientMeshError):
    """Instance is unknown to the registry or its lease already expired."""

    def __init__(self, service_name: str, instance_id: str):
        super().__init__(f"Instance {instance_id} of service {service_name} not found")
        self.service_name = service_name
        self.instance_id = instance_id


class RegistryUnavailableError(ResilientMeshError):
    """The registry could not be reached or answered with an unexpected status."""


class NoInstancesAvailable(ResilientMeshError):
    """Discovery found no instance to route a call to."""

    def __init__(self, service_name: str, reason: str | None = None):
        message = f"No instances available for service: {service_name}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.service_name = service_name


class CircuitOpenError(ResilientMeshError):
    """Raised when a circuit breaker rejects a call without attempting it."""

    def __init__(self, name: str, phase: str, retry_after: float = 0.0):
        if retry_after > 0:
            message = f"Circuit breaker {name} is {phase} (probe allowed in {retry_after:.1f}s)"
        else:
            message = f"Circuit breaker {name} is {phase}"
        super().__init__(message)
        self.name = name
        self.phase = phase
        self.retry_after = retry_after


class DependencyError(ResilientMeshError):
    """A downstream dependency failed to serve a call."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DependencyTimeout(DependencyError):
    """A downstream call did not complete within its timeout."""

    def __init__(self, name: str, timeout: float):
        super().__init__(f"Call to {name} timed out after {timeout} seconds")
        self.name = name
        self.timeout = timeout


class NetworkError(DependencyError):
    """Transport-level failure (connection refused, reset, DNS, ...)."""
