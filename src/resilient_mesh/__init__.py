"""
resilient-mesh

Lease-based service registry, cached discovery with random selection, and
rolling-window circuit breakers for calling discovered services.
"""

__version__ = "1.0.0"

from .config import MeshConfig, load_config
from .discovery import DiscoveryClient, RandomSelector, RoundRobinSelector
from .errors import (
    CircuitOpenError,
    ConfigurationError,
    DependencyError,
    DependencyTimeout,
    NetworkError,
    NoInstancesAvailable,
    NotFoundError,
    RegistrationError,
    RegistryUnavailableError,
    ResilientMeshError,
    ValidationError,
)
from .registry import (
    Endpoint,
    InstanceHeartbeat,
    InstanceRecord,
    InstanceStatus,
    RegistryClient,
    RegistryService,
    create_registry_app,
)
from .resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitPhase,
    ResilientClient,
    ServiceResponse,
)
from .tasks import PeriodicTask

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitPhase",
    "ConfigurationError",
    "DependencyError",
    "DependencyTimeout",
    "DiscoveryClient",
    "Endpoint",
    "InstanceHeartbeat",
    "InstanceRecord",
    "InstanceStatus",
    "MeshConfig",
    "NetworkError",
    "NoInstancesAvailable",
    "NotFoundError",
    "PeriodicTask",
    "RandomSelector",
    "RegistrationError",
    "RegistryClient",
    "RegistryService",
    "RegistryUnavailableError",
    "ResilientClient",
    "ResilientMeshError",
    "RoundRobinSelector",
    "ServiceResponse",
    "ValidationError",
    "create_registry_app",
    "load_config",
]
