"""
Configuration system for registry, discovery and circuit breakers.

This module provides:
- Environment-based configuration management
- Per-concern configuration sections with validation
- Configuration merging (environment > base)
- Environment variable expansion with ${VAR:-default} syntax
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import yaml

from .errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Environment(Enum):
    """Supported environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class BaseConfigSection(ABC):
    """Base class for configuration sections."""

    @classmethod
    @abstractmethod
    def from_dict(cls: type[T], data: dict[str, Any]) -> T:
        """Create instance from dictionary."""

    def validate(self) -> None:
        """Validate configuration section."""


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _validate_port(name: str, port: int) -> None:
    if port <= 0 or port > 65535:
        raise ValidationError(f"Invalid {name}: {port}")


@dataclass
class RegistryConfigSection(BaseConfigSection):
    """Registry server configuration."""

    host: str = "0.0.0.0"
    port: int = 8761
    lease_duration: float = 90.0
    sweep_interval: float = 30.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryConfigSection:
        return cls(
            host=data.get("host", "0.0.0.0"),
            port=int(data.get("port", 8761)),
            lease_duration=float(data.get("lease_duration", 90.0)),
            sweep_interval=float(data.get("sweep_interval", 30.0)),
        )

    def validate(self) -> None:
        _validate_port("registry port", self.port)
        if self.lease_duration <= 0:
            raise ValidationError("Lease duration must be positive")
        if self.sweep_interval <= 0:
            raise ValidationError("Sweep interval must be positive")
        if self.sweep_interval >= self.lease_duration:
            raise ValidationError(
                f"Sweep interval ({self.sweep_interval}) must be shorter than "
                f"the lease duration ({self.lease_duration})"
            )


@dataclass
class DiscoveryConfigSection(BaseConfigSection):
    """Discovery client configuration."""

    registry_url: str = "http://localhost:8761"
    cache_ttl: float = 30.0
    selection_strategy: str = "random"
    request_timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiscoveryConfigSection:
        return cls(
            registry_url=data.get("registry_url", "http://localhost:8761"),
            cache_ttl=float(data.get("cache_ttl", 30.0)),
            selection_strategy=data.get("selection_strategy", "random"),
            request_timeout=float(data.get("request_timeout", 5.0)),
        )

    def validate(self) -> None:
        if not self.registry_url:
            raise ValidationError("Registry URL is required")
        if self.cache_ttl <= 0:
            raise ValidationError("Cache TTL must be positive")
        if self.selection_strategy not in ("random", "round_robin"):
            raise ValidationError(f"Invalid selection strategy: {self.selection_strategy}")
        if self.request_timeout <= 0:
            raise ValidationError("Registry request timeout must be positive")


@dataclass
class CircuitBreakerConfigSection(BaseConfigSection):
    """Circuit breaker configuration."""

    failure_rate_threshold: float = 0.5
    minimum_requests: int = 5
    window_duration: float = 10.0
    bucket_count: int = 10
    reset_timeout: float = 30.0
    call_timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CircuitBreakerConfigSection:
        return cls(
            failure_rate_threshold=float(data.get("failure_rate_threshold", 0.5)),
            minimum_requests=int(data.get("minimum_requests", 5)),
            window_duration=float(data.get("window_duration", 10.0)),
            bucket_count=int(data.get("bucket_count", 10)),
            reset_timeout=float(data.get("reset_timeout", 30.0)),
            call_timeout=float(data.get("call_timeout", 5.0)),
        )

    def validate(self) -> None:
        if not 0 < self.failure_rate_threshold <= 1:
            raise ValidationError("Failure rate threshold must be between 0 and 1")
        if self.minimum_requests < 1:
            raise ValidationError("Minimum request volume must be at least 1")
        if self.window_duration <= 0:
            raise ValidationError("Rolling window duration must be positive")
        if self.bucket_count < 1:
            raise ValidationError("Bucket count must be at least 1")
        if self.reset_timeout <= 0:
            raise ValidationError("Reset timeout must be positive")
        if self.call_timeout <= 0:
            raise ValidationError("Call timeout must be positive")


@dataclass
class HeartbeatConfigSection(BaseConfigSection):
    """Lease renewal configuration for registering services."""

    renewal_interval: float = 30.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeartbeatConfigSection:
        return cls(renewal_interval=float(data.get("renewal_interval", 30.0)))

    def validate(self) -> None:
        if self.renewal_interval <= 0:
            raise ValidationError("Renewal interval must be positive")


@dataclass
class LoggingConfigSection(BaseConfigSection):
    """Logging configuration section."""

    level: str = "INFO"
    json: bool = True
    service_name: str = "resilient-mesh"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingConfigSection:
        return cls(
            level=data.get("level", "INFO"),
            json=_as_bool(data.get("json", True)),
            service_name=data.get("service_name", "resilient-mesh"),
        )

    def validate(self) -> None:
        if self.level.upper() not in VALID_LOG_LEVELS:
            raise ValidationError(f"Invalid log level: {self.level}")


class MeshConfig:
    """Configuration loaded from YAML files with environment support."""

    def __init__(
        self,
        environment: str | Environment = Environment.DEVELOPMENT,
        config_path: Path | None = None,
        overrides: dict[str, Any] | None = None,
    ):
        self.environment = (
            Environment(environment) if isinstance(environment, str) else environment
        )
        self.config_path = config_path or Path("config")

        self._raw_config: dict[str, Any] = {}
        self._registry: RegistryConfigSection | None = None
        self._discovery: DiscoveryConfigSection | None = None
        self._circuit_breaker: CircuitBreakerConfigSection | None = None
        self._heartbeat: HeartbeatConfigSection | None = None
        self._logging: LoggingConfigSection | None = None

        self._load_configuration(overrides or {})

    def _load_configuration(self, overrides: dict[str, Any]) -> None:
        """Load and merge configuration from multiple sources."""
        base_config = self._load_yaml_file(self.config_path / "base.yaml")
        env_config = self._load_yaml_file(self.config_path / f"{self.environment.value}.yaml")

        self._raw_config = self._merge_configs(base_config, env_config, overrides)
        self._raw_config = self._expand_env_vars(self._raw_config)

    def _load_yaml_file(self, path: Path) -> dict[str, Any]:
        """Load YAML configuration file; a missing file is an empty config."""
        if not path.exists():
            return {}

        try:
            with open(path, encoding="utf-8") as file:
                data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing YAML file {path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error reading file {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")
        return data

    def _merge_configs(self, *configs: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for config in configs:
            if config:
                result = self._deep_merge(result, config)
        return result

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively expand environment variables in configuration."""
        if isinstance(obj, dict):
            return {key: self._expand_env_vars(value) for key, value in obj.items()}
        if isinstance(obj, list):
            return [self._expand_env_vars(item) for item in obj]
        if isinstance(obj, str):
            return self._expand_env_var_string(obj)
        return obj

    def _expand_env_var_string(self, value: str) -> str:
        pattern = r"\$\{([^}]+)\}"

        def replace_var(match):
            var_expr = match.group(1)
            if ":-" in var_expr:
                var_name, default_value = var_expr.split(":-", 1)
                return os.environ.get(var_name, default_value)
            return os.environ.get(var_expr, "")

        return re.sub(pattern, replace_var, value)

    def _section(self, name: str) -> dict[str, Any]:
        section = self._raw_config.get(name, {})
        if not isinstance(section, dict):
            raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
        return section

    @property
    def registry(self) -> RegistryConfigSection:
        if not self._registry:
            self._registry = RegistryConfigSection.from_dict(self._section("registry"))
            self._registry.validate()
        return self._registry

    @property
    def discovery(self) -> DiscoveryConfigSection:
        if not self._discovery:
            self._discovery = DiscoveryConfigSection.from_dict(self._section("discovery"))
            self._discovery.validate()
        return self._discovery

    @property
    def circuit_breaker(self) -> CircuitBreakerConfigSection:
        if not self._circuit_breaker:
            self._circuit_breaker = CircuitBreakerConfigSection.from_dict(
                self._section("circuit_breaker")
            )
            self._circuit_breaker.validate()
        return self._circuit_breaker

    @property
    def heartbeat(self) -> HeartbeatConfigSection:
        if not self._heartbeat:
            self._heartbeat = HeartbeatConfigSection.from_dict(self._section("heartbeat"))
            self._heartbeat.validate()
        return self._heartbeat

    @property
    def logging(self) -> LoggingConfigSection:
        if not self._logging:
            self._logging = LoggingConfigSection.from_dict(self._section("logging"))
            self._logging.validate()
        return self._logging

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dotted key."""
        value: Any = self._raw_config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def to_dict(self) -> dict[str, Any]:
        return self._raw_config.copy()


def get_environment() -> Environment:
    """Get current environment from the MESH_ENV variable."""
    env_name = os.environ.get("MESH_ENV", "development").lower()
    try:
        return Environment(env_name)
    except ValueError:
        logger.warning("Invalid environment %s, defaulting to development", env_name)
        return Environment.DEVELOPMENT


def load_config(
    environment: str | Environment | None = None,
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> MeshConfig:
    """Create a configuration instance."""
    if environment is None:
        environment = get_environment()
    return MeshConfig(environment, config_path, overrides)
