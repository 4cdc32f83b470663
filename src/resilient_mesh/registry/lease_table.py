"""
Lease Table

Pure in-memory data structure holding service instance records and their
lease state. It performs no locking and no I/O; the registry service owns
an instance and serializes access to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class InstanceStatus(Enum):
    """Service instance status."""

    UP = "UP"
    DOWN = "DOWN"


@dataclass(frozen=True)
class Endpoint:
    """Network location of one resolved service instance."""

    service_name: str
    instance_id: str
    host: str
    port: int

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def __str__(self) -> str:
        return self.url


@dataclass
class InstanceRecord:
    """A registered service instance and its lease."""

    service_name: str
    instance_id: str
    host: str
    port: int
    status: InstanceStatus = InstanceStatus.UP
    last_renewal_at: float = 0.0
    registered_at: float = 0.0
    metadata: dict[str, str] = field(default_factory=dict)
    health_check_url: str | None = None
    status_page_url: str | None = None

    def is_expired(self, now: float, lease_duration: float) -> bool:
        """Check whether the lease has lapsed at ``now``."""
        return now - self.last_renewal_at > lease_duration

    def is_available(self, now: float, lease_duration: float) -> bool:
        """Check if the instance may receive traffic."""
        return self.status == InstanceStatus.UP and not self.is_expired(now, lease_duration)

    def endpoint(self) -> Endpoint:
        return Endpoint(self.service_name, self.instance_id, self.host, self.port)

    def snapshot(self) -> InstanceRecord:
        """Return a detached copy safe to hand out of the registry."""
        return replace(self, metadata=dict(self.metadata))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation."""
        return {
            "serviceName": self.service_name,
            "instanceId": self.instance_id,
            "host": self.host,
            "port": self.port,
            "status": self.status.value,
            "lastRenewalAt": self.last_renewal_at,
            "registeredAt": self.registered_at,
            "url": self.endpoint().url,
            "healthCheckUrl": self.health_check_url or f"{self.endpoint().url}/health",
            "statusPageUrl": self.status_page_url or f"{self.endpoint().url}/info",
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstanceRecord:
        """Create a record from its wire representation."""
        return cls(
            service_name=data["serviceName"],
            instance_id=data["instanceId"],
            host=data["host"],
            port=int(data["port"]),
            status=InstanceStatus(data.get("status", InstanceStatus.UP.value)),
            last_renewal_at=float(data.get("lastRenewalAt", 0.0)),
            registered_at=float(data.get("registeredAt", 0.0)),
            metadata=dict(data.get("metadata") or {}),
            health_check_url=data.get("healthCheckUrl"),
            status_page_url=data.get("statusPageUrl"),
        )

    def __str__(self) -> str:
        return f"{self.service_name}[{self.instance_id}]@{self.host}:{self.port}"


@dataclass
class LeaseTable:
    """Directory of service name -> ordered {instance id -> record}."""

    lease_duration: float = 90.0
    _services: dict[str, dict[str, InstanceRecord]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.lease_duration <= 0:
            raise ValueError("Lease duration must be positive")

    def upsert(
        self,
        service_name: str,
        instance_id: str,
        host: str,
        port: int,
        now: float,
        metadata: dict[str, str] | None = None,
        health_check_url: str | None = None,
        status_page_url: str | None = None,
    ) -> InstanceRecord:
        """Insert or replace a record, keeping its position if it already exists."""
        instances = self._services.setdefault(service_name, {})
        existing = instances.get(instance_id)

        record = InstanceRecord(
            service_name=service_name,
            instance_id=instance_id,
            host=host,
            port=port,
            status=InstanceStatus.UP,
            last_renewal_at=now,
            registered_at=existing.registered_at if existing else now,
            metadata=dict(metadata or {}),
            health_check_url=health_check_url,
            status_page_url=status_page_url,
        )
        instances[instance_id] = record
        return record

    def get(self, service_name: str, instance_id: str) -> InstanceRecord | None:
        return self._services.get(service_name, {}).get(instance_id)

    def touch(self, service_name: str, instance_id: str, now: float) -> InstanceRecord | None:
        """Bump the renewal timestamp of a live record.

        Returns None when the record is missing or already logically expired;
        an expired record is removed so the holder has to register again.
        """
        record = self.get(service_name, instance_id)
        if record is None:
            return None

        if record.is_expired(now, self.lease_duration):
            self.remove(service_name, instance_id)
            return None

        record.last_renewal_at = now
        return record

    def set_status(
        self, service_name: str, instance_id: str, status: InstanceStatus
    ) -> InstanceRecord | None:
        record = self.get(service_name, instance_id)
        if record is not None:
            record.status = status
        return record

    def remove(self, service_name: str, instance_id: str) -> InstanceRecord | None:
        """Remove a record; drops the service entry when it becomes empty."""
        instances = self._services.get(service_name)
        if not instances:
            return None

        record = instances.pop(instance_id, None)
        if not instances:
            del self._services[service_name]
        return record

    def live(self, service_name: str, now: float) -> list[InstanceRecord]:
        """UP, non-expired records of one service, in registration order."""
        return [
            record
            for record in self._services.get(service_name, {}).values()
            if record.is_available(now, self.lease_duration)
        ]

    def all_live(self, now: float) -> dict[str, list[InstanceRecord]]:
        result = {}
        for service_name in self._services:
            instances = self.live(service_name, now)
            if instances:
                result[service_name] = instances
        return result

    def expired(self, now: float) -> list[InstanceRecord]:
        return [
            record
            for instances in self._services.values()
            for record in instances.values()
            if record.is_expired(now, self.lease_duration)
        ]

    def has_service(self, service_name: str) -> bool:
        return service_name in self._services

    def service_names(self) -> list[str]:
        return list(self._services)

    def __len__(self) -> int:
        return sum(len(instances) for instances in self._services.values())
