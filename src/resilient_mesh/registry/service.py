"""
Registry Service

Lease-based in-memory service registry. Instances register, renew their
lease periodically and deregister on shutdown; a background sweep reclaims
records whose lease lapsed. Expiry is also checked lazily on every query,
so the sweep interval only bounds memory, never visibility.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from .. import metrics
from ..errors import NotFoundError, RegistrationError
from ..tasks import PeriodicTask
from .lease_table import InstanceRecord, InstanceStatus, LeaseTable

logger = logging.getLogger(__name__)


class RegistryService:
    """Owns the service directory and serializes every access to it."""

    def __init__(
        self,
        lease_duration: float = 90.0,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if sweep_interval >= lease_duration:
            raise ValueError("Sweep interval must be shorter than the lease duration")

        self.lease_duration = lease_duration
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._table = LeaseTable(lease_duration=lease_duration)
        self._lock = asyncio.Lock()
        self._sweeper: PeriodicTask | None = None

        self._stats = {
            "total_registrations": 0,
            "total_renewals": 0,
            "total_deregistrations": 0,
            "total_evictions": 0,
            "failed_renewals": 0,
        }

    async def start(self) -> None:
        """Start the background sweep."""
        if self._sweeper and self._sweeper.running:
            return

        self._sweeper = PeriodicTask(self.sweep_interval, self.sweep, name="registry-sweep")
        self._sweeper.start()
        logger.info(
            "Registry started (lease=%ss, sweep every %ss)",
            self.lease_duration,
            self.sweep_interval,
        )

    async def stop(self) -> None:
        """Stop the background sweep."""
        if self._sweeper:
            await self._sweeper.stop()
            self._sweeper = None
        logger.info("Registry stopped")

    async def register(
        self,
        service_name: str,
        instance_id: str,
        host: str,
        port: int,
        metadata: dict[str, str] | None = None,
        health_check_url: str | None = None,
        status_page_url: str | None = None,
    ) -> InstanceRecord:
        """Register or re-register an instance; always leaves it UP with a fresh lease.

        Re-registration replaces the metadata and URLs of the previous record.
        """
        self._validate_registration(service_name, instance_id, host, port)
        self._validate_metadata(metadata)

        async with self._lock:
            record = self._table.upsert(
                service_name,
                instance_id,
                host,
                int(port),
                self._clock(),
                metadata=metadata,
                health_check_url=health_check_url,
                status_page_url=status_page_url,
            )
            self._stats["total_registrations"] += 1
            self._update_gauge()

        metrics.registry_operations_total.labels("register", "ok").inc()
        logger.info("Registered service instance: %s", record)
        return record.snapshot()

    async def renew(self, service_name: str, instance_id: str) -> InstanceRecord:
        """Renew an instance lease.

        Raises NotFoundError when the instance is unknown or its lease has
        already lapsed; the holder must register again.
        """
        async with self._lock:
            record = self._table.touch(service_name, instance_id, self._clock())
            if record is None:
                self._stats["failed_renewals"] += 1
                self._update_gauge()
            else:
                self._stats["total_renewals"] += 1

        if record is None:
            metrics.registry_operations_total.labels("renew", "not_found").inc()
            logger.warning("Renewal for unknown instance %s[%s]", service_name, instance_id)
            raise NotFoundError(service_name, instance_id)

        metrics.registry_operations_total.labels("renew", "ok").inc()
        logger.debug("Renewed lease for %s", record)
        return record.snapshot()

    async def deregister(self, service_name: str, instance_id: str) -> bool:
        """Remove an instance immediately; returns False if it was not registered."""
        async with self._lock:
            record = self._table.remove(service_name, instance_id)
            if record is not None:
                self._stats["total_deregistrations"] += 1
                self._update_gauge()

        metrics.registry_operations_total.labels(
            "deregister", "ok" if record else "absent"
        ).inc()
        if record is not None:
            logger.info("Deregistered service instance: %s[%s]", service_name, instance_id)
        return record is not None

    async def set_status(
        self, service_name: str, instance_id: str, status: InstanceStatus
    ) -> InstanceRecord:
        """Mark an instance UP or DOWN without touching its lease."""
        async with self._lock:
            record = self._table.set_status(service_name, instance_id, status)

        if record is None:
            raise NotFoundError(service_name, instance_id)

        logger.info("Instance %s status set to %s", record, status.value)
        return record.snapshot()

    async def list_instances(self, service_name: str) -> list[InstanceRecord]:
        """UP instances of a service whose lease is valid right now."""
        async with self._lock:
            records = self._table.live(service_name, self._clock())
            return [record.snapshot() for record in records]

    async def list_all(self) -> dict[str, list[InstanceRecord]]:
        """Registry-wide snapshot of live instances."""
        async with self._lock:
            return {
                name: [record.snapshot() for record in records]
                for name, records in self._table.all_live(self._clock()).items()
            }

    async def get_instance(self, service_name: str, instance_id: str) -> InstanceRecord | None:
        async with self._lock:
            record = self._table.get(service_name, instance_id)
            return record.snapshot() if record else None

    async def has_service(self, service_name: str) -> bool:
        async with self._lock:
            return self._table.has_service(service_name)

    async def instance_count(self) -> int:
        async with self._lock:
            return len(self._table)

    async def sweep(self) -> int:
        """Evict every instance whose lease has lapsed; returns the number evicted."""
        evicted = 0
        async with self._lock:
            now = self._clock()
            for record in self._table.expired(now):
                try:
                    self._table.remove(record.service_name, record.instance_id)
                except Exception as e:
                    logger.error("Failed to evict %s: %s", record, e)
                    continue

                evicted += 1
                logger.info(
                    "Evicted expired instance %s (last renewal %.1fs ago)",
                    record,
                    now - record.last_renewal_at,
                )

            self._stats["total_evictions"] += evicted
            self._update_gauge()

        if evicted:
            metrics.registry_evictions_total.inc(evicted)
        return evicted

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "current_services": len(self._table.service_names()),
            "current_instances": len(self._table),
            "lease_duration": self.lease_duration,
            "sweep_interval": self.sweep_interval,
        }

    def _update_gauge(self) -> None:
        metrics.registry_instances.set(len(self._table))

    @staticmethod
    def _validate_registration(service_name: str, instance_id: str, host: str, port: Any) -> None:
        if not service_name or not str(service_name).strip():
            raise RegistrationError("Service name is required")
        if not instance_id or not str(instance_id).strip():
            raise RegistrationError("Instance id is required")
        if not host or not str(host).strip():
            raise RegistrationError("Host is required")
        try:
            port_number = int(port)
        except (TypeError, ValueError, OverflowError):
            raise RegistrationError(f"Invalid port: {port!r}")
        if isinstance(port, bool) or port_number != port:
            raise RegistrationError(f"Invalid port: {port!r}")
        if port_number <= 0 or port_number > 65535:
            raise RegistrationError(f"Invalid port: {port!r}")

    @staticmethod
    def _validate_metadata(metadata: Any) -> None:
        if metadata is None:
            return
        if not isinstance(metadata, dict) or not all(
            isinstance(key, str) and isinstance(value, str) for key, value in metadata.items()
        ):
            raise RegistrationError("Metadata must map strings to strings")
