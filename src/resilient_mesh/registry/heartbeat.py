"""
Instance heartbeat: register on start, renew periodically, deregister on stop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from ..errors import NotFoundError
from ..tasks import PeriodicTask

logger = logging.getLogger(__name__)


class LeaseRegistry(Protocol):
    """Registry operations a heartbeat needs (in-process or remote)."""

    async def register(
        self,
        service_name: str,
        instance_id: str,
        host: str,
        port: int,
        metadata: dict[str, str] | None = None,
    ): ...

    async def renew(self, service_name: str, instance_id: str): ...

    async def deregister(self, service_name: str, instance_id: str): ...


class InstanceHeartbeat:
    """Keeps one instance's lease alive for the lifetime of its process."""

    def __init__(
        self,
        registry: LeaseRegistry,
        service_name: str,
        instance_id: str,
        host: str,
        port: int,
        renewal_interval: float = 30.0,
        metadata: dict[str, str] | None = None,
    ):
        self.registry = registry
        self.service_name = service_name
        self.instance_id = instance_id
        self.host = host
        self.port = port
        self.renewal_interval = renewal_interval
        self.metadata = dict(metadata or {})

        self._task: PeriodicTask | None = None
        self._lock = asyncio.Lock()
        self._departing = False
        self.renewals = 0
        self.reregistrations = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and self._task.running

    async def start(self) -> None:
        """Register the instance and begin renewing its lease."""
        self._departing = False
        await self._register()

        self._task = PeriodicTask(
            self.renewal_interval,
            self.beat,
            name=f"heartbeat-{self.service_name}-{self.instance_id}",
        )
        self._task.start()
        logger.info(
            "Heartbeat started for %s[%s] every %ss",
            self.service_name,
            self.instance_id,
            self.renewal_interval,
        )

    async def beat(self) -> None:
        """Renew the lease once; re-register if the registry forgot the instance."""
        async with self._lock:
            if self._departing:
                return

            try:
                await self.registry.renew(self.service_name, self.instance_id)
                self.renewals += 1
            except NotFoundError:
                logger.warning(
                    "Lease for %s[%s] was lost, re-registering",
                    self.service_name,
                    self.instance_id,
                )
                await self._reregister()
            except Exception as e:
                self.failures += 1
                logger.error(
                    "Failed to renew %s[%s]: %s", self.service_name, self.instance_id, e
                )

    async def _register(self) -> None:
        await self.registry.register(
            self.service_name, self.instance_id, self.host, self.port, metadata=self.metadata
        )

    async def _reregister(self) -> None:
        try:
            await self._register()
            self.reregistrations += 1
        except Exception as e:
            self.failures += 1
            logger.error(
                "Failed to re-register %s[%s]: %s", self.service_name, self.instance_id, e
            )

    async def stop(self) -> None:
        """Deregister, then stop renewing.

        The lock makes an in-flight renewal finish first; the departing flag
        keeps any later tick from renewing or re-registering.
        """
        async with self._lock:
            self._departing = True
            try:
                await self.registry.deregister(self.service_name, self.instance_id)
            except Exception as e:
                logger.error(
                    "Failed to deregister %s[%s]: %s", self.service_name, self.instance_id, e
                )

        if self._task:
            await self._task.stop()
            self._task = None

        logger.info("Heartbeat stopped for %s[%s]", self.service_name, self.instance_id)
