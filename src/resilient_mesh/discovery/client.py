"""
Discovery Client

Resolves a logical service name to one concrete endpoint. Registry answers
are cached for ``cache_ttl`` seconds; when the registry cannot be reached a
stale entry is served instead of failing, as long as it has instances.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from .. import metrics
from ..config import DiscoveryConfigSection
from ..errors import NoInstancesAvailable
from ..registry.lease_table import Endpoint, InstanceRecord
from .cache import DiscoveryCache, DiscoveryCacheEntry
from .selection import InstanceSelector, RandomSelector, create_selector

logger = logging.getLogger(__name__)


class RegistrySource(Protocol):
    """Anything that can list the live instances of a service."""

    async def list_instances(self, service_name: str) -> list[InstanceRecord]: ...


class DiscoveryClient:
    """Cached, fault-tolerant service name resolution."""

    def __init__(
        self,
        registry: RegistrySource,
        cache_ttl: float = 30.0,
        selector: InstanceSelector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.selector = selector or RandomSelector()
        self._clock = clock
        self._cache = DiscoveryCache(ttl=cache_ttl)

        self._stats = {
            "hits": 0,
            "misses": 0,
            "refreshes": 0,
            "stale_serves": 0,
            "failures": 0,
        }

    @classmethod
    def from_config(
        cls, registry: RegistrySource, config: DiscoveryConfigSection
    ) -> DiscoveryClient:
        """Create a client from the discovery configuration section."""
        return cls(
            registry,
            cache_ttl=config.cache_ttl,
            selector=create_selector(config.selection_strategy),
        )

    @property
    def cache_ttl(self) -> float:
        return self._cache.ttl

    async def resolve(self, service_name: str) -> Endpoint:
        """Resolve a service name to one endpoint.

        Raises:
            NoInstancesAvailable: the registry reports no live instance, or it
                failed and nothing usable is cached.
        """
        instances = await self.get_instances(service_name)
        endpoint = self.select_instance(service_name, instances).endpoint()
        logger.debug("Resolved %s to %s", service_name, endpoint)
        return endpoint

    async def get_instances(self, service_name: str) -> list[InstanceRecord]:
        """Current instance snapshot for a service (cached or live)."""
        now = self._clock()

        entry = self._cache.get_fresh(service_name, now)
        if entry is not None and entry.instances:
            self._stats["hits"] += 1
            metrics.discovery_lookups_total.labels(service_name, "cache").inc()
            return list(entry.instances)

        self._stats["misses"] += 1
        entry = await self._refresh(service_name)
        return list(entry.instances)

    def select_instance(
        self, service_name: str, instances: list[InstanceRecord]
    ) -> InstanceRecord:
        if not instances:
            raise NoInstancesAvailable(service_name)
        return self.selector.select(service_name, instances)

    async def _refresh(self, service_name: str) -> DiscoveryCacheEntry:
        try:
            instances = await self.registry.list_instances(service_name)
        except Exception as e:
            self._stats["failures"] += 1
            stale = self._cache.get(service_name)
            if stale is not None and stale.instances:
                self._stats["stale_serves"] += 1
                metrics.discovery_lookups_total.labels(service_name, "stale").inc()
                logger.warning(
                    "Registry lookup for %s failed (%s), serving cached entry aged %.1fs",
                    service_name,
                    e,
                    stale.age(self._clock()),
                )
                return stale

            metrics.discovery_lookups_total.labels(service_name, "failed").inc()
            logger.error("Registry lookup for %s failed with nothing cached: %s", service_name, e)
            raise NoInstancesAvailable(service_name, reason="registry unavailable") from e

        if not instances:
            self._cache.invalidate(service_name)
            metrics.discovery_lookups_total.labels(service_name, "empty").inc()
            raise NoInstancesAvailable(service_name)

        self._stats["refreshes"] += 1
        metrics.discovery_lookups_total.labels(service_name, "registry").inc()
        # The clock is read after the await so the entry is stamped with its fetch time.
        return self._cache.put(service_name, instances, self._clock())

    def invalidate(self, service_name: str) -> None:
        """Drop the cached entry for a service."""
        if self._cache.invalidate(service_name):
            logger.debug("Invalidated discovery cache for %s", service_name)

    def clear(self) -> None:
        self._cache.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get discovery statistics."""
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "lookups": lookups,
            "hit_rate": self._stats["hits"] / lookups if lookups else 0.0,
            "cache_size": len(self._cache),
            "cache_ttl": self._cache.ttl,
            "entries": self._cache.describe(self._clock()),
        }
