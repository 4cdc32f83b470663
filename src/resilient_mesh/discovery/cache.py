"""
TTL cache of registry lookups.

Entries are never evicted on expiry: a stale entry is kept so the discovery
client can fall back to it when the registry cannot be reached. Freshness is
judged by the caller against its own clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..registry.lease_table import InstanceRecord


@dataclass(frozen=True)
class DiscoveryCacheEntry:
    """Snapshot of one service's instances as seen by the registry at ``fetched_at``."""

    service_name: str
    instances: tuple[InstanceRecord, ...]
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float, ttl: float) -> bool:
        return self.age(now) < ttl


class DiscoveryCache:
    """Service name -> most recent registry snapshot."""

    def __init__(self, ttl: float = 30.0):
        if ttl <= 0:
            raise ValueError("Cache TTL must be positive")

        self.ttl = ttl
        self._entries: dict[str, DiscoveryCacheEntry] = {}

    def get(self, service_name: str) -> DiscoveryCacheEntry | None:
        """Return the entry for a service, fresh or stale."""
        return self._entries.get(service_name)

    def get_fresh(self, service_name: str, now: float) -> DiscoveryCacheEntry | None:
        entry = self._entries.get(service_name)
        if entry is not None and entry.is_fresh(now, self.ttl):
            return entry
        return None

    def put(
        self, service_name: str, instances: list[InstanceRecord], now: float
    ) -> DiscoveryCacheEntry:
        entry = DiscoveryCacheEntry(service_name, tuple(instances), now)
        self._entries[service_name] = entry
        return entry

    def invalidate(self, service_name: str) -> bool:
        return self._entries.pop(service_name, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def describe(self, now: float) -> dict[str, Any]:
        return {
            name: {
                "instances": len(entry.instances),
                "age": entry.age(now),
                "fresh": entry.is_fresh(now, self.ttl),
            }
            for name, entry in self._entries.items()
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, service_name: str) -> bool:
        return service_name in self._entries
