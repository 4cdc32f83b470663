"""
Service discovery: cached name resolution over a registry.
"""

from .cache import DiscoveryCache, DiscoveryCacheEntry
from .client import DiscoveryClient, RegistrySource
from .selection import (
    InstanceSelector,
    RandomSelector,
    RoundRobinSelector,
    SelectionStrategy,
    create_selector,
)

__all__ = [
    "DiscoveryCache",
    "DiscoveryCacheEntry",
    "DiscoveryClient",
    "InstanceSelector",
    "RandomSelector",
    "RegistrySource",
    "RoundRobinSelector",
    "SelectionStrategy",
    "create_selector",
]
