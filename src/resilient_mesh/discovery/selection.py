"""
Instance selection strategies for the discovery client.
"""

from __future__ import annotations

import random
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum

from ..registry.lease_table import InstanceRecord


class SelectionStrategy(Enum):
    """Instance selection strategies."""

    RANDOM = "random"
    ROUND_ROBIN = "round_robin"


class InstanceSelector(ABC):
    """Abstract instance selector interface."""

    @abstractmethod
    def select(self, service_name: str, instances: Sequence[InstanceRecord]) -> InstanceRecord:
        """Select one instance from a non-empty sequence."""
        raise NotImplementedError


class RandomSelector(InstanceSelector):
    """Uniform random selection."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def select(self, service_name: str, instances: Sequence[InstanceRecord]) -> InstanceRecord:
        if not instances:
            raise ValueError(f"No instances to select from for {service_name}")
        return self._rng.choice(list(instances))


class RoundRobinSelector(InstanceSelector):
    """Round-robin selection with one cursor per service."""

    def __init__(self):
        self._cursors: dict[str, int] = {}
        self._lock = threading.Lock()

    def select(self, service_name: str, instances: Sequence[InstanceRecord]) -> InstanceRecord:
        if not instances:
            raise ValueError(f"No instances to select from for {service_name}")

        with self._lock:
            index = self._cursors.get(service_name, 0)
            self._cursors[service_name] = index + 1

        return instances[index % len(instances)]


def create_selector(strategy: SelectionStrategy | str = SelectionStrategy.RANDOM) -> InstanceSelector:
    """Create an instance selector for a strategy."""
    if isinstance(strategy, str):
        strategy = SelectionStrategy(strategy)

    if strategy == SelectionStrategy.ROUND_ROBIN:
        return RoundRobinSelector()
    return RandomSelector()
