"""
Shared pytest fixtures.

Time-dependent components take an injectable clock; tests drive them with
FakeClock instead of sleeping.
"""

import pytest

from resilient_mesh.registry.service import RegistryService


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> RegistryService:
    """Registry with default lease settings driven by the fake clock."""
    return RegistryService(lease_duration=90.0, sweep_interval=30.0, clock=clock)
