from unittest.mock import AsyncMock

import pytest

from resilient_mesh.config import DiscoveryConfigSection
from resilient_mesh.discovery.client import DiscoveryClient
from resilient_mesh.discovery.selection import RoundRobinSelector
from resilient_mesh.errors import NoInstancesAvailable, RegistryUnavailableError
from resilient_mesh.registry.lease_table import InstanceRecord
from resilient_mesh.resilience.circuit_breaker import CircuitBreaker, CircuitPhase


def _instance(instance_id: str, port: int = 8080) -> InstanceRecord:
    return InstanceRecord("inventory", instance_id, "10.0.0.1", port)


@pytest.fixture
def source():
    source = AsyncMock()
    source.list_instances.return_value = [_instance("i-1", 8081), _instance("i-2", 8082)]
    return source


@pytest.mark.asyncio
async def test_resolve_queries_registry_then_serves_cache(source, clock) -> None:
    discovery = DiscoveryClient(source, cache_ttl=30, clock=clock)

    first = await discovery.resolve("inventory")
    clock.advance(29)
    second = await discovery.resolve("inventory")

    assert source.list_instances.await_count == 1
    assert {first.instance_id, second.instance_id} <= {"i-1", "i-2"}
    assert first.url.startswith("http://10.0.0.1:808")

    stats = discovery.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["refreshes"] == 1


@pytest.mark.asyncio
async def test_entry_at_exact_ttl_is_refreshed(source, clock) -> None:
    discovery = DiscoveryClient(source, cache_ttl=30, clock=clock)

    await discovery.resolve("inventory")
    clock.advance(30)
    await discovery.resolve("inventory")

    assert source.list_instances.await_count == 2
    assert discovery.get_stats()["hits"] == 0


@pytest.mark.asyncio
async def test_expired_entry_is_refreshed(source, clock) -> None:
    discovery = DiscoveryClient(source, cache_ttl=30, clock=clock)

    await discovery.resolve("inventory")
    clock.advance(31)
    source.list_instances.return_value = [_instance("i-3")]

    endpoint = await discovery.resolve("inventory")

    assert endpoint.instance_id == "i-3"
    assert source.list_instances.await_count == 2


@pytest.mark.asyncio
async def test_registry_failure_serves_stale_entry(source, clock) -> None:
    discovery = DiscoveryClient(source, cache_ttl=30, clock=clock)
    await discovery.resolve("inventory")

    clock.advance(300)
    source.list_instances.side_effect = RegistryUnavailableError("registry down")

    endpoint = await discovery.resolve("inventory")

    assert endpoint.instance_id in {"i-1", "i-2"}
    assert discovery.get_stats()["stale_serves"] == 1
    assert discovery.get_stats()["failures"] == 1


@pytest.mark.asyncio
async def test_registry_failure_without_cache_raises(source, clock) -> None:
    source.list_instances.side_effect = RegistryUnavailableError("registry down")
    discovery = DiscoveryClient(source, clock=clock)

    with pytest.raises(NoInstancesAvailable) as exc_info:
        await discovery.resolve("inventory")

    assert isinstance(exc_info.value.__cause__, RegistryUnavailableError)


@pytest.mark.asyncio
async def test_empty_registry_answer_raises_and_leaves_breaker_alone(clock) -> None:
    source = AsyncMock()
    source.list_instances.return_value = []
    discovery = DiscoveryClient(source, clock=clock)
    breaker = CircuitBreaker("Y", clock=clock)

    with pytest.raises(NoInstancesAvailable):
        await discovery.resolve("Y")

    snapshot = breaker.get_state()
    assert snapshot.phase == CircuitPhase.CLOSED
    assert snapshot.stats["calls"] == 0
    assert snapshot.stats["window_total"] == 0


@pytest.mark.asyncio
async def test_empty_registry_answer_drops_cached_entry(source, clock) -> None:
    discovery = DiscoveryClient(source, cache_ttl=30, clock=clock)
    await discovery.resolve("inventory")

    clock.advance(31)
    source.list_instances.return_value = []
    with pytest.raises(NoInstancesAvailable):
        await discovery.resolve("inventory")

    # Nothing left to fall back on once the registry fails too.
    source.list_instances.side_effect = RegistryUnavailableError("registry down")
    with pytest.raises(NoInstancesAvailable):
        await discovery.resolve("inventory")


@pytest.mark.asyncio
async def test_get_instances_returns_full_snapshot(source, clock) -> None:
    discovery = DiscoveryClient(source, clock=clock)

    instances = await discovery.get_instances("inventory")

    assert [i.instance_id for i in instances] == ["i-1", "i-2"]


@pytest.mark.asyncio
async def test_invalidate_forces_registry_query(source, clock) -> None:
    discovery = DiscoveryClient(source, clock=clock)
    await discovery.resolve("inventory")

    discovery.invalidate("inventory")
    await discovery.resolve("inventory")
    discovery.clear()
    await discovery.resolve("inventory")

    assert source.list_instances.await_count == 3


@pytest.mark.asyncio
async def test_round_robin_selection(source, clock) -> None:
    discovery = DiscoveryClient(source, selector=RoundRobinSelector(), clock=clock)

    picked = [(await discovery.resolve("inventory")).instance_id for _ in range(4)]

    assert picked == ["i-1", "i-2", "i-1", "i-2"]


@pytest.mark.asyncio
async def test_works_against_in_process_registry(registry, clock) -> None:
    await registry.register("inventory", "i-1", "10.0.0.5", 3001)
    discovery = DiscoveryClient(registry, clock=clock)

    endpoint = await discovery.resolve("inventory")

    assert endpoint.url == "http://10.0.0.5:3001"


def test_select_instance_from_empty_list_raises(source) -> None:
    discovery = DiscoveryClient(source)
    with pytest.raises(NoInstancesAvailable):
        discovery.select_instance("inventory", [])


def test_from_config_applies_ttl_and_strategy(source) -> None:
    section = DiscoveryConfigSection.from_dict({"cache_ttl": 12, "selection_strategy": "round_robin"})

    discovery = DiscoveryClient.from_config(source, section)

    assert discovery.cache_ttl == 12
    assert isinstance(discovery.selector, RoundRobinSelector)
