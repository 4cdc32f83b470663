from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from resilient_mesh.discovery.client import DiscoveryClient
from resilient_mesh.errors import (
    CircuitOpenError,
    DependencyError,
    NetworkError,
    NoInstancesAvailable,
)
from resilient_mesh.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitPhase,
)
from resilient_mesh.resilience.client import ResilientClient
from resilient_mesh.resilience.transport import TransportResponse


class FakeTransport:
    """Scripted transport recording every invocation."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    async def invoke(self, url, method="GET", payload=None, timeout=5.0):
        self.calls.append((url, method, payload, timeout))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


@pytest_asyncio.fixture
async def discovery(registry, clock):
    await registry.register("inventory", "i-1", "10.0.0.7", 3001)
    return DiscoveryClient(registry, clock=clock)


def make_client(discovery, transport, clock) -> ResilientClient:
    config = CircuitBreakerConfig(minimum_requests=2, reset_timeout=30, call_timeout=2)
    return ResilientClient(
        "inventory",
        discovery,
        transport=transport,
        breaker=CircuitBreaker("inventory", config, clock=clock),
    )


@pytest.mark.asyncio
async def test_call_resolves_endpoint_and_returns_response(discovery, clock) -> None:
    transport = FakeTransport(TransportResponse(200, {"success": True}))
    client = make_client(discovery, transport, clock)

    response = await client.call("/inventory/p-1", "POST", {"quantity": 2})

    assert response.ok
    assert response.body == {"success": True}
    assert response.endpoint.instance_id == "i-1"
    assert transport.calls == [("http://10.0.0.7:3001/inventory/p-1", "POST", {"quantity": 2}, 2)]


@pytest.mark.asyncio
async def test_client_errors_are_returned_not_counted(discovery, clock) -> None:
    client = make_client(discovery, FakeTransport(TransportResponse(404, {"error": "nope"})), clock)

    for _ in range(3):
        response = await client.call("/inventory/missing")
        assert response.status_code == 404

    snapshot = client.get_state()
    assert snapshot.phase == CircuitPhase.CLOSED
    assert snapshot.stats["failures"] == 0


@pytest.mark.asyncio
async def test_server_errors_trip_the_breaker(discovery, clock) -> None:
    transport = FakeTransport(TransportResponse(503, "unavailable"))
    client = make_client(discovery, transport, clock)

    for _ in range(2):
        with pytest.raises(DependencyError) as exc_info:
            await client.call("/inventory/p-1")
        assert exc_info.value.status_code == 503

    with pytest.raises(CircuitOpenError):
        await client.call("/inventory/p-1")
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_network_errors_count_as_failures(discovery, clock) -> None:
    client = make_client(discovery, FakeTransport(NetworkError("connection refused")), clock)

    for _ in range(2):
        with pytest.raises(NetworkError):
            await client.call("/inventory/p-1")

    assert client.get_state().phase == CircuitPhase.OPEN


@pytest.mark.asyncio
async def test_open_breaker_skips_discovery(clock) -> None:
    source = AsyncMock()
    discovery = DiscoveryClient(source, clock=clock)
    client = make_client(discovery, FakeTransport(TransportResponse(200)), clock)
    client.breaker._phase = CircuitPhase.OPEN
    client.breaker._opened_at = clock()

    with pytest.raises(CircuitOpenError):
        await client.call("/inventory")

    source.list_instances.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_instances_does_not_touch_breaker(registry, clock) -> None:
    discovery = DiscoveryClient(registry, clock=clock)
    transport = FakeTransport(TransportResponse(200))
    client = make_client(discovery, transport, clock)

    for _ in range(5):
        with pytest.raises(NoInstancesAvailable):
            await client.call("/inventory")

    stats = client.get_state().stats
    assert stats["calls"] == 0
    assert stats["failures"] == 0
    assert transport.calls == []


@pytest.mark.asyncio
async def test_reset_and_close(discovery, clock) -> None:
    transport = FakeTransport(TransportResponse(500))
    client = make_client(discovery, transport, clock)
    for _ in range(2):
        with pytest.raises(DependencyError):
            await client.call("/x")

    client.reset()
    assert client.get_state().phase == CircuitPhase.CLOSED

    await client.close()
    assert transport.closed
