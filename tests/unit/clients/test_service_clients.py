from unittest.mock import AsyncMock

import pytest

import resilient_mesh
from resilient_mesh import clients
from resilient_mesh.clients import InventoryServiceClient, ProductServiceClient
from resilient_mesh.discovery.client import DiscoveryClient
from resilient_mesh.errors import CircuitOpenError, DependencyError
from resilient_mesh.registry.lease_table import Endpoint
from resilient_mesh.resilience.client import ServiceResponse

ENDPOINT = Endpoint("inventory-service", "i-1", "10.0.0.7", 3001)


@pytest.fixture
def resilient():
    client = AsyncMock()
    client.call.return_value = ServiceResponse(200, {"success": True, "data": {}}, ENDPOINT)
    return client


@pytest.mark.asyncio
async def test_inventory_paths(resilient) -> None:
    client = InventoryServiceClient(discovery=None, resilient_client=resilient)

    await client.get_inventory("p 1")
    await client.check_availability("p1", 3)
    await client.reserve("p1", 2)
    await client.release("p1", 2)

    assert [c.args for c in resilient.call.await_args_list] == [
        ("/inventory/p%201", "GET", None),
        ("/inventory/p1/availability?quantity=3", "GET", None),
        ("/inventory/p1/reserve", "POST", {"quantity": 2}),
        ("/inventory/p1/release", "POST", {"quantity": 2}),
    ]


@pytest.mark.asyncio
async def test_product_paths(resilient) -> None:
    client = ProductServiceClient(discovery=None, resilient_client=resilient)

    body = await client.get_product("p1")
    await client.list_products()
    await client.search_products("laptop bag")

    assert body == {"success": True, "data": {}}
    assert [c.args[0] for c in resilient.call.await_args_list] == [
        "/products/p1",
        "/products",
        "/products/search/laptop%20bag",
    ]


@pytest.mark.asyncio
async def test_non_2xx_raises_dependency_error(resilient) -> None:
    resilient.call.return_value = ServiceResponse(404, {"error": "not found"}, ENDPOINT)
    client = InventoryServiceClient(discovery=None, resilient_client=resilient)

    with pytest.raises(DependencyError) as exc_info:
        await client.get_inventory("missing")
    assert exc_info.value.status_code == 404


def test_default_client_uses_service_name() -> None:
    client = ProductServiceClient(DiscoveryClient(AsyncMock()))
    assert client.client.dependency == "product-service"
    assert client.get_state().name == "product-service"


def test_circuit_open_helper_lives_in_resilience_only() -> None:
    from resilient_mesh.resilience import is_circuit_open_error

    assert is_circuit_open_error(CircuitOpenError("inventory-service", "open", 12.0))
    assert not hasattr(clients, "is_circuit_open_error")
    assert not hasattr(resilient_mesh, "is_circuit_open_error")
