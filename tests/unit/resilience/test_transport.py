"""
AiohttpTransport against a real aiohttp server on an ephemeral port.
"""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web

from resilient_mesh.errors import DependencyError, DependencyTimeout, NetworkError
from resilient_mesh.resilience.transport import AiohttpTransport


async def _items(request):
    return web.json_response({"items": ["widget", "gadget"]})


async def _ping(request):
    return web.Response(text="pong")


async def _broken(request):
    return web.Response(body=b"{not json", content_type="application/json")


async def _reserve(request):
    body = await request.json()
    return web.json_response({"reserved": body["quantity"]}, status=201)


async def _slow(request):
    await asyncio.sleep(0.5)
    return web.json_response({"late": True})


async def _unavailable(request):
    return web.json_response({"error": "maintenance"}, status=503)


async def _headers(request):
    return web.json_response({"token": request.headers.get("X-Service-Token")})


@pytest_asyncio.fixture
async def base_url():
    app = web.Application()
    app.router.add_get("/items", _items)
    app.router.add_get("/ping", _ping)
    app.router.add_get("/broken", _broken)
    app.router.add_post("/reserve", _reserve)
    app.router.add_get("/slow", _slow)
    app.router.add_get("/unavailable", _unavailable)
    app.router.add_get("/headers", _headers)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()

    host, port = runner.addresses[0][:2]
    yield f"http://{host}:{port}"

    await runner.cleanup()


@pytest_asyncio.fixture
async def transport():
    transport = AiohttpTransport(headers={"X-Service-Token": "secret"})
    yield transport
    await transport.close()


@pytest.mark.asyncio
async def test_json_body_is_decoded(transport, base_url) -> None:
    response = await transport.invoke(f"{base_url}/items")

    assert response.status_code == 200
    assert response.body == {"items": ["widget", "gadget"]}


@pytest.mark.asyncio
async def test_text_body_is_returned_as_text(transport, base_url) -> None:
    response = await transport.invoke(f"{base_url}/ping")

    assert response.body == "pong"


@pytest.mark.asyncio
async def test_malformed_json_body_falls_back_to_text(transport, base_url) -> None:
    response = await transport.invoke(f"{base_url}/broken")

    assert response.status_code == 200
    assert response.body == "{not json"


@pytest.mark.asyncio
async def test_payload_is_sent_as_json(transport, base_url) -> None:
    response = await transport.invoke(f"{base_url}/reserve", "POST", {"quantity": 3})

    assert response.status_code == 201
    assert response.body == {"reserved": 3}


@pytest.mark.asyncio
async def test_error_status_is_returned_not_raised(transport, base_url) -> None:
    response = await transport.invoke(f"{base_url}/unavailable")

    assert response.status_code == 503
    assert response.body == {"error": "maintenance"}


@pytest.mark.asyncio
async def test_default_headers_are_sent(transport, base_url) -> None:
    response = await transport.invoke(f"{base_url}/headers")

    assert response.body == {"token": "secret"}


@pytest.mark.asyncio
async def test_timeout_raises_dependency_timeout(transport, base_url) -> None:
    with pytest.raises(DependencyTimeout) as exc_info:
        await transport.invoke(f"{base_url}/slow", timeout=0.05)

    assert exc_info.value.timeout == 0.05
    assert isinstance(exc_info.value, DependencyError)


@pytest.mark.asyncio
async def test_connection_failure_raises_network_error(transport) -> None:
    with pytest.raises(NetworkError, match="GET http://127.0.0.1:1/items failed"):
        await transport.invoke("http://127.0.0.1:1/items")


@pytest.mark.asyncio
async def test_session_is_reused_and_recreated_after_close(transport, base_url) -> None:
    await transport.invoke(f"{base_url}/ping")
    session = transport._http_session
    await transport.invoke(f"{base_url}/ping")
    assert transport._http_session is session

    await transport.close()
    assert session.closed
    assert transport._http_session is None

    response = await transport.invoke(f"{base_url}/ping")
    assert response.body == "pong"
    assert transport._http_session is not session
