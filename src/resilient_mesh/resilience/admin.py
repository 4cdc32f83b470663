"""
Circuit breaker admin endpoints, mounted by the application that owns the clients.
"""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import APIRouter, HTTPException

from .client import ResilientClient


def build_circuit_router(clients: Mapping[str, ResilientClient]) -> APIRouter:
    """Create a router exposing status and reset for each dependency's breaker."""
    router = APIRouter(prefix="/circuit", tags=["circuit-breakers"])

    def get_client(dependency: str) -> ResilientClient:
        client = clients.get(dependency)
        if client is None:
            raise HTTPException(status_code=404, detail=f"Unknown dependency: {dependency}")
        return client

    @router.get("")
    async def list_circuits():
        return {
            name: _status(client) for name, client in clients.items()
        }

    @router.get("/{dependency}/status")
    async def circuit_status(dependency: str):
        return _status(get_client(dependency))

    @router.post("/{dependency}/reset")
    async def reset_circuit(dependency: str):
        client = get_client(dependency)
        client.reset()
        return _status(client)

    return router


def _status(client: ResilientClient) -> dict:
    snapshot = client.get_state()
    return {"phase": snapshot.phase.value, "stats": snapshot.stats}
