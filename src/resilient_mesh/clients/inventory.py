"""Inventory service client."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from .base import ServiceClient


class InventoryServiceClient(ServiceClient):
    service_name = "inventory-service"

    async def get_inventory(self, product_id: str) -> Any:
        return await self._request(f"/inventory/{quote(product_id, safe='')}")

    async def check_availability(self, product_id: str, quantity: int) -> Any:
        return await self._request(
            f"/inventory/{quote(product_id, safe='')}/availability?quantity={int(quantity)}"
        )

    async def reserve(self, product_id: str, quantity: int) -> Any:
        return await self._request(
            f"/inventory/{quote(product_id, safe='')}/reserve", "POST", {"quantity": quantity}
        )

    async def release(self, product_id: str, quantity: int) -> Any:
        return await self._request(
            f"/inventory/{quote(product_id, safe='')}/release", "POST", {"quantity": quantity}
        )
