"""Product service client."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from .base import ServiceClient


class ProductServiceClient(ServiceClient):
    service_name = "product-service"

    async def get_product(self, product_id: str) -> Any:
        return await self._request(f"/products/{quote(product_id, safe='')}")

    async def list_products(self) -> Any:
        return await self._request("/products")

    async def search_products(self, query: str) -> Any:
        return await self._request(f"/products/search/{quote(query, safe='')}")
