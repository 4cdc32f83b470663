"""
HTTP client for a remote registry.

Exposes the same coroutine surface as RegistryService so discovery and
heartbeats can run against either an in-process registry or a remote one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from ..errors import NotFoundError, RegistrationError, RegistryUnavailableError
from .lease_table import InstanceRecord, InstanceStatus

logger = logging.getLogger(__name__)


class RegistryClient:
    """aiohttp-based registry client."""

    def __init__(self, registry_url: str, timeout: float = 5.0):
        self.registry_url = registry_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._http_session: aiohttp.ClientSession | None = None

    async def _get_http_session(self) -> aiohttp.ClientSession:
        """Get or create the shared HTTP session."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession(timeout=self._timeout)
        return self._http_session

    async def close(self) -> None:
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def register(
        self,
        service_name: str,
        instance_id: str,
        host: str,
        port: int,
        metadata: dict[str, str] | None = None,
        health_check_url: str | None = None,
        status_page_url: str | None = None,
    ) -> None:
        body: dict[str, Any] = {"instanceId": instance_id, "host": host, "port": port}
        if metadata:
            body["metadata"] = metadata
        if health_check_url:
            body["healthCheckUrl"] = health_check_url
        if status_page_url:
            body["statusPageUrl"] = status_page_url
        status, data = await self._request("POST", f"/register/{service_name}", json=body)

        if status == 400:
            raise RegistrationError(self._error_text(data))
        self._expect(status, (200, 204), data)
        logger.info("Registered %s[%s] with registry", service_name, instance_id)

    async def renew(self, service_name: str, instance_id: str) -> InstanceRecord:
        status, data = await self._request("PUT", f"/renew/{service_name}/{instance_id}")

        if status == 404:
            raise NotFoundError(service_name, instance_id)
        self._expect(status, (200,), data)
        return InstanceRecord.from_dict(data)

    async def set_status(
        self, service_name: str, instance_id: str, status: InstanceStatus
    ) -> InstanceRecord:
        """Mark an instance UP or DOWN, e.g. while it drains before shutdown."""
        status_code, data = await self._request(
            "PUT", f"/status/{service_name}/{instance_id}", json={"status": status.value}
        )

        if status_code == 404:
            raise NotFoundError(service_name, instance_id)
        if status_code == 400:
            raise RegistrationError(self._error_text(data))
        self._expect(status_code, (200,), data)
        logger.info("Set %s[%s] status to %s", service_name, instance_id, status.value)
        return InstanceRecord.from_dict(data)

    async def deregister(self, service_name: str, instance_id: str) -> bool:
        status, data = await self._request(
            "DELETE", f"/deregister/{service_name}/{instance_id}"
        )
        self._expect(status, (200,), data)
        logger.info("Deregistered %s[%s] from registry", service_name, instance_id)
        return bool(data.get("removed", True)) if isinstance(data, dict) else True

    async def list_instances(self, service_name: str) -> list[InstanceRecord]:
        status, data = await self._request("GET", f"/instances/{service_name}")

        if status == 404:
            return []
        self._expect(status, (200,), data)
        return self._parse_instances(data.get("instances", []))

    async def list_all(self) -> dict[str, list[InstanceRecord]]:
        status, data = await self._request("GET", "/instances")
        self._expect(status, (200,), data)
        return {
            name: self._parse_instances(items)
            for name, items in data.get("services", {}).items()
        }

    async def health(self) -> dict[str, Any]:
        status, data = await self._request("GET", "/health")
        self._expect(status, (200,), data)
        return data

    async def _request(self, method: str, path: str, **kwargs: Any) -> tuple[int, Any]:
        session = await self._get_http_session()
        url = f"{self.registry_url}{path}"

        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status == 204:
                    return response.status, None
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = await response.text()
                return response.status, data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Registry request %s %s failed: %s", method, url, e)
            raise RegistryUnavailableError(f"Registry unreachable at {self.registry_url}: {e}") from e

    @staticmethod
    def _expect(status: int, expected: tuple[int, ...], data: Any) -> None:
        if status not in expected:
            raise RegistryUnavailableError(
                f"Registry error {status}: {RegistryClient._error_text(data)}"
            )

    @staticmethod
    def _error_text(data: Any) -> str:
        if isinstance(data, dict):
            return str(data.get("error", data))
        return str(data)

    @staticmethod
    def _parse_instances(items: list[dict[str, Any]]) -> list[InstanceRecord]:
        instances = []
        for item in items:
            try:
                instances.append(InstanceRecord.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Failed to parse registry instance %s: %s", item, e)
        return instances
