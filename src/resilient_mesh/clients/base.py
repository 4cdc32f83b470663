"""
Base class for typed clients of downstream services.
"""

from __future__ import annotations

import logging
from typing import Any

from ..discovery.client import DiscoveryClient
from ..errors import DependencyError
from ..resilience.circuit_breaker import CircuitBreakerConfig, CircuitSnapshot
from ..resilience.client import ResilientClient
from ..resilience.transport import Transport

logger = logging.getLogger(__name__)


class ServiceClient:
    """Typed facade over a ResilientClient for one named service."""

    service_name: str = ""

    def __init__(
        self,
        discovery: DiscoveryClient,
        transport: Transport | None = None,
        config: CircuitBreakerConfig | None = None,
        resilient_client: ResilientClient | None = None,
    ):
        self.client = resilient_client or ResilientClient(
            self.service_name, discovery, transport=transport, config=config
        )

    async def _request(self, path: str, method: str = "GET", payload: Any = None) -> Any:
        """Return the body of a 2xx response.

        Non-2xx answers below 500 raise DependencyError after the call; they
        are not counted as breaker failures.
        """
        response = await self.client.call(path, method, payload)
        if not response.ok:
            raise DependencyError(
                f"{self.service_name} rejected {method} {path} with {response.status_code}",
                status_code=response.status_code,
            )
        return response.body

    def get_state(self) -> CircuitSnapshot:
        return self.client.get_state()

    def reset(self) -> None:
        self.client.reset()

    async def close(self) -> None:
        await self.client.close()
