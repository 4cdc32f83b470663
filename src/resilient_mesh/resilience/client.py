"""
Resilient Client

Calls one named dependency: resolve an endpoint through discovery, then make
the network call through that dependency's circuit breaker. Discovery
exhaustion is surfaced as-is and never counted against the breaker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..discovery.client import DiscoveryClient
from ..errors import DependencyError
from ..registry.lease_table import Endpoint
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitSnapshot
from .transport import AiohttpTransport, Transport, TransportResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResponse:
    """Response of a dependency call that did not fail."""

    status_code: int
    body: Any
    endpoint: Endpoint

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class ResilientClient:
    """Discovery plus circuit breaker for one dependency."""

    def __init__(
        self,
        dependency: str,
        discovery: DiscoveryClient,
        transport: Transport | None = None,
        breaker: CircuitBreaker | None = None,
        config: CircuitBreakerConfig | None = None,
    ):
        self.dependency = dependency
        self.discovery = discovery
        self.transport = transport or AiohttpTransport()
        self.breaker = breaker or CircuitBreaker(dependency, config)

    async def call(
        self, path: str, method: str = "GET", payload: Any = None
    ) -> ServiceResponse:
        """Call ``path`` on one instance of the dependency.

        Raises:
            CircuitOpenError: the breaker rejected the call.
            NoInstancesAvailable: discovery found nothing to call.
            DependencyError: the call failed (network, timeout or status >= 500).
        """
        self.breaker.check()
        endpoint = await self.discovery.resolve(self.dependency)
        url = f"{endpoint.url}/{path.lstrip('/')}"

        async def attempt() -> TransportResponse:
            response = await self.transport.invoke(
                url, method, payload, self.breaker.config.call_timeout
            )
            if response.status_code >= 500:
                raise DependencyError(
                    f"{self.dependency} answered {response.status_code} for {method} {url}",
                    status_code=response.status_code,
                )
            return response

        try:
            response = await self.breaker.execute(attempt)
        except DependencyError as e:
            logger.warning("Call to %s via %s failed: %s", self.dependency, endpoint, e)
            raise

        return ServiceResponse(response.status_code, response.body, endpoint)

    def get_state(self) -> CircuitSnapshot:
        return self.breaker.get_state()

    def reset(self) -> None:
        self.breaker.reset()

    async def close(self) -> None:
        await self.transport.close()
