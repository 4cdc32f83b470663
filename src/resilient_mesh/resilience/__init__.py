"""
Resilience: rolling-window circuit breakers and the clients built on them.
"""

from .admin import build_circuit_router
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitPhase,
    CircuitSnapshot,
    CircuitTransition,
    is_circuit_open_error,
)
from .client import ResilientClient, ServiceResponse
from .rolling_window import RollingWindow, WindowTotals
from .transport import AiohttpTransport, Transport, TransportResponse

__all__ = [
    "AiohttpTransport",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitPhase",
    "CircuitSnapshot",
    "CircuitTransition",
    "ResilientClient",
    "RollingWindow",
    "ServiceResponse",
    "Transport",
    "TransportResponse",
    "WindowTotals",
    "build_circuit_router",
    "is_circuit_open_error",
]
