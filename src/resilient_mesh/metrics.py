"""Prometheus metrics for the registry and the circuit breakers."""

from prometheus_client import Counter, Gauge

registry_operations_total = Counter(
    "mesh_registry_operations_total",
    "Total registry operations",
    ["operation", "outcome"],
)
registry_instances = Gauge(
    "mesh_registry_instances",
    "Number of instance records currently held by the registry",
)
registry_evictions_total = Counter(
    "mesh_registry_evictions_total",
    "Total instances evicted by the lease sweep",
)

discovery_lookups_total = Counter(
    "mesh_discovery_lookups_total",
    "Total discovery lookups",
    ["service", "source"],
)

circuit_calls_total = Counter(
    "mesh_circuit_calls_total",
    "Calls executed through a circuit breaker",
    ["dependency", "outcome"],
)
circuit_rejections_total = Counter(
    "mesh_circuit_rejections_total",
    "Calls rejected without being attempted",
    ["dependency"],
)
circuit_transitions_total = Counter(
    "mesh_circuit_transitions_total",
    "Circuit breaker phase transitions",
    ["dependency", "to_phase"],
)
circuit_phase = Gauge(
    "mesh_circuit_phase",
    "Current circuit breaker phase (0=closed, 1=half_open, 2=open)",
    ["dependency"],
)

PHASE_VALUES = {"closed": 0, "half_open": 1, "open": 2}
