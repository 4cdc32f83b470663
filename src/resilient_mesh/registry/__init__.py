"""
Lease-based service registry: in-process service, HTTP app, HTTP client and
instance heartbeat.
"""

from .api import RegisterRequest, create_registry_app
from .client import RegistryClient
from .heartbeat import InstanceHeartbeat
from .lease_table import Endpoint, InstanceRecord, InstanceStatus, LeaseTable
from .service import RegistryService

__all__ = [
    "Endpoint",
    "InstanceHeartbeat",
    "InstanceRecord",
    "InstanceStatus",
    "LeaseTable",
    "RegisterRequest",
    "RegistryClient",
    "RegistryService",
    "create_registry_app",
]
