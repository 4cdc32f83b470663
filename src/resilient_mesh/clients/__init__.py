"""
Typed clients for downstream services.
"""

from .base import ServiceClient
from .inventory import InventoryServiceClient
from .product import ProductServiceClient

__all__ = [
    "InventoryServiceClient",
    "ProductServiceClient",
    "ServiceClient",
]
