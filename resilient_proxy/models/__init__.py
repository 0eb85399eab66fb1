"""
In-memory provider and endpoint records.
"""
from resilient_proxy.models.provider import Endpoint, Provider, SelectionMode

__all__ = [
    "Endpoint",
    "Provider",
    "SelectionMode",
]
