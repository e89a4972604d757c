"""
Storage providers.

Concrete providers live in their own modules (memory, sqlite) and are imported
from there; this package only exposes the provider contract.
"""

from dynorm.core.storage.base import OpResult, OpStatus, StoreProvider, call_best_effort
from dynorm.core.storage.records import DynamicRecord

__all__ = ["DynamicRecord", "OpResult", "OpStatus", "StoreProvider", "call_best_effort"]
