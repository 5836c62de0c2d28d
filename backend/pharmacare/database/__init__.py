"""
Database access: engines, sessions and the store capability object.
"""

from pharmacare.database.store import StoreCapabilities, StoreError, StoreUnavailableError

__all__ = ["StoreCapabilities", "StoreError", "StoreUnavailableError"]
