"""
Storage Services Package

Provides the abstract record store interface and concrete implementations.
The in-memory store needs nothing; the Google Sheets store is imported
lazily so gspread is only loaded when it is actually used.
"""

from pay_allocator.services.storage.interface import (
    DuplicateError,
    IntegrityError,
    NotFoundError,
    Record,
    RecordStore,
    StorageError,
    StoreConnectionError,
    Table,
    UnauthenticatedError,
)
from pay_allocator.services.storage.memory import InMemoryRecordStore

__all__ = [
    # Interface
    "Record",
    "RecordStore",
    "Table",
    # Exceptions
    "DuplicateError",
    "IntegrityError",
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    "UnauthenticatedError",
    # Implementations
    "InMemoryRecordStore",
]
