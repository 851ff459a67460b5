"""
Abstract Record Store Interface

DESIGN DECISION: The engine talks to persistence through one small,
table-oriented interface. This allows us to:
1. Run against a hosted backend, Google Sheets or memory without changes
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Records are plain dicts, filters are equality matches, ordering is a
single field name with an optional "-" prefix for descending.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import UUID


Record = dict[str, Any]


class Table(str, Enum):
    """Tables the engine reads and writes."""
    ACCOUNTS = "accounts"
    EXPENSES = "expenses"
    EXPENSE_SPLITS = "expense_splits"
    INCOME = "income"
    CATEGORIES = "categories"
    SPLIT_SUGGESTIONS = "split_suggestions"
    USERS = "users"
    AUDIT_LOG = "audit_log"


class RecordStore(ABC):
    """
    Abstract interface for record storage operations.

    Any backing store (hosted database, Google Sheets, memory)
    must implement these methods. Every method may raise
    UnauthenticatedError when the session behind the store has lapsed.
    """

    @abstractmethod
    async def query(
        self,
        table: Table,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
    ) -> list[Record]:
        """
        Fetch records matching all filters.

        Args:
            table: Table to read
            filters: Field -> value equality matches (all must hold)
            order: Field to sort by, "-field" for descending

        Returns:
            List of matching records

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def insert(self, table: Table, record: Record) -> Record:
        """
        Insert a record.

        Args:
            table: Table to write
            record: Field values; an "id" is generated when absent

        Returns:
            The stored record, including its id

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: Table,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int:
        """
        Apply a patch to every record matching the filters.

        Returns:
            Number of records updated

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, table: Table, filters: Mapping[str, Any]) -> int:
        """
        Delete every record matching the filters.

        Returns:
            Number of records deleted

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def current_principal(self) -> UUID:
        """
        Get the user the store is acting for.

        Raises:
            UnauthenticatedError: If there is no live session
        """
        pass


# =============================================================================
# Helpers shared by store implementations
# =============================================================================

def normalize_value(value: Any) -> Any:
    """Reduce a value to the primitive form records are stored in."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def normalize_record(record: Mapping[str, Any]) -> Record:
    return {key: normalize_value(value) for key, value in record.items()}


def record_matches(record: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    """True when every filter field equals the record's value."""
    if not filters:
        return True
    return all(
        normalize_value(record.get(field)) == normalize_value(expected)
        for field, expected in filters.items()
    )


def sort_records(records: list[Record], order: Optional[str]) -> list[Record]:
    """
    Sort records by one field.

    For descending order, records that tie keep newest-inserted first.
    Missing values sort as empty strings.
    """
    if not order:
        return records
    descending = order.startswith("-")
    field = order.lstrip("-")

    def key(record: Record) -> Any:
        value = record.get(field)
        return "" if value is None else value

    if descending:
        return sorted(reversed(records), key=key, reverse=True)
    return sorted(records, key=key)


# =============================================================================
# Errors
# =============================================================================

class StorageError(Exception):
    """
    Base exception for storage operations.

    transient tells callers whether retrying the same operation could
    succeed (a dropped connection) or never will (a missing row, a bad
    reference).
    """

    transient: bool = False

    def __init__(self, message: str, transient: Optional[bool] = None):
        super().__init__(message)
        if transient is not None:
            self.transient = transient


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class IntegrityError(StorageError):
    """A write referenced something that does not exist or is not allowed."""
    pass


class StoreConnectionError(StorageError):
    """Could not connect to storage backend."""

    transient = True


class UnauthenticatedError(StorageError):
    """The session lapsed; the caller must re-authenticate and retry."""
    pass
