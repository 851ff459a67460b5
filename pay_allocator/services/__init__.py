"""Services package."""

from pay_allocator.services.csv_rows import (
    ExpenseRow,
    ImportResult,
    RowError,
    export_expense_rows,
    export_income_rows,
    parse_expense_rows,
)
from pay_allocator.services.repository import FinanceRepository
from pay_allocator.services.storage import (
    DuplicateError,
    InMemoryRecordStore,
    IntegrityError,
    NotFoundError,
    RecordStore,
    StorageError,
    StoreConnectionError,
    Table,
    UnauthenticatedError,
)

__all__ = [
    # CSV rows
    "ExpenseRow",
    "ImportResult",
    "RowError",
    "export_expense_rows",
    "export_income_rows",
    "parse_expense_rows",
    # Repository
    "FinanceRepository",
    # Storage
    "DuplicateError",
    "InMemoryRecordStore",
    "IntegrityError",
    "NotFoundError",
    "RecordStore",
    "StorageError",
    "StoreConnectionError",
    "Table",
    "UnauthenticatedError",
]
