"""
CSV Import / Export Rows

Expense rows carry the columns Name, Amount, Frequency, Account, Category,
Split. Split is the user's own percentage (0-100, default 50). Account and
Category are matched to existing records by case-insensitive name. Income
is exported with Source, Amount, Frequency.

A bad row never aborts an import: it is reported with its line number and
the remaining rows are still returned. Only a file missing one of the
required columns is rejected outright.
"""

import csv
import io
from typing import Iterable, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from pay_allocator.engine.aggregator import resolve_ratio
from pay_allocator.models.finance import Income, SessionState, Settled
from pay_allocator.validation import ValidationFailedError


COLUMNS = ["Name", "Amount", "Frequency", "Account", "Category", "Split"]
INCOME_COLUMNS = ["Source", "Amount", "Frequency"]
REQUIRED_COLUMNS = ["Name", "Amount", "Frequency"]
DEFAULT_SPLIT_RATIO = 0.5


class ExpenseRow(BaseModel):
    """One parsed CSV row."""
    model_config = ConfigDict(str_strip_whitespace=True)

    line: int = Field(..., description="1-based line in the file, header is line 1")
    name: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    frequency: str = Field(..., min_length=1)
    account: Optional[str] = None
    category: Optional[str] = None
    split_ratio: float = Field(default=DEFAULT_SPLIT_RATIO, ge=0.0, le=1.0)


class RowError(BaseModel):
    """Why a CSV row was skipped."""

    line: int
    message: str


class ImportResult(BaseModel):
    """Outcome of importing a CSV file."""

    imported: list[UUID] = Field(default_factory=list)
    errors: list[RowError] = Field(default_factory=list)


def _cell(row: dict, column: str) -> str:
    return (row.get(column) or "").strip()


def _parse_row(line: int, row: dict) -> ExpenseRow:
    """Raise ValueError with a readable message for a bad row."""
    name = _cell(row, "Name")
    if not name:
        raise ValueError("Name is empty")

    try:
        amount = float(_cell(row, "Amount"))
    except ValueError:
        raise ValueError(f"Amount '{_cell(row, 'Amount')}' is not a number")
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")

    frequency = _cell(row, "Frequency")
    if not frequency:
        raise ValueError("Frequency is empty")

    split_cell = _cell(row, "Split")
    split_ratio = DEFAULT_SPLIT_RATIO
    if split_cell:
        try:
            percent = float(split_cell.rstrip("%"))
        except ValueError:
            raise ValueError(f"Split '{split_cell}' is not a number")
        if not 0 <= percent <= 100:
            raise ValueError("Split must be between 0 and 100")
        split_ratio = percent / 100

    return ExpenseRow(
        line=line,
        name=name,
        amount=amount,
        frequency=frequency,
        account=_cell(row, "Account") or None,
        category=_cell(row, "Category") or None,
        split_ratio=split_ratio,
    )


def parse_expense_rows(text: str) -> tuple[list[ExpenseRow], list[RowError]]:
    """
    Parse an expense CSV.

    Returns:
        (rows, errors): every valid row, and one error per invalid row

    Raises:
        ValidationFailedError: the header lacks a required column
    """
    reader = csv.DictReader(io.StringIO(text))
    header = [column.strip() for column in reader.fieldnames or []]
    missing = [column for column in REQUIRED_COLUMNS if column not in header]
    if missing:
        raise ValidationFailedError(
            "columns",
            f"Missing required columns: {', '.join(missing)}",
        )
    reader.fieldnames = header

    rows: list[ExpenseRow] = []
    errors: list[RowError] = []
    for line, raw in enumerate(reader, start=2):
        if not any((value or "").strip() for value in raw.values() if isinstance(value, str)):
            continue  # Blank line
        try:
            rows.append(_parse_row(line, raw))
        except ValueError as e:
            errors.append(RowError(line=line, message=str(e)))
    return rows, errors


def export_expense_rows(session: SessionState) -> str:
    """
    Write the session's settled expenses as CSV.

    Split is the viewing user's ratio as a whole percentage.
    """
    return _write_csv(COLUMNS, _export_rows(session))


def export_income_rows(incomes: Sequence[Income]) -> str:
    """Write income sources as CSV with the amount and frequency as entered."""
    return _write_csv(INCOME_COLUMNS, (
        {
            "Source": income.source,
            "Amount": _format_amount(income.raw_amount.value),
            "Frequency": income.raw_amount.frequency.descriptor,
        }
        for income in incomes
    ))


def _write_csv(columns: list[str], rows: Iterable[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def _format_amount(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def _export_rows(session: SessionState) -> Iterable[dict]:
    for view in session.expenses:
        if not isinstance(view, Settled):
            continue
        expense = view.expense
        account = session.account_by_id(expense.account_id)
        category = session.category_by_id(expense.category_id)
        ratio = resolve_ratio(expense, session.user_id).ratio
        yield {
            "Name": expense.name,
            "Amount": _format_amount(expense.raw_amount.value),
            "Frequency": expense.raw_amount.frequency.descriptor,
            "Account": account.name if account else "",
            "Category": category.name if category else "",
            "Split": round(ratio * 100),
        }
