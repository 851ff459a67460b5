"""Tests for CSV import and export rows."""

from uuid import uuid4

import pytest

from pay_allocator.engine.frequency import parse_frequency
from pay_allocator.models.finance import (
    Account,
    Category,
    Expense,
    ExpenseSplit,
    Income,
    MonetaryAmount,
    SessionState,
    Settled,
)
from pay_allocator.services.csv_rows import (
    export_expense_rows,
    export_income_rows,
    parse_expense_rows,
)
from pay_allocator.validation import ValidationFailedError


class TestParseExpenseRows:
    """Tests for parse_expense_rows."""

    def test_valid_rows(self):
        """Test all columns are read and Split becomes a ratio."""
        text = (
            "Name,Amount,Frequency,Account,Category,Split\n"
            "Rent,2000,monthly,Joint,Housing,50\n"
            "Gym,15,every 2 weeks,,,100\n"
        )
        rows, errors = parse_expense_rows(text)
        assert errors == []
        assert rows[0].name == "Rent"
        assert rows[0].account == "Joint"
        assert rows[0].split_ratio == 0.5
        assert rows[1].frequency == "every 2 weeks"
        assert rows[1].account is None
        assert rows[1].split_ratio == 1.0

    def test_split_defaults_to_half(self):
        """Test a missing Split column means 50%."""
        rows, _ = parse_expense_rows("Name,Amount,Frequency\nWater,40,quarterly\n")
        assert rows[0].split_ratio == 0.5

    def test_bad_rows_reported_not_fatal(self):
        """Test invalid rows are listed with their line numbers."""
        text = (
            "Name,Amount,Frequency,Split\n"
            "Rent,abc,monthly,50\n"
            ",10,monthly,50\n"
            "Power,-5,monthly,50\n"
            "Phone,60,monthly,150\n"
            "Internet,80,monthly,\n"
        )
        rows, errors = parse_expense_rows(text)
        assert [r.name for r in rows] == ["Internet"]
        assert [e.line for e in errors] == [2, 3, 4, 5]
        assert "not a number" in errors[0].message

    def test_missing_required_column(self):
        """Test a file without a required column is rejected."""
        with pytest.raises(ValidationFailedError) as exc_info:
            parse_expense_rows("Name,Amount\nRent,2000\n")
        assert exc_info.value.field == "columns"
        assert "Frequency" in str(exc_info.value)


class TestExportExpenseRows:
    """Tests for export_expense_rows."""

    def test_export_uses_names_and_percentages(self):
        """Test export resolves account/category names and the user's split."""
        user = uuid4()
        account = Account(name="Joint", owner_ids={user, uuid4()})
        category = Category(name="Housing")
        expense = Expense(
            name="Rent",
            raw_amount=MonetaryAmount(value=2000, frequency=parse_frequency("monthly")),
            account_id=account.id,
            category_id=category.id,
            created_by=user,
        )
        expense.splits = [ExpenseSplit(expense_id=expense.id, user_id=user, ratio=0.4)]
        session = SessionState(
            user_id=user,
            accounts=[account],
            categories=[category],
            expenses=[Settled(expense=expense)],
        )
        lines = export_expense_rows(session).splitlines()
        assert lines[0] == "Name,Amount,Frequency,Account,Category,Split"
        assert lines[1] == "Rent,2000,monthly,Joint,Housing,40"

    def test_exported_rows_parse_back(self):
        """Test an export can be imported again."""
        user = uuid4()
        expense = Expense(
            name="Gym",
            raw_amount=MonetaryAmount(value=12.5, frequency=parse_frequency("every 2 weeks")),
            created_by=user,
        )
        expense.splits = [ExpenseSplit(expense_id=expense.id, user_id=user, ratio=1.0)]
        session = SessionState(user_id=user, expenses=[Settled(expense=expense)])
        rows, errors = parse_expense_rows(export_expense_rows(session))
        assert errors == []
        assert rows[0].amount == 12.5
        assert rows[0].frequency == "every 2 weeks"
        assert rows[0].split_ratio == 1.0


class TestExportIncomeRows:
    """Tests for export_income_rows."""

    def test_income_columns(self):
        """Test income is written with source, amount and frequency as entered."""
        user = uuid4()
        incomes = [
            Income(
                user_id=user,
                source="Salary",
                raw_amount=MonetaryAmount(value=2500, frequency=parse_frequency("biweekly")),
            ),
            Income(
                user_id=user,
                source="Tutoring, weekends",
                raw_amount=MonetaryAmount(value=120.5, frequency=parse_frequency("every 2 weeks")),
            ),
        ]
        lines = export_income_rows(incomes).splitlines()
        assert lines == [
            "Source,Amount,Frequency",
            "Salary,2500,biweekly",
            '"Tutoring, weekends",120.5,every 2 weeks',
        ]

    def test_no_income_writes_header_only(self):
        """Test an empty list still produces the header."""
        assert export_income_rows([]) == "Source,Amount,Frequency\n"
