"""Tests for expense aggregation."""

import pytest
from uuid import uuid4

from pay_allocator.engine.aggregator import (
    ExpenseAggregator,
    resolve_ratio,
    settled_expenses,
    split_ratio_for,
)
from pay_allocator.engine.frequency import parse_frequency
from pay_allocator.models.finance import (
    Account,
    AwaitingProposal,
    Category,
    Expense,
    ExpenseSplit,
    Income,
    MonetaryAmount,
    Settled,
    SplitProposal,
)


U1, U2 = uuid4(), uuid4()


def make_expense(amount, frequency="monthly", ratios=None, account_id=None, category_id=None):
    expense = Expense(
        name="Expense",
        raw_amount=MonetaryAmount(value=amount, frequency=parse_frequency(frequency)),
        account_id=account_id,
        category_id=category_id,
        created_by=U1,
    )
    expense.splits = [
        ExpenseSplit(expense_id=expense.id, user_id=user, ratio=ratio)
        for user, ratio in (ratios or {}).items()
    ]
    return expense


def make_income(amount, frequency="monthly", user_id=U1):
    return Income(
        user_id=user_id,
        source="Salary",
        raw_amount=MonetaryAmount(value=amount, frequency=parse_frequency(frequency)),
    )


@pytest.fixture
def aggregator():
    return ExpenseAggregator(participant_min_ratio=0.001)


class TestRatioResolution:
    """Tests for looking up a user's split ratio."""

    def test_own_row(self):
        """Test the user's own row is used."""
        expense = make_expense(100, ratios={U1: 0.25, U2: 0.75})
        lookup = resolve_ratio(expense, U2)
        assert lookup.ratio == 0.75
        assert lookup.approximate is False

    def test_missing_row_uses_first_split(self):
        """Test the approximation path borrows the first split."""
        expense = make_expense(100, ratios={U2: 0.4})
        lookup = resolve_ratio(expense, U1)
        assert lookup.ratio == 0.4
        assert lookup.approximate is True

    def test_no_splits_contributes_zero(self):
        """Test an expense without split rows counts as zero."""
        assert split_ratio_for(make_expense(100), U1) == 0.0


class TestTotals:
    """Tests for totals at a display frequency."""

    def test_empty_inputs_are_zero(self, aggregator):
        """Test aggregation over nothing returns zeros."""
        summary = aggregator.aggregate([], [], "monthly", U1)
        assert summary.total_income == 0
        assert summary.total_expenses == 0
        assert summary.user_share_total == 0
        assert summary.net_remaining == 0
        assert summary.by_account == []
        assert summary.by_split_participant == []

    def test_total_at_frequency_converts(self, aggregator):
        """Test gross totals convert each expense."""
        expenses = [make_expense(100, "weekly"), make_expense(1200, "yearly")]
        assert aggregator.total_at_frequency(expenses, "monthly") == pytest.approx(434.524 + 100)

    def test_awaiting_proposal_is_excluded(self, aggregator):
        """Test expenses known only through a pending proposal do not count."""
        pending = make_expense(500, ratios={U2: 0.5})
        proposal = SplitProposal(
            expense_id=pending.id,
            from_user=U2,
            to_user=U1,
            suggested_ratio=0.5,
            suggested_amount=250,
        )
        views = [
            Settled(expense=make_expense(100, ratios={U1: 1.0})),
            AwaitingProposal(expense=pending, proposal=proposal),
        ]
        assert len(settled_expenses(views)) == 1
        assert aggregator.total_at_frequency(views, "monthly") == 100
        assert aggregator.user_share_total(views, U1, "monthly") == 100

    def test_user_share(self, aggregator):
        """Test each expense is weighted by the user's ratio."""
        expenses = [
            make_expense(2000, ratios={U1: 0.5, U2: 0.5}),
            make_expense(100, ratios={U1: 1.0}),
        ]
        assert aggregator.user_share_total(expenses, U1, "monthly") == pytest.approx(1100)

    def test_income_filtered_by_user(self, aggregator):
        """Test only the user's own income is counted."""
        incomes = [make_income(3000), make_income(5000, user_id=U2)]
        assert aggregator.total_income(incomes, U1, "monthly") == 3000


class TestBreakdowns:
    """Tests for per-account, per-category and per-person breakdowns."""

    def test_account_breakdown_sorted_with_percentages(self, aggregator):
        """Test accounts are ordered by amount and percentages sum to 100."""
        joint = Account(name="Joint", owner_ids={U1, U2})
        personal = Account(name="Personal", owner_ids={U1})
        expenses = [
            make_expense(2000, ratios={U1: 0.5, U2: 0.5}, account_id=joint.id),
            make_expense(3000, ratios={U1: 1.0}, account_id=personal.id),
            make_expense(999, ratios={U1: 1.0}),
        ]
        rows = aggregator.account_breakdown(expenses, [joint, personal], U1, "monthly")
        assert [r.name for r in rows] == ["Personal", "Joint"]
        assert rows[0].amount == 3000
        assert rows[1].amount == 1000
        assert rows[0].percentage_of_total == pytest.approx(75)
        assert sum(r.percentage_of_total for r in rows) == pytest.approx(100)

    def test_empty_category_skipped(self, aggregator):
        """Test categories with nothing spent are left out."""
        utilities = Category(name="Utilities")
        housing = Category(name="Housing")
        expenses = [make_expense(500, ratios={U1: 1.0}, category_id=housing.id)]
        rows = aggregator.category_breakdown(expenses, [utilities, housing], U1, "monthly")
        assert [r.name for r in rows] == ["Housing"]
        assert rows[0].percentage_of_total == pytest.approx(100)

    def test_account_without_user_share_skipped(self, aggregator):
        """Test an account whose expenses give the user no share is left out."""
        joint = Account(name="Joint", owner_ids={U1, U2})
        empty = Account(name="Savings", owner_ids={U1})
        expenses = [make_expense(800, ratios={U1: 0.0, U2: 1.0}, account_id=joint.id)]
        assert aggregator.account_breakdown(expenses, [joint, empty], U1, "monthly") == []

    def test_split_participants(self, aggregator):
        """Test per-person shares skip negligible ratios."""
        expenses = [
            make_expense(1000, ratios={U1: 0.6, U2: 0.4}),
            make_expense(100, ratios={U1: 1.0, U2: 0.0}),
        ]
        rows = aggregator.split_participant_breakdown(expenses, "monthly", names={U1: "Ana"})
        assert [r.entity_id for r in rows] == [U1, U2]
        assert rows[0].name == "Ana"
        assert rows[0].amount == pytest.approx(700)
        assert rows[1].amount == pytest.approx(400)
        assert rows[1].percentage_of_total == pytest.approx(400 / 1100 * 100)


class TestAggregate:
    """Tests for the full dashboard summary."""

    def test_net_remaining_uses_user_share(self, aggregator):
        """Test total expenses is the user's share and net remaining follows from it."""
        expenses = [make_expense(2000, ratios={U1: 0.5, U2: 0.5})]
        summary = aggregator.aggregate(expenses, [make_income(4000)], "monthly", U1)
        assert summary.total_expenses == 1000
        assert summary.household_total == 2000
        assert summary.user_share_total == 1000
        assert summary.net_remaining == 3000
        assert summary.total_income - summary.total_expenses == summary.net_remaining
        assert summary.display_frequency == "Monthly"

    def test_display_frequency_conversion(self, aggregator):
        """Test figures are expressed at the chosen frequency."""
        expenses = [make_expense(2000, ratios={U1: 1.0})]
        summary = aggregator.aggregate(expenses, [], "yearly", U1)
        assert summary.total_expenses == pytest.approx(24000)
        assert summary.household_total == pytest.approx(24000)
        assert summary.display_frequency == "Yearly"
