"""
Expense Aggregation

Folds expenses and incomes into dashboard totals at any display frequency.

GUARANTEES:
- Never raises on missing data: an expense with no account, category or
  split rows simply contributes nothing to that dimension
- Expenses the viewer only knows through a pending proposal are listed
  elsewhere but never counted
- Every ratio approximation goes through one named, logged code path
"""

from typing import Iterable, Mapping, NamedTuple, Optional, Sequence, Union
from uuid import UUID

import structlog

from pay_allocator.config import get_settings
from pay_allocator.engine.frequency import FrequencyLike, as_frequency, convert, display_name
from pay_allocator.models.finance import (
    Account,
    AwaitingProposal,
    BreakdownEntry,
    Category,
    DashboardSummary,
    Expense,
    Income,
    Settled,
)


logger = structlog.get_logger(__name__)

ExpenseLike = Union[Expense, Settled, AwaitingProposal]
BreakdownRow = tuple[Optional[UUID], str, float]


class RatioLookup(NamedTuple):
    """A split ratio and whether it had to be approximated."""
    ratio: float
    approximate: bool


def settled_expenses(expenses: Iterable[ExpenseLike]) -> list[Expense]:
    """Expenses that count towards totals; bare Expense objects count as settled."""
    result = []
    for item in expenses:
        if isinstance(item, AwaitingProposal):
            continue
        result.append(item.expense if isinstance(item, Settled) else item)
    return result


def approximate_ratio_fallback(expense: Expense, user_id: UUID) -> RatioLookup:
    """
    Best-effort ratio for a user with no split row of their own.

    Happens when a co-owner's expense is viewed before this user's row
    exists. The first available split is used so totals stay continuous.
    """
    ratio = expense.splits[0].ratio
    logger.info(
        "approximate_ratio_fallback",
        expense_id=str(expense.id),
        user_id=str(user_id),
        borrowed_from=str(expense.splits[0].user_id),
        ratio=ratio,
    )
    return RatioLookup(ratio=ratio, approximate=True)


def resolve_ratio(expense: Expense, user_id: UUID) -> RatioLookup:
    """Look up a user's ratio, recording whether the fallback was needed."""
    split = expense.split_for(user_id)
    if split is not None:
        return RatioLookup(ratio=split.ratio, approximate=False)
    if not expense.splits:
        return RatioLookup(ratio=0.0, approximate=False)
    return approximate_ratio_fallback(expense, user_id)


def split_ratio_for(expense: Expense, user_id: UUID) -> float:
    return resolve_ratio(expense, user_id).ratio


def _nonzero(rows: list[BreakdownRow]) -> list[BreakdownRow]:
    return [row for row in rows if row[2] > 0]


def _percentages(rows: list[BreakdownRow], total: float) -> list[BreakdownEntry]:
    rows = sorted(rows, key=lambda row: row[2], reverse=True)
    return [
        BreakdownEntry(
            entity_id=entity_id,
            name=name,
            amount=amount,
            percentage_of_total=(amount / total * 100) if total > 0 else 0.0,
        )
        for entity_id, name, amount in rows
    ]


class ExpenseAggregator:
    """
    Computes dashboard figures from in-memory snapshots.

    Holds only configuration; every method is a function of its arguments.
    """

    def __init__(self, participant_min_ratio: Optional[float] = None):
        if participant_min_ratio is None:
            participant_min_ratio = get_settings().app.participant_min_ratio
        self._participant_min_ratio = participant_min_ratio

    def total_at_frequency(
        self,
        expenses: Iterable[ExpenseLike],
        target: FrequencyLike,
    ) -> float:
        """Gross total of all settled expenses at the target frequency."""
        target_freq = as_frequency(target)
        return sum(
            convert(e.raw_amount.value, e.raw_amount.frequency, target_freq)
            for e in settled_expenses(expenses)
        )

    def user_share_total(
        self,
        expenses: Iterable[ExpenseLike],
        user_id: UUID,
        target: FrequencyLike,
    ) -> float:
        """The user's share of settled expenses."""
        return self._share(settled_expenses(expenses), user_id, as_frequency(target))

    def total_for_account(
        self,
        expenses: Iterable[ExpenseLike],
        account_id: UUID,
        user_id: UUID,
        target: FrequencyLike,
    ) -> float:
        matching = [e for e in settled_expenses(expenses) if e.account_id == account_id]
        return self._share(matching, user_id, as_frequency(target))

    def total_for_category(
        self,
        expenses: Iterable[ExpenseLike],
        category_id: UUID,
        user_id: UUID,
        target: FrequencyLike,
    ) -> float:
        matching = [e for e in settled_expenses(expenses) if e.category_id == category_id]
        return self._share(matching, user_id, as_frequency(target))

    def total_income(
        self,
        incomes: Iterable[Income],
        user_id: UUID,
        target: FrequencyLike,
    ) -> float:
        target_freq = as_frequency(target)
        return sum(
            convert(i.raw_amount.value, i.raw_amount.frequency, target_freq)
            for i in incomes
            if i.user_id == user_id
        )

    def account_breakdown(
        self,
        expenses: Iterable[ExpenseLike],
        accounts: Sequence[Account],
        user_id: UUID,
        target: FrequencyLike,
    ) -> list[BreakdownEntry]:
        """User's share per account, largest first. Accounts with nothing spent are skipped."""
        settled = settled_expenses(expenses)
        rows = _nonzero([
            (account.id, account.name, self.total_for_account(settled, account.id, user_id, target))
            for account in accounts
        ])
        return _percentages(rows, sum(row[2] for row in rows))

    def category_breakdown(
        self,
        expenses: Iterable[ExpenseLike],
        categories: Sequence[Category],
        user_id: UUID,
        target: FrequencyLike,
    ) -> list[BreakdownEntry]:
        """User's share per category, largest first. Empty categories are skipped."""
        settled = settled_expenses(expenses)
        rows = _nonzero([
            (category.id, category.name, self.total_for_category(settled, category.id, user_id, target))
            for category in categories
        ])
        return _percentages(rows, sum(row[2] for row in rows))

    def split_participant_breakdown(
        self,
        expenses: Iterable[ExpenseLike],
        target: FrequencyLike,
        names: Optional[Mapping[UUID, str]] = None,
    ) -> list[BreakdownEntry]:
        """
        How the household total divides between people.

        Only materialised split rows above the minimum ratio count; the
        percentage is relative to the gross expense total.
        """
        target_freq = as_frequency(target)
        names = names or {}
        settled = settled_expenses(expenses)
        shares: dict[UUID, float] = {}
        for expense in settled:
            amount = convert(expense.raw_amount.value, expense.raw_amount.frequency, target_freq)
            for split in expense.splits:
                if split.ratio > self._participant_min_ratio:
                    shares[split.user_id] = shares.get(split.user_id, 0.0) + amount * split.ratio
        rows = [
            (user_id, names.get(user_id, str(user_id)), amount)
            for user_id, amount in shares.items()
        ]
        return _percentages(rows, self.total_at_frequency(settled, target_freq))

    def aggregate(
        self,
        expenses: Iterable[ExpenseLike],
        incomes: Iterable[Income],
        target: FrequencyLike,
        user_id: UUID,
        accounts: Sequence[Account] = (),
        categories: Sequence[Category] = (),
        names: Optional[Mapping[UUID, str]] = None,
    ) -> DashboardSummary:
        """Every dashboard figure in one pass over the snapshot."""
        target_freq = as_frequency(target)
        settled = settled_expenses(expenses)
        total_income = self.total_income(incomes, user_id, target_freq)
        share = self.user_share_total(settled, user_id, target_freq)

        return DashboardSummary(
            display_frequency=display_name(target_freq),
            total_income=total_income,
            total_expenses=share,
            household_total=self.total_at_frequency(settled, target_freq),
            user_share_total=share,
            net_remaining=total_income - share,
            by_account=self.account_breakdown(settled, accounts, user_id, target_freq),
            by_category=self.category_breakdown(settled, categories, user_id, target_freq),
            by_split_participant=self.split_participant_breakdown(settled, target_freq, names),
        )

    def _share(self, expenses: Sequence[Expense], user_id: UUID, target_freq) -> float:
        return sum(
            convert(e.raw_amount.value, e.raw_amount.frequency, target_freq)
            * split_ratio_for(e, user_id)
            for e in expenses
        )
