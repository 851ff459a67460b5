"""
Core Data Models for Pay Period Allocator

These models define the schemas for all data flowing through the engine.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Make implicit states explicit (tagged unions instead of marker fields)

DESIGN DECISION: Amounts are floats. Every comparison the engine makes is
tolerance based (0.01 dollars, 1e-9 relative) so Decimal would buy nothing
while forcing conversions at every frequency factor.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class FrequencyPeriod(str, Enum):
    """Fixed calendar recurrences."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class FrequencyUnit(str, Enum):
    """Units allowed in an "every N units" recurrence."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def fixed_period(self) -> FrequencyPeriod:
        """The fixed recurrence of a single unit (1 week -> weekly)."""
        return _UNIT_PERIODS[self]


_UNIT_PERIODS = {
    FrequencyUnit.DAY: FrequencyPeriod.DAILY,
    FrequencyUnit.WEEK: FrequencyPeriod.WEEKLY,
    FrequencyUnit.MONTH: FrequencyPeriod.MONTHLY,
    FrequencyUnit.YEAR: FrequencyPeriod.YEARLY,
}

# Average occurrences per month
MONTHLY_FACTORS: dict[FrequencyPeriod, float] = {
    FrequencyPeriod.DAILY: 30.4375,
    FrequencyPeriod.WEEKLY: 4.34524,
    FrequencyPeriod.BIWEEKLY: 2.17262,
    FrequencyPeriod.MONTHLY: 1.0,
    FrequencyPeriod.QUARTERLY: 1 / 3,
    FrequencyPeriod.YEARLY: 1 / 12,
}


class AccountType(str, Enum):
    """Kinds of account an expense can be paid from."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"
    OTHER = "other"


class SplitPolicyType(str, Enum):
    """
    How an expense is divided between participants.

    Older records and CSV files use "me" and "custom"; those spellings
    resolve to the canonical members.
    """
    EQUAL = "equal"
    SOLELY_MINE = "solely_mine"
    PER_DOLLAR_CUSTOM = "per_dollar_custom"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_").replace(" ", "_")
            aliases = {
                "me": cls.SOLELY_MINE,
                "just_me": cls.SOLELY_MINE,
                "solely_mine": cls.SOLELY_MINE,
                "custom": cls.PER_DOLLAR_CUSTOM,
                "per_dollar": cls.PER_DOLLAR_CUSTOM,
                "per_dollar_custom": cls.PER_DOLLAR_CUSTOM,
                "equal": cls.EQUAL,
            }
            return aliases.get(key)
        return None


class ProposalStatus(str, Enum):
    """
    Split proposal lifecycle.

    PENDING is the only non-terminal state. SUPERSEDED is the soft-delete
    applied when the same proposer sends a newer proposal for the same
    expense and addressee.
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"

    @property
    def is_terminal(self) -> bool:
        return self is not ProposalStatus.PENDING


# =============================================================================
# FREQUENCY & MONEY
# =============================================================================

class FixedFrequency(BaseModel):
    """A calendar recurrence such as weekly or quarterly."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["fixed"] = "fixed"
    period: FrequencyPeriod

    @property
    def monthly_factor(self) -> float:
        return MONTHLY_FACTORS[self.period]

    @property
    def descriptor(self) -> str:
        return self.period.value


class CustomFrequency(BaseModel):
    """
    An "every N units" recurrence.

    The monthly factor is the single-unit factor divided by the count, so
    "every 2 weeks" is weekly / 2.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["custom"] = "custom"
    count: int = Field(
        ...,
        gt=0,
        description="Number of units between occurrences"
    )
    unit: FrequencyUnit

    @property
    def monthly_factor(self) -> float:
        return MONTHLY_FACTORS[self.unit.fixed_period] / self.count

    @property
    def unit_label(self) -> str:
        return self.unit.value if self.count == 1 else f"{self.unit.value}s"

    @property
    def descriptor(self) -> str:
        return f"every {self.count} {self.unit_label}"


Frequency = Annotated[
    Union[FixedFrequency, CustomFrequency],
    Field(discriminator="kind"),
]


class MonetaryAmount(BaseModel):
    """An amount paid or received at a given frequency."""
    model_config = ConfigDict(frozen=True)

    value: float
    frequency: Frequency


# =============================================================================
# HOUSEHOLD ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    An account expenses are allocated to.

    An account with more than one owner is joint; only joint accounts
    produce split proposals.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    type: AccountType = AccountType.OTHER
    owner_ids: set[UUID] = Field(
        ...,
        min_length=1,
        description="Users who own the account (never empty)"
    )

    @property
    def is_joint(self) -> bool:
        return len(self.owner_ids) > 1

    def is_owner(self, user_id: UUID) -> bool:
        return user_id in self.owner_ids


class Category(BaseModel):
    """Free-form expense category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)


class ExpenseSplit(BaseModel):
    """
    One user's share of one expense.

    CRITICAL: Only the row's own user may write it. Rows for other users
    are changed through split proposals.
    """

    id: UUID = Field(default_factory=uuid4)
    expense_id: UUID
    user_id: UUID
    ratio: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Fraction of the expense attributed to the user"
    )


class Expense(BaseModel):
    """
    A recurring expense.

    The splits visible to one user need not sum to 1: each participant
    owns their own row and may not have materialised it yet.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    raw_amount: MonetaryAmount
    account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    created_by: UUID
    splits: list[ExpenseSplit] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def split_for(self, user_id: UUID) -> Optional[ExpenseSplit]:
        for split in self.splits:
            if split.user_id == user_id:
                return split
        return None


class Income(BaseModel):
    """A recurring income stream belonging to one user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    source: str = Field(..., min_length=1, max_length=200)
    raw_amount: MonetaryAmount
    created_at: datetime = Field(default_factory=_utcnow)


class SplitProposal(BaseModel):
    """
    A request from one co-owner asking another to adopt a split ratio.

    Accepting writes the addressee's own ExpenseSplit row; rejecting only
    records the decision.
    """

    id: UUID = Field(default_factory=uuid4)
    expense_id: UUID
    from_user: UUID
    to_user: UUID
    suggested_ratio: float = Field(..., ge=0.0, le=1.0)
    suggested_amount: float = Field(..., ge=0.0)
    status: ProposalStatus = ProposalStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# EXPENSE VIEWS - what one user sees of an expense
# =============================================================================

class Settled(BaseModel):
    """An expense the viewing user has a materialised split row for (or owns outright)."""

    kind: Literal["settled"] = "settled"
    expense: Expense


class AwaitingProposal(BaseModel):
    """
    An expense the viewing user only knows about through a pending proposal.

    It is listed so the user can act on it, but it is left out of totals
    until the proposal is accepted.
    """

    kind: Literal["awaiting_proposal"] = "awaiting_proposal"
    expense: Expense
    proposal: SplitProposal


ExpenseView = Annotated[
    Union[Settled, AwaitingProposal],
    Field(discriminator="kind"),
]


# =============================================================================
# SPLIT & DASHBOARD RESULTS
# =============================================================================

class SplitAllocation(BaseModel):
    """
    Result of a split computation.

    unallocated is the dollar amount that could not be distributed
    (every other participant locked, or clamped at zero). It is reported,
    never silently folded into someone's share.
    """

    ratios: dict[UUID, float] = Field(default_factory=dict)
    amounts: dict[UUID, float] = Field(default_factory=dict)
    unallocated: float = 0.0

    @property
    def is_reconciled(self) -> bool:
        return self.unallocated == 0.0

    @property
    def ratio_total(self) -> float:
        return sum(self.ratios.values())


class BreakdownEntry(BaseModel):
    """One row of a dashboard breakdown."""

    entity_id: Optional[UUID] = None
    name: str
    amount: float
    percentage_of_total: float = Field(
        ...,
        ge=0.0,
        description="Share of the breakdown total, 0-100"
    )


class DashboardSummary(BaseModel):
    """Everything the dashboard shows, expressed at one display frequency."""

    display_frequency: str
    total_income: float = 0.0
    total_expenses: float = Field(
        default=0.0,
        description="The viewing user's share of settled expenses"
    )
    household_total: float = Field(
        default=0.0,
        description="Gross total of settled expenses across all owners"
    )
    user_share_total: float = Field(
        default=0.0,
        description="Same as total_expenses"
    )
    net_remaining: float = 0.0
    by_account: list[BreakdownEntry] = Field(default_factory=list)
    by_category: list[BreakdownEntry] = Field(default_factory=list)
    by_split_participant: list[BreakdownEntry] = Field(default_factory=list)


class ExpenseDraft(BaseModel):
    """
    An expense as entered by a user, before validation.

    Amount and frequency are kept raw so validation can report exactly
    which field was wrong.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[UUID] = None
    name: str = ""
    amount: float
    frequency: str
    account_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    split_policy: SplitPolicyType = SplitPolicyType.EQUAL
    custom_ratios: Optional[dict[UUID, float]] = None


class SessionState(BaseModel):
    """
    Snapshot of one user's household data.

    Owned by the session that loaded it; reloaded after every write
    instead of being patched optimistically.
    """

    user_id: UUID
    accounts: list[Account] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    expenses: list[ExpenseView] = Field(default_factory=list)
    incomes: list[Income] = Field(default_factory=list)
    loaded_at: datetime = Field(default_factory=_utcnow)

    def account_by_id(self, account_id: Optional[UUID]) -> Optional[Account]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def category_by_id(self, category_id: Optional[UUID]) -> Optional[Category]:
        return next((c for c in self.categories if c.id == category_id), None)

    def expense_by_id(self, expense_id: UUID) -> Optional[Expense]:
        return next(
            (view.expense for view in self.expenses if view.expense.id == expense_id),
            None,
        )


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Result of validating a draft before anything is written."""

    validated_at: datetime = Field(default_factory=_utcnow)
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def first_error(self) -> Optional[ValidationIssue]:
        return next((i for i in self.issues if i.severity == "error"), None)
