"""
Tests for Pay Period Allocator

Test strategy:
1. Unit tests for individual components (models, engine, validators)
2. Integration tests for flows against the in-memory record store
3. No real API calls in tests (Google Sheets is faked)
"""

import pytest
from uuid import uuid4

from pydantic import TypeAdapter

from pay_allocator.models.finance import (
    Account,
    AwaitingProposal,
    CustomFrequency,
    Expense,
    ExpenseSplit,
    ExpenseView,
    FixedFrequency,
    FrequencyPeriod,
    FrequencyUnit,
    MonetaryAmount,
    ProposalStatus,
    Settled,
    SplitAllocation,
    SplitPolicyType,
    SplitProposal,
    ValidationIssue,
    ValidationResult,
)
from pay_allocator.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def _expense(**overrides) -> Expense:
    fields = dict(
        name="Rent",
        raw_amount=MonetaryAmount(
            value=2000,
            frequency=FixedFrequency(period=FrequencyPeriod.MONTHLY),
        ),
        created_by=uuid4(),
    )
    fields.update(overrides)
    return Expense(**fields)


class TestFrequencyModels:
    """Tests for the frequency variants."""

    def test_fixed_frequency_factor(self):
        """Test fixed frequencies expose their monthly factor."""
        weekly = FixedFrequency(period=FrequencyPeriod.WEEKLY)
        assert weekly.monthly_factor == 4.34524
        assert weekly.descriptor == "weekly"

    def test_custom_frequency_divides_unit_factor(self):
        """Test custom frequency factor is the unit factor over the count."""
        freq = CustomFrequency(count=10, unit=FrequencyUnit.DAY)
        assert freq.monthly_factor == pytest.approx(3.04375)
        assert freq.descriptor == "every 10 days"

    def test_custom_frequency_singular_unit(self):
        """Test a count of one keeps the unit singular."""
        assert CustomFrequency(count=1, unit=FrequencyUnit.WEEK).descriptor == "every 1 week"

    def test_custom_frequency_rejects_zero_count(self):
        """Test the count must be positive."""
        with pytest.raises(ValueError):
            CustomFrequency(count=0, unit=FrequencyUnit.DAY)

    def test_frequencies_are_immutable(self):
        """Test frequency models are frozen."""
        freq = FixedFrequency(period=FrequencyPeriod.MONTHLY)
        with pytest.raises(ValueError):
            freq.period = FrequencyPeriod.YEARLY

    def test_monetary_amount_discriminates_frequency(self):
        """Test the kind tag selects the right frequency variant."""
        amount = MonetaryAmount.model_validate(
            {"value": 50, "frequency": {"kind": "custom", "count": 3, "unit": "month"}}
        )
        assert isinstance(amount.frequency, CustomFrequency)
        assert amount.frequency.count == 3


class TestHouseholdModels:
    """Tests for accounts, expenses and splits."""

    def test_account_is_joint_with_two_owners(self):
        """Test accounts with more than one owner are joint."""
        u1, u2 = uuid4(), uuid4()
        account = Account(name="Joint", owner_ids={u1, u2})
        assert account.is_joint is True
        assert account.is_owner(u2)

    def test_account_requires_an_owner(self):
        """Test an account cannot have zero owners."""
        with pytest.raises(ValueError):
            Account(name="Orphan", owner_ids=set())

    def test_account_strips_whitespace(self):
        """Test that whitespace is stripped from account names."""
        account = Account(name="  Checking  ", owner_ids={uuid4()})
        assert account.name == "Checking"

    def test_split_ratio_bounds(self):
        """Test split ratios must be within 0-1."""
        with pytest.raises(ValueError):
            ExpenseSplit(expense_id=uuid4(), user_id=uuid4(), ratio=1.5)

    def test_split_for_finds_user_row(self):
        """Test Expense.split_for returns only that user's row."""
        expense = _expense()
        u1, u2 = uuid4(), uuid4()
        expense.splits = [
            ExpenseSplit(expense_id=expense.id, user_id=u1, ratio=0.3),
            ExpenseSplit(expense_id=expense.id, user_id=u2, ratio=0.7),
        ]
        assert expense.split_for(u2).ratio == 0.7
        assert expense.split_for(uuid4()) is None

    def test_split_policy_aliases(self):
        """Test legacy policy spellings resolve to canonical members."""
        assert SplitPolicyType("me") is SplitPolicyType.SOLELY_MINE
        assert SplitPolicyType("custom") is SplitPolicyType.PER_DOLLAR_CUSTOM
        assert SplitPolicyType("Solely-Mine") is SplitPolicyType.SOLELY_MINE

    def test_proposal_defaults_to_pending(self):
        """Test new proposals start pending."""
        proposal = SplitProposal(
            expense_id=uuid4(),
            from_user=uuid4(),
            to_user=uuid4(),
            suggested_ratio=0.5,
            suggested_amount=1000,
        )
        assert proposal.status is ProposalStatus.PENDING
        assert proposal.status.is_terminal is False
        assert ProposalStatus.SUPERSEDED.is_terminal is True


class TestExpenseViews:
    """Tests for the Settled / AwaitingProposal tagged union."""

    def test_view_union_parses_by_kind(self):
        """Test the discriminator picks the view type."""
        expense = _expense()
        proposal = SplitProposal(
            expense_id=expense.id,
            from_user=expense.created_by,
            to_user=uuid4(),
            suggested_ratio=0.5,
            suggested_amount=1000,
        )
        adapter = TypeAdapter(ExpenseView)
        awaiting = adapter.validate_python(
            AwaitingProposal(expense=expense, proposal=proposal).model_dump()
        )
        settled = adapter.validate_python(Settled(expense=expense).model_dump())
        assert isinstance(awaiting, AwaitingProposal)
        assert isinstance(settled, Settled)


class TestSplitAllocation:
    """Tests for SplitAllocation helpers."""

    def test_reconciled_when_nothing_unallocated(self):
        """Test is_reconciled and ratio_total."""
        u1, u2 = uuid4(), uuid4()
        allocation = SplitAllocation(ratios={u1: 0.4, u2: 0.6}, amounts={u1: 40, u2: 60})
        assert allocation.is_reconciled is True
        assert allocation.ratio_total == pytest.approx(1.0)

    def test_not_reconciled_with_remainder(self):
        """Test a remainder is reported."""
        allocation = SplitAllocation(unallocated=12.5)
        assert allocation.is_reconciled is False


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_SAVED,
            description="Expense saved",
        )
        assert event.event_type == AuditEventType.EXPENSE_SAVED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.PROPOSAL_CREATED,
            description="Split proposed",
            details={"suggested_ratio": 0.5},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "proposal_created"
        assert log_dict["details"]["suggested_ratio"] == 0.5

    def test_audit_event_to_record(self):
        """Test conversion to an audit_log record keyed by event id."""
        event = AuditEvent(
            event_type=AuditEventType.SPLIT_SAVED,
            description="Split saved",
        )
        record = event.to_record()
        assert record["id"] == str(event.event_id)
        assert record["event_type"] == "split_saved"

    def test_audit_event_builder_proposal_created(self):
        """Test AuditEventBuilder.proposal_created."""
        correlation_id = uuid4()
        proposal_id = uuid4()
        from_user = uuid4()

        event = AuditEventBuilder.proposal_created(
            proposal_id=proposal_id,
            expense_id=uuid4(),
            from_user=from_user,
            to_user=uuid4(),
            ratio=0.5,
            amount=1000,
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.PROPOSAL_CREATED
        assert event.entity_id == proposal_id
        assert event.actor_id == from_user
        assert event.correlation_id == correlation_id

    def test_audit_event_builder_proposal_decided(self):
        """Test accepted and rejected decisions map to distinct types."""
        accepted = AuditEventBuilder.proposal_decided(uuid4(), True, uuid4(), 0.5)
        rejected = AuditEventBuilder.proposal_decided(uuid4(), False, uuid4(), 0.5)
        assert accepted.event_type == AuditEventType.PROPOSAL_ACCEPTED
        assert rejected.event_type == AuditEventType.PROPOSAL_REJECTED

    def test_refusals_are_warnings(self):
        """Test refused events carry the reason."""
        event = AuditEventBuilder.refused(
            AuditEventType.AUTHORIZATION_DENIED, "account", uuid4(), uuid4(), "not an owner",
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "not an owner"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.first_error.field == "amount"

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message="Amount seems unusually high",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.first_error is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
