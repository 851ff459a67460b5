"""Tests for expense validation."""

from uuid import uuid4

import pytest

from pay_allocator.models.finance import Account, ExpenseDraft, SplitPolicyType
from pay_allocator.validation import (
    ExpenseValidator,
    InvalidRatioError,
    ValidationFailedError,
    raise_for_errors,
)


@pytest.fixture
def validator():
    return ExpenseValidator(max_expense_amount=10000, ratio_tolerance=0.01)


class TestSchemaStage:
    """Tests for required fields and ranges."""

    def test_valid_draft(self, validator):
        """Test a complete draft passes without warnings."""
        result = validator.validate(ExpenseDraft(name="Rent", amount=2000, frequency="monthly"))
        assert result.is_valid is True
        assert result.issues == []

    def test_missing_name_and_bad_amount(self, validator):
        """Test each schema problem is reported."""
        result = validator.validate(ExpenseDraft(name="  ", amount=0, frequency="monthly"))
        assert result.is_valid is False
        assert {i.field for i in result.issues} == {"name", "amount"}

    def test_custom_ratio_out_of_range(self, validator):
        """Test custom ratios outside 0-1 are errors."""
        draft = ExpenseDraft(
            name="Rent",
            amount=100,
            frequency="monthly",
            split_policy=SplitPolicyType.PER_DOLLAR_CUSTOM,
            custom_ratios={uuid4(): 1.5},
        )
        result = validator.validate(draft)
        assert result.first_error.field == "custom_ratios"

    def test_semantic_stage_skipped_on_schema_errors(self, validator):
        """Test semantic warnings are not produced when the schema fails."""
        result = validator.validate(ExpenseDraft(name="", amount=50000, frequency="whenever"))
        assert [i.field for i in result.issues] == ["name"]


class TestSemanticStage:
    """Tests for suspicious but saveable drafts."""

    def test_large_amount_warns(self, validator):
        """Test amounts above the threshold produce a warning."""
        result = validator.validate(ExpenseDraft(name="Car", amount=50000, frequency="yearly"))
        assert result.is_valid is True
        assert len(result.warnings) == 1

    def test_unparseable_frequency_warns(self, validator):
        """Test a frequency that falls back to monthly is flagged."""
        result = validator.validate(ExpenseDraft(name="Gym", amount=20, frequency="every other tuesday"))
        assert result.is_valid is True
        assert result.issues[0].field == "frequency"

    def test_custom_ratios_not_summing_warn(self, validator):
        """Test custom splits that miss 100% are flagged."""
        draft = ExpenseDraft(
            name="Rent",
            amount=100,
            frequency="monthly",
            split_policy=SplitPolicyType.PER_DOLLAR_CUSTOM,
            custom_ratios={uuid4(): 0.5, uuid4(): 0.3},
        )
        result = validator.validate(draft)
        assert result.is_valid is True
        assert result.issues[0].issue_type == "inconsistent"

    def test_unknown_account(self, validator):
        """Test a draft naming an account that was not found is an error."""
        draft = ExpenseDraft(name="Rent", amount=100, frequency="monthly", account_id=uuid4())
        result = validator.validate(draft, account=None)
        assert result.first_error.field == "account_id"

    def test_actor_must_own_account(self, validator):
        """Test only owners may put an expense on an account."""
        account = Account(name="Theirs", owner_ids={uuid4()})
        draft = ExpenseDraft(name="Rent", amount=100, frequency="monthly", account_id=account.id)
        result = validator.validate(draft, account=account, actor_id=uuid4())
        assert result.first_error.issue_type == "not_owner"


class TestErrors:
    """Tests for the validation error types."""

    def test_raise_for_errors(self, validator):
        """Test the first error becomes a ValidationFailedError."""
        result = validator.validate(ExpenseDraft(name="Rent", amount=-1, frequency="monthly"))
        with pytest.raises(ValidationFailedError) as exc_info:
            raise_for_errors(result)
        assert exc_info.value.field == "amount"
        assert exc_info.value.result is result

    def test_warnings_do_not_raise(self, validator):
        """Test warnings alone pass through."""
        raise_for_errors(validator.validate(ExpenseDraft(name="Car", amount=50000, frequency="yearly")))

    def test_invalid_ratio_is_a_validation_error(self):
        """Test InvalidRatioError carries the suggested_ratio field."""
        error = InvalidRatioError(1.2)
        assert isinstance(error, ValidationFailedError)
        assert error.field == "suggested_ratio"

    def test_user_friendly_summary(self, validator):
        """Test the summary lists errors and fixes."""
        result = validator.validate(ExpenseDraft(name="", amount=10, frequency="monthly"))
        summary = validator.get_user_friendly_summary(result)
        assert "cannot be saved" in summary
        assert "Expense name is required" in summary
