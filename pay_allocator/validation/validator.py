"""
Two-Stage Expense Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Amount sign
- Ratio range
- This catches malformed form input and CSV rows

STAGE 2 - SEMANTIC VALIDATION:
- Absurd amount detection
- Frequency descriptors that only parse through the monthly fallback
- Custom ratios that do not add up to the whole expense
- Account references the session does not know about
- This catches logically suspicious data

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; errors abort the write before anything is stored.
"""

from typing import Optional
from uuid import UUID

from pay_allocator.config import get_settings
from pay_allocator.engine.frequency import FrequencyParseError, parse_frequency
from pay_allocator.models.finance import (
    Account,
    ExpenseDraft,
    SplitPolicyType,
    ValidationIssue,
    ValidationResult,
)


class ValidationFailedError(ValueError):
    """
    A draft failed validation; nothing was written.

    field names the first offending input so a form can highlight it.
    """

    def __init__(
        self,
        field: str,
        message: str,
        result: Optional[ValidationResult] = None,
    ):
        self.field = field
        self.result = result
        super().__init__(message)


class InvalidRatioError(ValidationFailedError):
    """A suggested split ratio was outside 0-1."""

    def __init__(self, ratio: float, field: str = "suggested_ratio"):
        self.ratio = ratio
        super().__init__(field, f"Ratio {ratio} must be between 0 and 1")


def raise_for_errors(result: ValidationResult) -> None:
    """Raise ValidationFailedError for the first error-level issue, if any."""
    issue = result.first_error
    if issue is not None:
        raise ValidationFailedError(issue.field, issue.message, result=result)


class ExpenseValidator:
    """
    Validates expense drafts through a two-stage pipeline.

    Stage 1: Schema validation
    Stage 2: Semantic validation (only when stage 1 passes)
    """

    def __init__(
        self,
        max_expense_amount: Optional[float] = None,
        ratio_tolerance: Optional[float] = None,
    ):
        settings = get_settings().app
        self._max_amount = (
            max_expense_amount
            if max_expense_amount is not None
            else settings.max_expense_amount
        )
        self._ratio_tolerance = (
            ratio_tolerance
            if ratio_tolerance is not None
            else settings.redistribution_tolerance
        )

    def _validate_schema(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not draft.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Expense name is required",
                severity="error",
                suggested_fix="Enter a name such as 'Rent' or 'Internet'",
            ))

        if draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter the amount paid each period",
            ))

        if not draft.frequency or not draft.frequency.strip():
            issues.append(ValidationIssue(
                field="frequency",
                issue_type="missing",
                message="Frequency is required",
                severity="error",
                suggested_fix="Use a name like 'monthly' or 'every 10 days'",
            ))

        if draft.custom_ratios:
            for user_id, ratio in draft.custom_ratios.items():
                if not 0.0 <= ratio <= 1.0:
                    issues.append(ValidationIssue(
                        field="custom_ratios",
                        issue_type="invalid_value",
                        message=f"Split for {user_id} ({ratio:.0%}) must be between 0% and 100%",
                        severity="error",
                    ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        draft: ExpenseDraft,
        account: Optional[Account],
        actor_id: Optional[UUID],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if draft.amount > self._max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount (${draft.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        try:
            parse_frequency(draft.frequency, strict=True)
        except FrequencyParseError:
            issues.append(ValidationIssue(
                field="frequency",
                issue_type="unparseable",
                message=f"Frequency '{draft.frequency}' was not recognised; monthly will be used",
                severity="warning",
                suggested_fix="Use a name like 'monthly' or 'every 10 days'",
            ))

        if (
            draft.split_policy is SplitPolicyType.PER_DOLLAR_CUSTOM
            and draft.custom_ratios
        ):
            total = sum(draft.custom_ratios.values())
            if abs(total - 1.0) * draft.amount >= self._ratio_tolerance:
                issues.append(ValidationIssue(
                    field="custom_ratios",
                    issue_type="inconsistent",
                    message=f"Custom splits add up to {total:.0%}, not 100%",
                    severity="warning",
                    suggested_fix="Adjust the splits or use Equalize",
                ))

        if draft.account_id is not None:
            if account is None or account.id != draft.account_id:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="invalid_reference",
                    message="The selected account does not exist",
                    severity="error",
                ))
            elif actor_id is not None and not account.is_owner(actor_id):
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="not_owner",
                    message=f"You are not an owner of account '{account.name}'",
                    severity="error",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def validate(
        self,
        draft: ExpenseDraft,
        account: Optional[Account] = None,
        actor_id: Optional[UUID] = None,
    ) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Args:
            draft: The expense as entered
            account: The account named by draft.account_id, if it was found
            actor_id: The user saving the expense

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(draft)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(draft, account, actor_id)
            all_issues.extend(semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the expense form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ This expense cannot be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
