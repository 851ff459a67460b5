"""
Data Models Package

This package contains all Pydantic models used in the Pay Period Allocator.
All data flowing through the engine must conform to these schemas.
"""

from pay_allocator.models.finance import (
    MONTHLY_FACTORS,
    Account,
    AccountType,
    AwaitingProposal,
    BreakdownEntry,
    Category,
    CustomFrequency,
    DashboardSummary,
    Expense,
    ExpenseDraft,
    ExpenseSplit,
    ExpenseView,
    FixedFrequency,
    Frequency,
    FrequencyPeriod,
    FrequencyUnit,
    Income,
    MonetaryAmount,
    ProposalStatus,
    SessionState,
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

__all__ = [
    # Finance models
    "MONTHLY_FACTORS",
    "Account",
    "AccountType",
    "AwaitingProposal",
    "BreakdownEntry",
    "Category",
    "CustomFrequency",
    "DashboardSummary",
    "Expense",
    "ExpenseDraft",
    "ExpenseSplit",
    "ExpenseView",
    "FixedFrequency",
    "Frequency",
    "FrequencyPeriod",
    "FrequencyUnit",
    "Income",
    "MonetaryAmount",
    "ProposalStatus",
    "SessionState",
    "Settled",
    "SplitAllocation",
    "SplitPolicyType",
    "SplitProposal",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
