"""Expense validation package."""

from pay_allocator.validation.validator import (
    ExpenseValidator,
    InvalidRatioError,
    ValidationFailedError,
    raise_for_errors,
)

__all__ = [
    "ExpenseValidator",
    "InvalidRatioError",
    "ValidationFailedError",
    "raise_for_errors",
]
