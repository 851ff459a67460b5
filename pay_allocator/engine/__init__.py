"""Calculation engine: frequencies, split policies and aggregation."""

from pay_allocator.engine.aggregator import (
    ExpenseAggregator,
    RatioLookup,
    approximate_ratio_fallback,
    resolve_ratio,
    settled_expenses,
    split_ratio_for,
)
from pay_allocator.engine.frequency import (
    BIWEEKLY,
    DAILY,
    MONTHLY,
    QUARTERLY,
    WEEKLY,
    YEARLY,
    FrequencyParseError,
    as_frequency,
    convert,
    display_name,
    monthly_factor,
    parse_frequency,
    to_monthly,
)
from pay_allocator.engine.splits import (
    SplitValidationError,
    allocation_from_ratios,
    compute_split,
    equal_split,
    equalize_per_dollar,
    infer_policy,
    per_dollar_custom,
    solely_mine_split,
)

__all__ = [
    # Aggregation
    "ExpenseAggregator",
    "RatioLookup",
    "approximate_ratio_fallback",
    "resolve_ratio",
    "settled_expenses",
    "split_ratio_for",
    # Frequencies
    "BIWEEKLY",
    "DAILY",
    "MONTHLY",
    "QUARTERLY",
    "WEEKLY",
    "YEARLY",
    "FrequencyParseError",
    "as_frequency",
    "convert",
    "display_name",
    "monthly_factor",
    "parse_frequency",
    "to_monthly",
    # Splits
    "SplitValidationError",
    "allocation_from_ratios",
    "compute_split",
    "equal_split",
    "equalize_per_dollar",
    "infer_policy",
    "per_dollar_custom",
    "solely_mine_split",
]
