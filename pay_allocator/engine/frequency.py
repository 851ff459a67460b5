"""
Frequency Model

Parses recurrence descriptors ("fortnightly", "every 10 days") and converts
amounts between any two recurrences through their monthly factor.

DESIGN DECISION: An unparseable descriptor is not fatal. Dashboards must
keep rendering when one imported row says "every other Tuesday", so the
lenient path logs the failure and treats the amount as monthly. Validation
uses the strict path to flag the field before anything is saved.
"""

import re
from typing import Union

import structlog

from pay_allocator.models.finance import (
    CustomFrequency,
    FixedFrequency,
    Frequency,
    FrequencyPeriod,
    FrequencyUnit,
)


logger = structlog.get_logger(__name__)

FrequencyLike = Union[FixedFrequency, CustomFrequency, str]

DAILY = FixedFrequency(period=FrequencyPeriod.DAILY)
WEEKLY = FixedFrequency(period=FrequencyPeriod.WEEKLY)
BIWEEKLY = FixedFrequency(period=FrequencyPeriod.BIWEEKLY)
MONTHLY = FixedFrequency(period=FrequencyPeriod.MONTHLY)
QUARTERLY = FixedFrequency(period=FrequencyPeriod.QUARTERLY)
YEARLY = FixedFrequency(period=FrequencyPeriod.YEARLY)

_NAMED = {
    "daily": DAILY,
    "weekly": WEEKLY,
    "biweekly": BIWEEKLY,
    "bi-weekly": BIWEEKLY,
    "fortnightly": BIWEEKLY,
    "monthly": MONTHLY,
    "quarterly": QUARTERLY,
    "yearly": YEARLY,
    "annually": YEARLY,
}

_DISPLAY_NAMES = {
    FrequencyPeriod.DAILY: "Daily",
    FrequencyPeriod.WEEKLY: "Weekly",
    FrequencyPeriod.BIWEEKLY: "Bi-Weekly",
    FrequencyPeriod.MONTHLY: "Monthly",
    FrequencyPeriod.QUARTERLY: "Quarterly",
    FrequencyPeriod.YEARLY: "Yearly",
}

_EVERY_PATTERN = re.compile(r"every\s+(\d+)\s+(day|week|month|year)s?")


class FrequencyParseError(ValueError):
    """A frequency descriptor matched no known name or pattern."""

    def __init__(self, descriptor: str):
        self.descriptor = descriptor
        super().__init__(f"Could not parse frequency: {descriptor!r}")


def parse_frequency(descriptor: str, strict: bool = False) -> Frequency:
    """
    Parse a frequency descriptor.

    Recognises the fixed names case-insensitively and "every <N> <unit>(s)"
    for day, week, month and year with N >= 1.

    Args:
        descriptor: Free text such as "Fortnightly" or "every 3 months"
        strict: Raise instead of falling back to monthly

    Raises:
        FrequencyParseError: Only when strict is True
    """
    text = (descriptor or "").strip().lower()

    if text in _NAMED:
        return _NAMED[text]

    match = _EVERY_PATTERN.fullmatch(text)
    if match:
        count = int(match.group(1))
        if count > 0:
            return CustomFrequency(count=count, unit=FrequencyUnit(match.group(2)))

    error = FrequencyParseError(descriptor)
    if strict:
        raise error
    logger.warning(
        "frequency_parse_failed",
        descriptor=descriptor,
        fallback=MONTHLY.descriptor,
        error=str(error),
    )
    return MONTHLY


def as_frequency(value: FrequencyLike) -> Frequency:
    """Accept either a parsed frequency or a descriptor string."""
    if isinstance(value, str):
        return parse_frequency(value)
    return value


def monthly_factor(frequency: FrequencyLike) -> float:
    """Average number of occurrences per month."""
    return as_frequency(frequency).monthly_factor


def convert(amount: float, from_frequency: FrequencyLike, to_frequency: FrequencyLike) -> float:
    """
    Convert an amount between two frequencies.

    Goes through the monthly rate: amount * f(from) / f(to). Identical
    frequencies return the amount untouched.
    """
    source = as_frequency(from_frequency)
    target = as_frequency(to_frequency)
    if source == target:
        return amount
    return amount * source.monthly_factor / target.monthly_factor


def to_monthly(amount: float, frequency: FrequencyLike) -> float:
    """The normalised (monthly-equivalent) amount stored alongside raw amounts."""
    return convert(amount, frequency, MONTHLY)


def display_name(frequency: FrequencyLike) -> str:
    """Human label, e.g. "Bi-Weekly" or "Every 10 days"."""
    freq = as_frequency(frequency)
    if isinstance(freq, CustomFrequency):
        return f"Every {freq.count} {freq.unit_label}"
    return _DISPLAY_NAMES[freq.period]
