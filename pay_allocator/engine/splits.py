"""
Split Policies

Computes how a shared expense is divided between participants.

Three policies exist:
- equal: everyone pays 1/n
- solely_mine: the editing user pays everything, everyone else 0
- per_dollar_custom: users type dollar amounts; the remainder of the
  total is spread over whoever has not been edited or locked

All functions here are pure. They take the candidate rows they need and
return a new SplitAllocation; nothing is read from or written to storage.
"""

from typing import Iterable, Mapping, Optional, Sequence
from uuid import UUID

from pay_allocator.config import get_settings
from pay_allocator.models.finance import (
    ExpenseSplit,
    SplitAllocation,
    SplitPolicyType,
)


class SplitValidationError(ValueError):
    """A split input was rejected; field names the offending input."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


def _unique(users: Iterable[UUID]) -> list[UUID]:
    """Keep first occurrence order, drop repeats."""
    seen: dict[UUID, None] = {}
    for user in users:
        seen.setdefault(user, None)
    return list(seen)


def _ratios_from_amounts(amounts: Mapping[UUID, float], total: float) -> dict[UUID, float]:
    if total <= 0:
        return {user: 0.0 for user in amounts}
    return {user: amount / total for user, amount in amounts.items()}


def equal_split(users: Sequence[UUID]) -> dict[UUID, float]:
    """Every participant gets exactly 1/n."""
    participants = _unique(users)
    if not participants:
        raise SplitValidationError("users", "An equal split needs at least one participant")
    ratio = 1 / len(participants)
    return {user: ratio for user in participants}


def solely_mine_split(users: Sequence[UUID], self_id: UUID) -> dict[UUID, float]:
    """The editing user carries the whole expense."""
    participants = _unique(users)
    if self_id not in participants:
        raise SplitValidationError(
            "self_id",
            f"User {self_id} is not a participant of this expense",
        )
    return {user: 1.0 if user == self_id else 0.0 for user in participants}


def allocation_from_ratios(ratios: Mapping[UUID, float], total_amount: float) -> SplitAllocation:
    """Dollar view of a ratio map."""
    amounts = {user: total_amount * ratio for user, ratio in ratios.items()}
    return SplitAllocation(ratios=dict(ratios), amounts=amounts)


def equalize_per_dollar(users: Sequence[UUID], total_amount: float) -> SplitAllocation:
    """Reset a custom split to total/n dollars each."""
    participants = _unique(users)
    if not participants:
        raise SplitValidationError("users", "Cannot equalize a split with no participants")
    share = total_amount / len(participants)
    return SplitAllocation(
        ratios={user: 1 / len(participants) for user in participants},
        amounts={user: share for user in participants},
    )


def per_dollar_custom(
    current_amounts: Mapping[UUID, float],
    locked: Iterable[UUID],
    edited_user: UUID,
    new_amount: float,
    total_amount: float,
    tolerance: Optional[float] = None,
) -> SplitAllocation:
    """
    Apply one dollar edit and redistribute the remainder.

    1. The edited user's cell takes new_amount.
    2. difference = total - sum of all cells.
    3. A difference under the tolerance (default 0.01) counts as zero.
    4. Otherwise it is spread evenly over users that are neither locked nor
       the edited user; a cell pushed below zero is clamped to zero.
    5. Ratios are amount / total (0 when the total is not positive).

    When nobody can absorb the difference it stays in `unallocated` for
    the caller to show.
    """
    if edited_user not in current_amounts:
        raise SplitValidationError(
            "edited_user",
            f"User {edited_user} is not a participant of this expense",
        )
    if new_amount < 0:
        raise SplitValidationError("new_amount", "A split amount cannot be negative")

    if tolerance is None:
        tolerance = get_settings().app.redistribution_tolerance

    amounts = dict(current_amounts)
    amounts[edited_user] = new_amount

    difference = total_amount - sum(amounts.values())
    if abs(difference) >= tolerance:
        locked_users = set(locked)
        absorbers = [
            user for user in amounts
            if user != edited_user and user not in locked_users
        ]
        if absorbers:
            share = difference / len(absorbers)
            for user in absorbers:
                amounts[user] = max(0.0, amounts[user] + share)

    unallocated = total_amount - sum(amounts.values())
    if abs(unallocated) < tolerance:
        unallocated = 0.0

    return SplitAllocation(
        ratios=_ratios_from_amounts(amounts, total_amount),
        amounts=amounts,
        unallocated=unallocated,
    )


def infer_policy(
    splits: Sequence[ExpenseSplit],
    self_id: UUID,
    tolerance: Optional[float] = None,
) -> SplitPolicyType:
    """
    Work out which policy produced an existing set of split rows.

    Used to pre-select the policy when an expense is opened for editing.
    """
    if not splits:
        return SplitPolicyType.EQUAL

    if len(splits) == 1 and splits[0].user_id == self_id:
        return SplitPolicyType.SOLELY_MINE

    if tolerance is None:
        tolerance = get_settings().app.equal_ratio_tolerance
    expected = 1 / len(splits)
    if all(abs(split.ratio - expected) < tolerance for split in splits):
        return SplitPolicyType.EQUAL

    return SplitPolicyType.PER_DOLLAR_CUSTOM


def compute_split(
    policy: SplitPolicyType,
    users: Sequence[UUID],
    amount: float,
    *,
    self_id: Optional[UUID] = None,
    edit: Optional[tuple[UUID, float]] = None,
    locked: Iterable[UUID] = (),
    current_amounts: Optional[Mapping[UUID, float]] = None,
    custom_ratios: Optional[Mapping[UUID, float]] = None,
) -> SplitAllocation:
    """
    Compute a split under any policy.

    Args:
        policy: Which policy to apply
        users: Participants, in display order
        amount: The expense amount being divided
        self_id: Editing user (required for solely_mine)
        edit: (user, new dollar amount) for per_dollar_custom
        locked: Users whose amounts must not move
        current_amounts: Dollar cells before the edit; defaults to an equal split
        custom_ratios: Ratios entered directly instead of a dollar edit
    """
    policy = SplitPolicyType(policy)

    if policy is SplitPolicyType.EQUAL:
        return allocation_from_ratios(equal_split(users), amount)

    if policy is SplitPolicyType.SOLELY_MINE:
        if self_id is None:
            raise SplitValidationError("self_id", "solely_mine needs the editing user")
        return allocation_from_ratios(solely_mine_split(users, self_id), amount)

    if custom_ratios is not None:
        participants = _unique(users)
        for user, ratio in custom_ratios.items():
            if user not in participants:
                raise SplitValidationError("custom_ratios", f"User {user} is not a participant")
            if not 0.0 <= ratio <= 1.0:
                raise SplitValidationError("custom_ratios", f"Ratio {ratio} is outside 0-1")
        ratios = {user: float(custom_ratios.get(user, 0.0)) for user in participants}
        return allocation_from_ratios(ratios, amount)

    baseline = (
        dict(current_amounts)
        if current_amounts is not None
        else equalize_per_dollar(users, amount).amounts
    )
    if edit is None:
        unallocated = amount - sum(baseline.values())
        if abs(unallocated) < get_settings().app.redistribution_tolerance:
            unallocated = 0.0
        return SplitAllocation(
            ratios=_ratios_from_amounts(baseline, amount),
            amounts=baseline,
            unallocated=unallocated,
        )

    edited_user, new_amount = edit
    return per_dollar_custom(baseline, locked, edited_user, new_amount, amount)
