"""
Split Proposal Workflow

A co-owner of a joint account cannot write another owner's split row.
Instead they send a proposal; the addressee accepts (which writes their
own row) or rejects it.

DESIGN DECISION: Accepting is ordered so a failure can never leave an
accepted proposal without its split row:
1. Remember the addressee's current split row
2. Delete it
3. Insert the new row (on failure, put the old row back and re-raise)
4. Only then move the proposal from pending to accepted, conditionally
   on it still being pending

A proposal that is no longer pending can never be decided again, so
replaying an accept never re-applies the split write.
"""

import inspect
from typing import Any, Awaitable, Callable, Mapping, Optional, Union
from uuid import UUID

import structlog

from pay_allocator.audit import AuditLogger, create_correlation_id
from pay_allocator.engine.splits import SplitValidationError
from pay_allocator.models.audit import AuditEventType
from pay_allocator.models.finance import (
    Account,
    Expense,
    ExpenseSplit,
    ProposalStatus,
    SplitPolicyType,
    SplitProposal,
)
from pay_allocator.services.repository import FinanceRepository
from pay_allocator.services.storage import StorageError
from pay_allocator.validation import InvalidRatioError, ValidationFailedError


logger = structlog.get_logger(__name__)

ProposalListener = Callable[[SplitProposal], Union[None, Awaitable[None]]]


class NotAuthorizedError(Exception):
    """The acting user may not perform this operation."""

    def __init__(self, actor: UUID, message: str):
        self.actor = actor
        super().__init__(message)


class InvalidStateError(Exception):
    """The proposal is not pending, or the actor is not its addressee."""

    def __init__(self, message: str, proposal_id: Optional[UUID] = None):
        self.proposal_id = proposal_id
        super().__init__(message)


class SplitProposalWorkflow:
    """
    Creates and decides split proposals.

    Listeners registered with on_proposal_created are told about every
    proposal after it has been written.
    """

    def __init__(
        self,
        repository: FinanceRepository,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = repository
        self._audit = audit_logger or AuditLogger()
        self._listeners: list[ProposalListener] = []

    @property
    def repository(self) -> FinanceRepository:
        return self._repository

    # =========================================================================
    # NOTIFICATION PORT
    # =========================================================================

    def on_proposal_created(self, callback: ProposalListener) -> Callable[[], None]:
        """
        Register a sync or async callback for new proposals.

        Returns a callable that unregisters it.
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def _notify(self, proposal: SplitProposal) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(proposal)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # The proposal is already stored; a listener can't undo it
                await self._audit.log_error(
                    error_type="proposal_listener_failed",
                    error_message=str(e),
                    details={"proposal_id": str(proposal.id)},
                )

    # =========================================================================
    # PROPOSE
    # =========================================================================

    async def _authorize_proposer(self, expense: Expense, from_user: UUID) -> Account:
        if expense.account_id is None:
            await self._audit.log_refused(
                AuditEventType.AUTHORIZATION_DENIED, "expense", expense.id, from_user,
                "expense has no account",
            )
            raise NotAuthorizedError(
                from_user,
                f"Expense '{expense.name}' is not on a shared account",
            )
        account = await self._repository.get_account(expense.account_id)
        if not account.is_owner(from_user):
            await self._audit.log_refused(
                AuditEventType.AUTHORIZATION_DENIED, "account", account.id, from_user,
                "proposer is not an account owner",
            )
            raise NotAuthorizedError(
                from_user,
                f"User {from_user} is not an owner of account '{account.name}'",
            )
        return account

    async def propose(
        self,
        expense_id: UUID,
        from_user: UUID,
        to_user: UUID,
        ratio: float,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> UUID:
        """
        Send a split proposal to another owner of the expense's account.

        The new proposal is written first; any older pending proposal for
        the same (expense, from_user, to_user) is then superseded, so at
        most one stays pending.

        Returns:
            The new proposal's id

        Raises:
            InvalidRatioError: ratio outside 0-1
            ValidationFailedError: negative amount
            SplitValidationError: proposing to oneself
            NotAuthorizedError: from_user does not own the expense's account
            NotFoundError: unknown expense or account
        """
        if not 0.0 <= ratio <= 1.0:
            raise InvalidRatioError(ratio)
        if amount < 0:
            raise ValidationFailedError("suggested_amount", "A suggested amount cannot be negative")
        if from_user == to_user:
            raise SplitValidationError("to_user", "A proposal must be addressed to another user")

        correlation_id = correlation_id or create_correlation_id()
        expense = await self._repository.get_expense(expense_id)
        await self._authorize_proposer(expense, from_user)

        proposal = SplitProposal(
            expense_id=expense_id,
            from_user=from_user,
            to_user=to_user,
            suggested_ratio=ratio,
            suggested_amount=amount,
        )

        prior = await self._repository.list_proposals(
            expense_id=expense_id,
            from_user=from_user,
            to_user=to_user,
            status=ProposalStatus.PENDING,
        )
        # A failed insert must leave the earlier proposal pending
        await self._repository.insert_proposal(proposal)
        for old in prior:
            if await self._repository.transition_proposal(old.id, ProposalStatus.SUPERSEDED):
                await self._audit.log_proposal_superseded(old.id, proposal.id, correlation_id)

        await self._audit.log_proposal_created(
            proposal_id=proposal.id,
            expense_id=expense_id,
            from_user=from_user,
            to_user=to_user,
            ratio=ratio,
            amount=amount,
            correlation_id=correlation_id,
        )

        await self._notify(proposal)
        return proposal.id

    async def fan_out(
        self,
        expense: Expense,
        account: Account,
        policy: SplitPolicyType,
        ratios: Mapping[UUID, float],
        proposer: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> list[UUID]:
        """
        Propose the computed split to every other owner of a joint account.

        solely_mine proposes a zero share; other policies propose the
        owner's ratio and ratio * raw amount. Non-joint accounts produce
        nothing.
        """
        if not account.is_joint:
            return []

        policy = SplitPolicyType(policy)
        proposal_ids = []
        for owner in sorted(account.owner_ids - {proposer}, key=str):
            if policy is SplitPolicyType.SOLELY_MINE:
                ratio, amount = 0.0, 0.0
            else:
                ratio = ratios.get(owner, 0.0)
                amount = ratio * expense.raw_amount.value
            proposal_ids.append(await self.propose(
                expense.id, proposer, owner, ratio, amount, correlation_id,
            ))
        return proposal_ids

    # =========================================================================
    # DECIDE
    # =========================================================================

    async def _decidable(self, proposal_id: UUID, acting_user: UUID) -> SplitProposal:
        proposal = await self._repository.get_proposal(proposal_id)
        if proposal.to_user != acting_user:
            await self._audit.log_refused(
                AuditEventType.INVALID_STATE, "split_proposal", proposal_id, acting_user,
                "actor is not the addressee",
            )
            raise InvalidStateError(
                f"Proposal {proposal_id} is not addressed to user {acting_user}",
                proposal_id=proposal_id,
            )
        if proposal.status.is_terminal:
            await self._audit.log_refused(
                AuditEventType.INVALID_STATE, "split_proposal", proposal_id, acting_user,
                f"proposal already {proposal.status.value}",
            )
            raise InvalidStateError(
                f"Proposal {proposal_id} is already {proposal.status.value}",
                proposal_id=proposal_id,
            )
        return proposal

    async def restore_split(
        self,
        expense_id: UUID,
        user_id: UUID,
        previous: Optional[ExpenseSplit],
    ) -> bool:
        """
        Put a user's split row back the way it was before a failed write.

        Removes whatever row is there now and reinserts previous, if any.
        Returns False, after logging, when the store refuses the restore.
        """
        try:
            await self._repository.delete_split(expense_id, user_id)
            if previous is not None:
                await self._repository.insert_split(previous)
        except StorageError as e:
            logger.error(
                "split_restore_failed",
                expense_id=str(expense_id),
                user_id=str(user_id),
                error=str(e),
            )
            return False
        return True

    async def accept(self, proposal_id: UUID, acting_user: UUID) -> SplitProposal:
        """
        Adopt a proposal's ratio as the addressee's own split row.

        Raises:
            NotFoundError: unknown proposal
            InvalidStateError: not the addressee, or not pending
            StorageError: the split write failed; the old row is restored
                and the proposal stays pending
        """
        proposal = await self._decidable(proposal_id, acting_user)

        previous = await self._repository.get_split(proposal.expense_id, acting_user)
        await self._repository.delete_split(proposal.expense_id, acting_user)
        try:
            await self._repository.insert_split(ExpenseSplit(
                expense_id=proposal.expense_id,
                user_id=acting_user,
                ratio=proposal.suggested_ratio,
            ))
        except Exception as e:
            await self._audit.log_store_error("accept_proposal", str(e), getattr(e, "transient", False))
            await self.restore_split(proposal.expense_id, acting_user, previous)
            raise

        if not await self._repository.transition_proposal(proposal_id, ProposalStatus.ACCEPTED):
            # Decided elsewhere between our read and write
            await self.restore_split(proposal.expense_id, acting_user, previous)
            raise InvalidStateError(
                f"Proposal {proposal_id} was decided concurrently",
                proposal_id=proposal_id,
            )

        await self._audit.log_split_saved(proposal.expense_id, acting_user, proposal.suggested_ratio)
        await self._audit.log_proposal_decided(
            proposal_id, accepted=True, actor_id=acting_user, ratio=proposal.suggested_ratio,
        )
        return proposal.model_copy(update={"status": ProposalStatus.ACCEPTED})

    async def reject(self, proposal_id: UUID, acting_user: UUID) -> SplitProposal:
        """
        Decline a proposal. No split row is written.

        Raises:
            NotFoundError: unknown proposal
            InvalidStateError: not the addressee, or not pending
        """
        proposal = await self._decidable(proposal_id, acting_user)

        if not await self._repository.transition_proposal(proposal_id, ProposalStatus.REJECTED):
            raise InvalidStateError(
                f"Proposal {proposal_id} was decided concurrently",
                proposal_id=proposal_id,
            )

        await self._audit.log_proposal_decided(
            proposal_id, accepted=False, actor_id=acting_user, ratio=proposal.suggested_ratio,
        )
        return proposal.model_copy(update={"status": ProposalStatus.REJECTED})

    async def pending_for(self, user_id: UUID) -> list[SplitProposal]:
        """Pending proposals addressed to the user, newest first."""
        return await self._repository.list_proposals(
            to_user=user_id,
            status=ProposalStatus.PENDING,
        )

    async def describe(self, proposal: SplitProposal) -> dict[str, Any]:
        """Expense name and amounts for showing a proposal to its addressee."""
        expense = await self._repository.get_expense(proposal.expense_id)
        return {
            "proposal_id": proposal.id,
            "expense_name": expense.name,
            "from_user": proposal.from_user,
            "suggested_ratio": proposal.suggested_ratio,
            "suggested_amount": proposal.suggested_amount,
            "frequency": expense.raw_amount.frequency.descriptor,
        }
