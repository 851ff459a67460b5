"""
Main Orchestrator for Pay Period Allocator

This module ties together all the components and defines the
end-to-end flows a UI or CLI calls:
1. Calculations (convert, split, aggregate) - pure, no storage
2. Household records (expenses, accounts, incomes, categories)
3. Split proposals (propose, accept, reject, list, notify)
4. Dashboard and CSV import/export

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written before validation passes
- A user writes only their own split row; shares of other owners
  change only through proposals
- Dashboards are recomputed from a fresh read, never patched in place
- Every write is audited

Methods that act for a user take an optional user id; when it is left
out the store's current principal is used, so a lapsed session surfaces
as UnauthenticatedError on the first call that needs it.
"""

from datetime import datetime, timezone
from typing import Callable, Mapping, Optional, Sequence
from uuid import UUID, uuid4

import structlog

from pay_allocator.audit import AuditLogger, create_correlation_id
from pay_allocator.config import get_settings
from pay_allocator.engine import (
    ExpenseAggregator,
    compute_split,
    convert,
    parse_frequency,
)
from pay_allocator.engine.frequency import FrequencyLike
from pay_allocator.models.audit import AuditEventType
from pay_allocator.models.finance import (
    Account,
    Category,
    DashboardSummary,
    Expense,
    ExpenseDraft,
    ExpenseSplit,
    Income,
    MonetaryAmount,
    SessionState,
    SplitAllocation,
    SplitPolicyType,
    SplitProposal,
    ValidationResult,
)
from pay_allocator.proposals import (
    NotAuthorizedError,
    ProposalListener,
    ProposalPoller,
    SplitProposalWorkflow,
)
from pay_allocator.services.csv_rows import (
    ImportResult,
    RowError,
    export_expense_rows,
    export_income_rows,
    parse_expense_rows,
)
from pay_allocator.services.repository import FinanceRepository
from pay_allocator.services.storage import InMemoryRecordStore, RecordStore, StorageError
from pay_allocator.validation import (
    ExpenseValidator,
    ValidationFailedError,
    raise_for_errors,
)


logger = structlog.get_logger(__name__)


class AllocatorService:
    """
    Facade over the engine, the proposal workflow and the record store.

    Holds no household data between calls; every read goes to the store.
    """

    def __init__(
        self,
        store: RecordStore,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[ExpenseValidator] = None,
        aggregator: Optional[ExpenseAggregator] = None,
    ):
        self._store = store
        self._repository = FinanceRepository(store)
        self._audit = audit_logger or AuditLogger()
        self._validator = validator or ExpenseValidator()
        self._aggregator = aggregator or ExpenseAggregator()
        self._workflow = SplitProposalWorkflow(self._repository, self._audit)

    @property
    def repository(self) -> FinanceRepository:
        return self._repository

    @property
    def workflow(self) -> SplitProposalWorkflow:
        return self._workflow

    async def _actor(self, user_id: Optional[UUID]) -> UUID:
        if user_id is not None:
            return user_id
        return await self._store.current_principal()

    async def _deny(self, actor: UUID, entity_type: str, entity_id: UUID, reason: str) -> None:
        await self._audit.log_refused(
            AuditEventType.AUTHORIZATION_DENIED, entity_type, entity_id, actor, reason,
        )
        raise NotAuthorizedError(actor, reason)

    # =========================================================================
    # CALCULATIONS
    # =========================================================================

    def convert_amount(
        self,
        amount: float,
        from_frequency: FrequencyLike,
        to_frequency: FrequencyLike,
    ) -> float:
        return convert(amount, from_frequency, to_frequency)

    def compute_split(
        self,
        policy: SplitPolicyType,
        users: Sequence[UUID],
        amount: float,
        **options,
    ) -> SplitAllocation:
        """See engine.splits.compute_split for the options."""
        return compute_split(policy, users, amount, **options)

    def aggregate(
        self,
        session: SessionState,
        display_frequency: Optional[FrequencyLike] = None,
        names: Optional[Mapping[UUID, str]] = None,
    ) -> DashboardSummary:
        """Dashboard figures for an already loaded snapshot."""
        target = display_frequency or get_settings().app.default_display_frequency
        return self._aggregator.aggregate(
            session.expenses,
            session.incomes,
            target,
            session.user_id,
            accounts=session.accounts,
            categories=session.categories,
            names=names,
        )

    # =========================================================================
    # SESSION & DASHBOARD
    # =========================================================================

    async def load_session(self, user_id: Optional[UUID] = None) -> SessionState:
        return await self._repository.load_session(await self._actor(user_id))

    async def dashboard(
        self,
        display_frequency: Optional[FrequencyLike] = None,
        user_id: Optional[UUID] = None,
    ) -> DashboardSummary:
        """Re-read the store and compute the dashboard."""
        session = await self.load_session(user_id)
        names = await self._repository.user_names()
        return self.aggregate(session, display_frequency, names)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    def validate_expense(
        self,
        draft: ExpenseDraft,
        account: Optional[Account] = None,
        actor_id: Optional[UUID] = None,
    ) -> ValidationResult:
        return self._validator.validate(draft, account, actor_id)

    async def save_expense(
        self,
        draft: ExpenseDraft,
        user_id: Optional[UUID] = None,
        propose_to_co_owners: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Validate and store an expense, then write the actor's own split row.

        On a joint account every other owner receives a proposal for their
        share of the chosen policy.

        Raises:
            ValidationFailedError: the draft has error-level issues
            NotAuthorizedError: editing someone else's expense
            StorageError: a write failed; the expense and the actor's split
                row are left as they were
        """
        actor = await self._actor(user_id)
        correlation_id = correlation_id or create_correlation_id()

        account = await self._repository.find_account(draft.account_id)
        result = self._validator.validate(draft, account, actor)
        if result.has_errors:
            await self._audit.log_validation_failed(
                "expense",
                [issue.model_dump() for issue in result.issues],
                actor_id=actor,
            )
        raise_for_errors(result)

        existing = None
        if draft.id is not None:
            existing = await self._repository.get_expense(draft.id)
            await self._check_expense_access(existing, actor)

        now = datetime.now(timezone.utc)
        expense = Expense(
            id=draft.id or uuid4(),
            name=draft.name,
            raw_amount=MonetaryAmount(
                value=draft.amount,
                frequency=parse_frequency(draft.frequency),
            ),
            account_id=draft.account_id,
            category_id=draft.category_id,
            created_by=existing.created_by if existing else actor,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )

        participants = [actor]
        if account is not None:
            participants += sorted(account.owner_ids - {actor}, key=str)
        allocation = compute_split(
            draft.split_policy,
            participants,
            draft.amount,
            self_id=actor,
            custom_ratios=(
                draft.custom_ratios
                if draft.split_policy is SplitPolicyType.PER_DOLLAR_CUSTOM
                else None
            ),
        )

        # Own split row first, expense row second; either failing puts the
        # previous split row back and leaves the stored expense unchanged
        own_ratio = allocation.ratios.get(actor, 0.0)
        previous_split = await self._repository.get_split(expense.id, actor)
        await self._repository.delete_split(expense.id, actor)
        try:
            await self._repository.insert_split(ExpenseSplit(
                expense_id=expense.id,
                user_id=actor,
                ratio=own_ratio,
            ))
            await self._repository.save_expense(expense)
        except StorageError as e:
            await self._audit.log_store_error("save_expense", str(e), e.transient, correlation_id)
            await self._workflow.restore_split(expense.id, actor, previous_split)
            raise

        await self._audit.log_expense_saved(
            expense_id=expense.id,
            name=expense.name,
            amount=draft.amount,
            frequency=expense.raw_amount.frequency.descriptor,
            actor_id=actor,
            correlation_id=correlation_id,
        )
        await self._audit.log_split_saved(expense.id, actor, own_ratio, correlation_id)

        if propose_to_co_owners and account is not None:
            await self._workflow.fan_out(
                expense,
                account,
                draft.split_policy,
                allocation.ratios,
                actor,
                correlation_id,
            )

        return await self._repository.get_expense(expense.id)

    async def _check_expense_access(self, expense: Expense, actor: UUID) -> None:
        """The creator or an owner of the expense's account may change it."""
        if expense.created_by == actor:
            return
        account = await self._repository.find_account(expense.account_id)
        if account is not None and account.is_owner(actor):
            return
        await self._deny(actor, "expense", expense.id, "not the creator or an account owner")

    async def delete_expense(self, expense_id: UUID, user_id: Optional[UUID] = None) -> None:
        """Remove an expense with its split rows and proposals."""
        actor = await self._actor(user_id)
        expense = await self._repository.get_expense(expense_id)
        await self._check_expense_access(expense, actor)
        await self._repository.delete_expense(expense_id)
        await self._audit.log_expense_deleted(expense_id, actor)

    async def import_expenses(self, text: str, user_id: Optional[UUID] = None) -> ImportResult:
        """
        Create expenses from CSV text.

        Each row writes only the importing user's split row at the row's
        Split percentage; no proposals are sent. Rows that fail parsing or
        validation are reported and skipped.
        """
        actor = await self._actor(user_id)
        rows, errors = parse_expense_rows(text)
        session = await self._repository.load_session(actor)
        accounts = {a.name.lower(): a for a in session.accounts}
        categories = {c.name.lower(): c for c in session.categories}

        imported = []
        for row in rows:
            account = accounts.get(row.account.lower()) if row.account else None
            category = categories.get(row.category.lower()) if row.category else None
            draft = ExpenseDraft(
                name=row.name,
                amount=row.amount,
                frequency=row.frequency,
                account_id=account.id if account else None,
                category_id=category.id if category else None,
                split_policy=SplitPolicyType.PER_DOLLAR_CUSTOM,
                custom_ratios={actor: row.split_ratio},
            )
            try:
                expense = await self.save_expense(draft, actor, propose_to_co_owners=False)
            except ValidationFailedError as e:
                errors.append(RowError(line=row.line, message=str(e)))
                continue
            imported.append(expense.id)

        logger.info("expenses_imported", imported=len(imported), errors=len(errors))
        return ImportResult(imported=imported, errors=sorted(errors, key=lambda e: e.line))

    async def export_expenses(self, user_id: Optional[UUID] = None) -> str:
        return export_expense_rows(await self.load_session(user_id))

    async def export_income(self, user_id: Optional[UUID] = None) -> str:
        actor = await self._actor(user_id)
        return export_income_rows(await self._repository.list_incomes(actor))

    async def export_all(self, user_id: Optional[UUID] = None) -> dict[str, str]:
        """Both exports, keyed by file name."""
        session = await self.load_session(user_id)
        return {
            "expenses.csv": export_expense_rows(session),
            "income.csv": export_income_rows(session.incomes),
        }

    # =========================================================================
    # ACCOUNTS, INCOMES, CATEGORIES
    # =========================================================================

    async def save_account(self, account: Account, user_id: Optional[UUID] = None) -> Account:
        """
        Create or update an account.

        The actor must be among the owners, and for an existing account
        must already have been one.
        """
        actor = await self._actor(user_id)
        if not account.is_owner(actor):
            await self._deny(actor, "account", account.id, "an account must include its creator")
        existing = await self._repository.find_account(account.id)
        if existing is not None and not existing.is_owner(actor):
            await self._deny(actor, "account", account.id, "not an owner of this account")

        await self._repository.save_account(account)
        await self._audit.log_account_saved(account.id, account.name, len(account.owner_ids), actor)
        return account

    async def delete_account(self, account_id: UUID, user_id: Optional[UUID] = None) -> int:
        """
        Delete an account, detaching its expenses.

        Returns:
            Number of expenses that no longer have an account
        """
        actor = await self._actor(user_id)
        account = await self._repository.get_account(account_id)
        if not account.is_owner(actor):
            await self._deny(actor, "account", account_id, "not an owner of this account")

        detached = await self._repository.detach_account(account_id)
        await self._repository.delete_account(account_id)
        await self._audit.log_account_deleted(account_id, detached, actor)
        return detached

    async def save_income(
        self,
        source: str,
        amount: float,
        frequency: str,
        user_id: Optional[UUID] = None,
        income_id: Optional[UUID] = None,
    ) -> Income:
        actor = await self._actor(user_id)
        if amount <= 0:
            raise ValidationFailedError("amount", "Income must be greater than zero")
        income = Income(
            id=income_id or uuid4(),
            user_id=actor,
            source=source,
            raw_amount=MonetaryAmount(value=amount, frequency=parse_frequency(frequency)),
        )
        await self._repository.save_income(income)
        await self._audit.log_record_saved(
            AuditEventType.INCOME_SAVED, "income", income.id, income.source, actor,
        )
        return income

    async def delete_income(self, income_id: UUID, user_id: Optional[UUID] = None) -> None:
        """Remove one of the actor's own income sources."""
        actor = await self._actor(user_id)
        income = await self._repository.get_income(income_id)
        if income.user_id != actor:
            await self._deny(actor, "income", income_id, "not the owner of this income")
        await self._repository.delete_income(income_id)
        await self._audit.log_income_deleted(income_id, income.source, actor)

    async def save_category(
        self,
        name: str,
        category_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
    ) -> Category:
        actor = await self._actor(user_id)
        category = Category(id=category_id or uuid4(), name=name)
        await self._repository.save_category(category)
        await self._audit.log_record_saved(
            AuditEventType.CATEGORY_SAVED, "category", category.id, category.name, actor,
        )
        return category

    # =========================================================================
    # SPLIT PROPOSALS
    # =========================================================================

    async def propose_split(
        self,
        expense_id: UUID,
        to_user: UUID,
        ratio: float,
        amount: float,
        from_user: Optional[UUID] = None,
    ) -> UUID:
        actor = await self._actor(from_user)
        return await self._workflow.propose(expense_id, actor, to_user, ratio, amount)

    async def accept_proposal(
        self,
        proposal_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> SplitProposal:
        return await self._workflow.accept(proposal_id, await self._actor(user_id))

    async def reject_proposal(
        self,
        proposal_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> SplitProposal:
        return await self._workflow.reject(proposal_id, await self._actor(user_id))

    async def list_pending_proposals(self, user_id: Optional[UUID] = None) -> list[SplitProposal]:
        return await self._workflow.pending_for(await self._actor(user_id))

    def on_proposal_created(self, callback: ProposalListener) -> Callable[[], None]:
        return self._workflow.on_proposal_created(callback)

    async def proposal_poller(
        self,
        user_id: Optional[UUID] = None,
        interval: Optional[float] = None,
    ) -> ProposalPoller:
        return ProposalPoller(self._workflow, await self._actor(user_id), interval)


def create_service(
    use_sheets: bool = False,
    store: Optional[RecordStore] = None,
) -> AllocatorService:
    """
    Factory function to create the service with its collaborators.

    Args:
        use_sheets: Back the service with Google Sheets (GOOGLE_SHEETS_*
                    settings). Otherwise an in-memory store is used.
        store: An explicit store; takes precedence over use_sheets.

    Audit events are persisted to the same store's audit_log table.
    """
    if store is None:
        if use_sheets:
            # Imported here so gspread is only loaded when Sheets is used
            from pay_allocator.services.storage.google_sheets import GoogleSheetsRecordStore
            store = GoogleSheetsRecordStore()
        else:
            store = InMemoryRecordStore()

    return AllocatorService(store=store, audit_logger=AuditLogger(store))
