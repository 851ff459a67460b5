"""
Finance Repository

Maps plain store records to the pydantic domain models and back.

DESIGN DECISION: Column names follow the persisted schema, not the model
field names. Expenses and incomes keep the amount as entered (raw_amount,
raw_frequency) next to a monthly normalised_amount so a spreadsheet reader
can total them without knowing the frequency rules. Proposals use
from_user_id / to_user_id.

Nothing here decides policy. The repository reads and writes exactly what
it is told; authorization and ordering of writes live in the workflow and
the service.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from uuid import UUID

from pay_allocator.engine.frequency import parse_frequency, to_monthly
from pay_allocator.models.finance import (
    Account,
    AwaitingProposal,
    Category,
    Expense,
    ExpenseSplit,
    Income,
    MonetaryAmount,
    ProposalStatus,
    SessionState,
    Settled,
    SplitProposal,
)
from pay_allocator.services.storage import (
    NotFoundError,
    Record,
    RecordStore,
    Table,
)


# =============================================================================
# Record <-> model mapping
# =============================================================================

def _uuid(value: Any) -> Optional[UUID]:
    if value is None or value == "":
        return None
    return value if isinstance(value, UUID) else UUID(str(value))


def account_to_record(account: Account) -> Record:
    return {
        "id": account.id,
        "name": account.name,
        "type": account.type,
        "owner_ids": sorted(str(owner) for owner in account.owner_ids),
    }


def account_from_record(record: Record) -> Account:
    return Account(
        id=record["id"],
        name=record["name"],
        type=record.get("type") or "other",
        owner_ids={_uuid(owner) for owner in record.get("owner_ids") or []},
    )


def category_from_record(record: Record) -> Category:
    return Category(id=record["id"], name=record["name"])


def split_to_record(split: ExpenseSplit) -> Record:
    return {
        "id": split.id,
        "expense_id": split.expense_id,
        "user_id": split.user_id,
        "ratio": split.ratio,
    }


def split_from_record(record: Record) -> ExpenseSplit:
    return ExpenseSplit(
        id=record["id"],
        expense_id=record["expense_id"],
        user_id=record["user_id"],
        ratio=float(record["ratio"]),
    )


def _amount_from_record(record: Record) -> MonetaryAmount:
    return MonetaryAmount(
        value=float(record["raw_amount"]),
        frequency=parse_frequency(record.get("raw_frequency") or ""),
    )


def expense_to_record(expense: Expense) -> Record:
    """Expense columns; split rows are stored separately."""
    amount = expense.raw_amount
    return {
        "id": expense.id,
        "name": expense.name,
        "raw_amount": amount.value,
        "raw_frequency": amount.frequency.descriptor,
        "normalised_amount": to_monthly(amount.value, amount.frequency),
        "account_id": expense.account_id,
        "category_id": expense.category_id,
        "created_by": expense.created_by,
        "created_at": expense.created_at,
        "updated_at": expense.updated_at,
    }


def expense_from_record(record: Record, splits: Iterable[ExpenseSplit] = ()) -> Expense:
    fields = dict(
        id=record["id"],
        name=record["name"],
        raw_amount=_amount_from_record(record),
        account_id=_uuid(record.get("account_id")),
        category_id=_uuid(record.get("category_id")),
        created_by=record["created_by"],
        splits=list(splits),
    )
    for stamp in ("created_at", "updated_at"):
        if record.get(stamp):
            fields[stamp] = record[stamp]
    return Expense(**fields)


def income_to_record(income: Income) -> Record:
    return {
        "id": income.id,
        "user_id": income.user_id,
        "source": income.source,
        "raw_amount": income.raw_amount.value,
        "raw_frequency": income.raw_amount.frequency.descriptor,
        "created_at": income.created_at,
    }


def income_from_record(record: Record) -> Income:
    fields = dict(
        id=record["id"],
        user_id=record["user_id"],
        source=record["source"],
        raw_amount=_amount_from_record(record),
    )
    if record.get("created_at"):
        fields["created_at"] = record["created_at"]
    return Income(**fields)


def proposal_to_record(proposal: SplitProposal) -> Record:
    return {
        "id": proposal.id,
        "expense_id": proposal.expense_id,
        "from_user_id": proposal.from_user,
        "to_user_id": proposal.to_user,
        "suggested_ratio": proposal.suggested_ratio,
        "suggested_amount": proposal.suggested_amount,
        "status": proposal.status,
        "created_at": proposal.created_at,
    }


def proposal_from_record(record: Record) -> SplitProposal:
    return SplitProposal(
        id=record["id"],
        expense_id=record["expense_id"],
        from_user=record["from_user_id"],
        to_user=record["to_user_id"],
        suggested_ratio=float(record["suggested_ratio"]),
        suggested_amount=float(record["suggested_amount"]),
        status=record.get("status") or ProposalStatus.PENDING,
        created_at=record["created_at"],
    )


# =============================================================================
# Repository
# =============================================================================

class FinanceRepository:
    """Typed access to the household tables of one RecordStore."""

    def __init__(self, store: RecordStore):
        self._store = store

    @property
    def store(self) -> RecordStore:
        return self._store

    async def _upsert(self, table: Table, record: Record) -> None:
        """Update by id, insert when no row was touched."""
        patch = {key: value for key, value in record.items() if key != "id"}
        updated = await self._store.update(table, {"id": record["id"]}, patch)
        if updated == 0:
            await self._store.insert(table, record)

    # -------------------------------------------------------------------------
    # Accounts & categories
    # -------------------------------------------------------------------------

    async def get_account(self, account_id: UUID) -> Account:
        records = await self._store.query(Table.ACCOUNTS, {"id": account_id})
        if not records:
            raise NotFoundError(f"Account not found: {account_id}")
        return account_from_record(records[0])

    async def find_account(self, account_id: Optional[UUID]) -> Optional[Account]:
        if account_id is None:
            return None
        try:
            return await self.get_account(account_id)
        except NotFoundError:
            return None

    async def list_accounts(self, user_id: UUID) -> list[Account]:
        """Accounts the user owns, by name."""
        # owner_ids is a list column, so ownership is filtered in Python
        records = await self._store.query(Table.ACCOUNTS, order="name")
        accounts = [account_from_record(r) for r in records]
        return [a for a in accounts if a.is_owner(user_id)]

    async def save_account(self, account: Account) -> Account:
        await self._upsert(Table.ACCOUNTS, account_to_record(account))
        return account

    async def delete_account(self, account_id: UUID) -> int:
        return await self._store.delete(Table.ACCOUNTS, {"id": account_id})

    async def list_categories(self) -> list[Category]:
        records = await self._store.query(Table.CATEGORIES, order="name")
        return [category_from_record(r) for r in records]

    async def save_category(self, category: Category) -> Category:
        await self._upsert(Table.CATEGORIES, {"id": category.id, "name": category.name})
        return category

    async def user_names(self) -> dict[UUID, str]:
        """Display names from the users table, when it is populated."""
        records = await self._store.query(Table.USERS)
        return {
            _uuid(r["id"]): r.get("name") or r.get("email") or str(r["id"])
            for r in records
        }

    # -------------------------------------------------------------------------
    # Expenses & splits
    # -------------------------------------------------------------------------

    async def list_splits(self, expense_id: UUID) -> list[ExpenseSplit]:
        records = await self._store.query(Table.EXPENSE_SPLITS, {"expense_id": expense_id})
        return [split_from_record(r) for r in records]

    async def get_split(self, expense_id: UUID, user_id: UUID) -> Optional[ExpenseSplit]:
        records = await self._store.query(
            Table.EXPENSE_SPLITS,
            {"expense_id": expense_id, "user_id": user_id},
        )
        return split_from_record(records[0]) if records else None

    async def insert_split(self, split: ExpenseSplit) -> ExpenseSplit:
        await self._store.insert(Table.EXPENSE_SPLITS, split_to_record(split))
        return split

    async def delete_split(self, expense_id: UUID, user_id: UUID) -> int:
        return await self._store.delete(
            Table.EXPENSE_SPLITS,
            {"expense_id": expense_id, "user_id": user_id},
        )

    async def get_expense(self, expense_id: UUID) -> Expense:
        records = await self._store.query(Table.EXPENSES, {"id": expense_id})
        if not records:
            raise NotFoundError(f"Expense not found: {expense_id}")
        return expense_from_record(records[0], await self.list_splits(expense_id))

    async def list_expenses(self) -> list[Expense]:
        """Every expense with its split rows, newest first."""
        records = await self._store.query(Table.EXPENSES, order="-created_at")
        split_rows = await self._store.query(Table.EXPENSE_SPLITS)
        by_expense: dict[str, list[ExpenseSplit]] = {}
        for row in split_rows:
            by_expense.setdefault(str(row["expense_id"]), []).append(split_from_record(row))
        return [
            expense_from_record(r, by_expense.get(str(r["id"]), []))
            for r in records
        ]

    async def save_expense(self, expense: Expense) -> Expense:
        """Write the expense columns. Split rows are written separately."""
        await self._upsert(Table.EXPENSES, expense_to_record(expense))
        return expense

    async def delete_expense(self, expense_id: UUID) -> None:
        """Remove an expense together with its split rows and proposals."""
        await self._store.delete(Table.EXPENSE_SPLITS, {"expense_id": expense_id})
        await self._store.delete(Table.SPLIT_SUGGESTIONS, {"expense_id": expense_id})
        await self._store.delete(Table.EXPENSES, {"id": expense_id})

    async def detach_account(self, account_id: UUID) -> int:
        """Clear account_id on every expense of an account."""
        return await self._store.update(
            Table.EXPENSES,
            {"account_id": account_id},
            {"account_id": None, "updated_at": datetime.now(timezone.utc)},
        )

    # -------------------------------------------------------------------------
    # Incomes
    # -------------------------------------------------------------------------

    async def list_incomes(self, user_id: UUID) -> list[Income]:
        records = await self._store.query(Table.INCOME, {"user_id": user_id}, order="-created_at")
        return [income_from_record(r) for r in records]

    async def get_income(self, income_id: UUID) -> Income:
        records = await self._store.query(Table.INCOME, {"id": income_id})
        if not records:
            raise NotFoundError(f"Income not found: {income_id}")
        return income_from_record(records[0])

    async def save_income(self, income: Income) -> Income:
        await self._upsert(Table.INCOME, income_to_record(income))
        return income

    async def delete_income(self, income_id: UUID) -> int:
        return await self._store.delete(Table.INCOME, {"id": income_id})

    # -------------------------------------------------------------------------
    # Proposals
    # -------------------------------------------------------------------------

    async def get_proposal(self, proposal_id: UUID) -> SplitProposal:
        records = await self._store.query(Table.SPLIT_SUGGESTIONS, {"id": proposal_id})
        if not records:
            raise NotFoundError(f"Split proposal not found: {proposal_id}")
        return proposal_from_record(records[0])

    async def list_proposals(
        self,
        expense_id: Optional[UUID] = None,
        from_user: Optional[UUID] = None,
        to_user: Optional[UUID] = None,
        status: Optional[ProposalStatus] = None,
    ) -> list[SplitProposal]:
        """Proposals matching every given field, newest first."""
        filters: dict[str, Any] = {}
        if expense_id is not None:
            filters["expense_id"] = expense_id
        if from_user is not None:
            filters["from_user_id"] = from_user
        if to_user is not None:
            filters["to_user_id"] = to_user
        if status is not None:
            filters["status"] = status
        records = await self._store.query(Table.SPLIT_SUGGESTIONS, filters, order="-created_at")
        return [proposal_from_record(r) for r in records]

    async def insert_proposal(self, proposal: SplitProposal) -> SplitProposal:
        await self._store.insert(Table.SPLIT_SUGGESTIONS, proposal_to_record(proposal))
        return proposal

    async def transition_proposal(
        self,
        proposal_id: UUID,
        new_status: ProposalStatus,
        expected: ProposalStatus = ProposalStatus.PENDING,
    ) -> bool:
        """
        Move a proposal to new_status only if it is still in expected.

        Returns False when another writer got there first.
        """
        updated = await self._store.update(
            Table.SPLIT_SUGGESTIONS,
            {"id": proposal_id, "status": expected},
            {"status": new_status},
        )
        return updated > 0

    # -------------------------------------------------------------------------
    # Session snapshot
    # -------------------------------------------------------------------------

    async def load_session(self, user_id: UUID) -> SessionState:
        """
        Everything one user sees, read fresh from the store.

        An expense is visible when the user created it, owns its account,
        has a split row on it or has a pending proposal for it. It is
        AwaitingProposal only when the user has no split row yet and a
        pending proposal addressed to them exists; otherwise it is Settled.
        """
        accounts = await self.list_accounts(user_id)
        account_ids = {a.id for a in accounts}
        pending = await self.list_proposals(to_user=user_id, status=ProposalStatus.PENDING)
        latest_pending: dict[UUID, SplitProposal] = {}
        for proposal in pending:
            latest_pending.setdefault(proposal.expense_id, proposal)

        views = []
        for expense in await self.list_expenses():
            has_split = expense.split_for(user_id) is not None
            visible = (
                expense.created_by == user_id
                or expense.account_id in account_ids
                or has_split
                or expense.id in latest_pending
            )
            if not visible:
                continue
            if not has_split and expense.id in latest_pending:
                views.append(AwaitingProposal(expense=expense, proposal=latest_pending[expense.id]))
            else:
                views.append(Settled(expense=expense))

        return SessionState(
            user_id=user_id,
            accounts=accounts,
            categories=await self.list_categories(),
            expenses=views,
            incomes=await self.list_incomes(user_id),
        )
