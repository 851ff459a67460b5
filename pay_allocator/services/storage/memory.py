"""
In-Memory Record Store

Keeps every table as a list of dicts. Used by the test suite and by
callers embedding the engine without a backend. Records are copied on
the way in and out so callers can never mutate stored state by accident.
"""

import copy
from typing import Any, Mapping, Optional
from uuid import UUID, uuid4

from pay_allocator.services.storage.interface import (
    DuplicateError,
    Record,
    RecordStore,
    Table,
    UnauthenticatedError,
    normalize_record,
    record_matches,
    sort_records,
)


class InMemoryRecordStore(RecordStore):
    """
    Record store backed by process memory.

    The principal is set with sign_in/sign_out so tests can simulate
    several users sharing one store, and a lapsed session. A store built
    without a principal serves data anonymously; once sign_out() is called
    every operation raises UnauthenticatedError until the next sign_in().
    """

    def __init__(self, principal: Optional[UUID] = None):
        self._tables: dict[Table, list[Record]] = {table: [] for table in Table}
        self._principal = principal
        self._signed_out = False

    def sign_in(self, user_id: UUID) -> None:
        self._principal = user_id
        self._signed_out = False

    def sign_out(self) -> None:
        self._principal = None
        self._signed_out = True

    def _check_session(self) -> None:
        if self._signed_out:
            raise UnauthenticatedError("Session has ended; sign in again")

    def rows(self, table: Table) -> list[Record]:
        """Direct copy of a table's rows, for assertions."""
        return copy.deepcopy(self._tables[table])

    async def query(
        self,
        table: Table,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
    ) -> list[Record]:
        self._check_session()
        matched = [
            copy.deepcopy(record)
            for record in self._tables[table]
            if record_matches(record, filters)
        ]
        return sort_records(matched, order)

    async def insert(self, table: Table, record: Record) -> Record:
        self._check_session()
        stored = normalize_record(record)
        stored.setdefault("id", str(uuid4()))
        if any(existing["id"] == stored["id"] for existing in self._tables[table]):
            raise DuplicateError(f"{table.value} already has a record with id {stored['id']}")
        self._tables[table].append(stored)
        return copy.deepcopy(stored)

    async def update(
        self,
        table: Table,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int:
        self._check_session()
        changes = normalize_record(patch)
        count = 0
        for record in self._tables[table]:
            if record_matches(record, filters):
                record.update(changes)
                count += 1
        return count

    async def delete(self, table: Table, filters: Mapping[str, Any]) -> int:
        self._check_session()
        kept = [r for r in self._tables[table] if not record_matches(r, filters)]
        removed = len(self._tables[table]) - len(kept)
        self._tables[table] = kept
        return removed

    async def current_principal(self) -> UUID:
        if self._principal is None:
            raise UnauthenticatedError("No user is signed in")
        return self._principal
