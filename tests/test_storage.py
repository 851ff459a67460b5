"""Tests for the record stores."""

import asyncio
from uuid import uuid4

import pytest

from pay_allocator.services.storage import (
    DuplicateError,
    InMemoryRecordStore,
    StorageError,
    StoreConnectionError,
    Table,
    UnauthenticatedError,
)
from pay_allocator.services.storage.google_sheets import (
    TABLE_COLUMNS,
    GoogleSheetsRecordStore,
    decode_row,
    encode_row,
)
from pay_allocator.services.storage.interface import record_matches, sort_records


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the store."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def update(self, values, range_name, value_input_option=None):
        index = int(range_name.lstrip("A"))
        self.rows[index - 1] = list(values[0])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {}

    def get_table_sheet(self, table):
        if table not in self.sheets:
            self.sheets[table] = FakeWorksheet(TABLE_COLUMNS[table])
        return self.sheets[table]


class TestStoreHelpers:
    """Tests for filter and order helpers."""

    def test_record_matches_normalises_uuids(self):
        """Test UUID filters match string-stored ids."""
        user = uuid4()
        assert record_matches({"user_id": str(user)}, {"user_id": user})
        assert not record_matches({"user_id": str(user)}, {"user_id": uuid4()})

    def test_sort_descending(self):
        """Test a leading minus sorts descending."""
        records = [{"n": 1}, {"n": 3}, {"n": 2}]
        assert [r["n"] for r in sort_records(records, "-n")] == [3, 2, 1]
        assert [r["n"] for r in sort_records(records, "n")] == [1, 2, 3]

    def test_transient_flag(self):
        """Test connection errors are transient and others are not."""
        assert StoreConnectionError("down").transient is True
        assert StorageError("bad").transient is False
        assert StorageError("flaky", transient=True).transient is True


class TestInMemoryRecordStore:
    """Tests for the in-memory store."""

    def test_insert_assigns_id(self):
        """Test an id is generated when absent."""
        store = InMemoryRecordStore()
        record = asyncio.run(store.insert(Table.CATEGORIES, {"name": "Rent"}))
        assert record["id"]
        assert store.rows(Table.CATEGORIES)[0]["name"] == "Rent"

    def test_duplicate_id_rejected(self):
        """Test inserting the same id twice fails."""
        store = InMemoryRecordStore()

        async def scenario():
            await store.insert(Table.CATEGORIES, {"id": "c1", "name": "Rent"})
            await store.insert(Table.CATEGORIES, {"id": "c1", "name": "Food"})

        with pytest.raises(DuplicateError):
            asyncio.run(scenario())

    def test_update_and_delete_counts(self):
        """Test update and delete report affected rows."""
        store = InMemoryRecordStore()

        async def scenario():
            await store.insert(Table.EXPENSE_SPLITS, {"expense_id": "e1", "user_id": "u1", "ratio": 0.5})
            await store.insert(Table.EXPENSE_SPLITS, {"expense_id": "e1", "user_id": "u2", "ratio": 0.5})
            updated = await store.update(Table.EXPENSE_SPLITS, {"user_id": "u1"}, {"ratio": 0.7})
            deleted = await store.delete(Table.EXPENSE_SPLITS, {"expense_id": "e1"})
            return updated, deleted

        assert asyncio.run(scenario()) == (1, 2)

    def test_returned_records_are_copies(self):
        """Test mutating a query result does not change the store."""
        store = InMemoryRecordStore()
        asyncio.run(store.insert(Table.CATEGORIES, {"name": "Rent"}))
        records = asyncio.run(store.query(Table.CATEGORIES))
        records[0]["name"] = "Changed"
        assert store.rows(Table.CATEGORIES)[0]["name"] == "Rent"

    def test_principal(self):
        """Test sign in and sign out."""
        user = uuid4()
        store = InMemoryRecordStore()
        with pytest.raises(UnauthenticatedError):
            asyncio.run(store.current_principal())
        store.sign_in(user)
        assert asyncio.run(store.current_principal()) == user

    def test_data_operations_refused_after_sign_out(self):
        """Test every data operation raises once the session has ended."""
        store = InMemoryRecordStore(principal=uuid4())
        asyncio.run(store.insert(Table.CATEGORIES, {"name": "Rent"}))
        store.sign_out()

        with pytest.raises(UnauthenticatedError):
            asyncio.run(store.query(Table.CATEGORIES))
        with pytest.raises(UnauthenticatedError):
            asyncio.run(store.insert(Table.CATEGORIES, {"name": "Food"}))
        with pytest.raises(UnauthenticatedError):
            asyncio.run(store.update(Table.CATEGORIES, {"name": "Rent"}, {"name": "Housing"}))
        with pytest.raises(UnauthenticatedError):
            asyncio.run(store.delete(Table.CATEGORIES, {"name": "Rent"}))

        store.sign_in(uuid4())
        assert [r["name"] for r in asyncio.run(store.query(Table.CATEGORIES))] == ["Rent"]


class TestGoogleSheetsRecordStore:
    """Tests for the Sheets store against a fake worksheet."""

    def test_row_encoding(self):
        """Test cells are JSON encoded in column order."""
        record = {"id": "s1", "expense_id": "e1", "user_id": "u1", "ratio": 0.25}
        row = encode_row(Table.EXPENSE_SPLITS, record)
        assert row == ['"s1"', '"e1"', '"u1"', "0.25"]
        assert decode_row(Table.EXPENSE_SPLITS, row) == record

    def test_missing_cells_decode_as_none(self):
        """Test short rows are padded with None."""
        record = decode_row(Table.EXPENSE_SPLITS, ['"s1"'])
        assert record["ratio"] is None

    def test_crud_cycle(self):
        """Test insert, query, update and delete through worksheet rows."""
        client = FakeSheetsClient()
        store = GoogleSheetsRecordStore(client=client, principal_id=uuid4())

        async def scenario():
            await store.insert(Table.ACCOUNTS, {"id": "a1", "name": "Joint", "owner_ids": ["u1", "u2"]})
            await store.insert(Table.ACCOUNTS, {"id": "a2", "name": "Mine", "owner_ids": ["u1"]})
            found = await store.query(Table.ACCOUNTS, {"name": "Joint"})
            updated = await store.update(Table.ACCOUNTS, {"id": "a2"}, {"name": "Savings"})
            names = [r["name"] for r in await store.query(Table.ACCOUNTS, order="name")]
            deleted = await store.delete(Table.ACCOUNTS, {"id": "a1"})
            remaining = await store.query(Table.ACCOUNTS)
            return found, updated, names, deleted, remaining

        found, updated, names, deleted, remaining = asyncio.run(scenario())
        assert found[0]["owner_ids"] == ["u1", "u2"]
        assert updated == 1
        assert names == ["Joint", "Savings"]
        assert deleted == 1
        assert [r["id"] for r in remaining] == ["a2"]
        assert client.sheets[Table.ACCOUNTS].rows[0] == TABLE_COLUMNS[Table.ACCOUNTS]

    def test_duplicate_id_rejected(self):
        """Test the Sheets store refuses a repeated id."""
        store = GoogleSheetsRecordStore(client=FakeSheetsClient(), principal_id=uuid4())

        async def scenario():
            await store.insert(Table.CATEGORIES, {"id": "c1", "name": "Rent"})
            await store.insert(Table.CATEGORIES, {"id": "c1", "name": "Rent"})

        with pytest.raises(DuplicateError):
            asyncio.run(scenario())

    def test_principal(self):
        """Test the configured principal is reported."""
        user = uuid4()
        store = GoogleSheetsRecordStore(client=FakeSheetsClient(), principal_id=user)
        assert asyncio.run(store.current_principal()) == user
