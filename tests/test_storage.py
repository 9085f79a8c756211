"""
Tests for the storage layer: key-value backends, record store, audit storage.
"""

import json
from uuid import uuid4

import pytest
from tenacity import wait_none

from settleup.models.audit import AuditEventBuilder
from settleup.services.storage import (
    AUDIT_KEY,
    USERS_KEY,
    DuplicateError,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
    NotFoundError,
    RecordStore,
    StorageError,
)


class FakeWorksheet:
    def __init__(self, title):
        self.title = title
        self.rows = []
        self.row_count = 2
        self.fail_updates = False

    def get_all_values(self):
        rows = [list(r) for r in self.rows]
        while rows and not any(rows[-1]):
            rows.pop()
        return rows

    def resize(self, rows=None):
        self.row_count = rows

    def update(self, range_name=None, values=None, value_input_option=None):
        assert range_name == "A1"
        if self.fail_updates:
            raise RuntimeError("quota exceeded")
        assert len(values) <= self.row_count
        self.rows[:len(values)] = [list(v) for v in values]

    def batch_clear(self, ranges):
        for cell_range in ranges:
            start, end = cell_range.replace("A", "").split(":")
            for idx in range(int(start) - 1, int(end)):
                self.rows[idx] = [""]


class FakeSpreadsheet:
    def __init__(self, sheets):
        self._sheets = sheets

    def del_worksheet(self, sheet):
        del self._sheets[sheet.title]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient without any network access."""

    def __init__(self):
        self.sheets = {}

    def find_worksheet(self, title):
        return self.sheets.get(title)

    def get_or_create_worksheet(self, title):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(title)
        return self.sheets[title]

    def get_spreadsheet(self):
        return FakeSpreadsheet(self.sheets)


class TestInMemoryStore:

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self):
        store = InMemoryKeyValueStore()
        assert await store.get("nothing") is None

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        store = InMemoryKeyValueStore()
        await store.set("k", [{"a": 1}])
        assert await store.get("k") == [{"a": 1}]
        assert await store.delete("k") is True
        assert await store.delete("k") is False
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_returned_values_are_copies(self):
        store = InMemoryKeyValueStore(initial={"k": [1, 2]})
        value = await store.get("k")
        value.append(3)
        assert await store.get("k") == [1, 2]

    @pytest.mark.asyncio
    async def test_non_serializable_value_is_rejected(self):
        store = InMemoryKeyValueStore()
        with pytest.raises(StorageError):
            await store.set("k", [object()])


class TestJsonFileStore:

    @pytest.mark.asyncio
    async def test_values_survive_a_new_instance(self, tmp_path):
        await JsonFileKeyValueStore(tmp_path).set(USERS_KEY, [{"id": "1"}])

        reopened = JsonFileKeyValueStore(tmp_path)
        assert await reopened.get(USERS_KEY) == [{"id": "1"}]
        assert (tmp_path / f"{USERS_KEY}.json").exists()

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, tmp_path):
        assert await JsonFileKeyValueStore(tmp_path / "new").get("k") is None

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path)
        await store.set("k", [])
        assert await store.delete("k") is True
        assert await store.delete("k") is False

    @pytest.mark.asyncio
    async def test_unsafe_key_is_rejected(self, tmp_path):
        with pytest.raises(StorageError):
            await JsonFileKeyValueStore(tmp_path).get("../escape")

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_storage_error(self, tmp_path):
        (tmp_path / "k.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            await JsonFileKeyValueStore(tmp_path).get("k")

    @pytest.mark.asyncio
    async def test_non_array_value_raises_storage_error(self, tmp_path):
        (tmp_path / "k.json").write_text(json.dumps({"a": 1}), encoding="utf-8")
        with pytest.raises(StorageError):
            await JsonFileKeyValueStore(tmp_path).get("k")


class TestGoogleSheetsStore:

    @pytest.mark.asyncio
    async def test_records_are_one_json_row_each(self):
        client = FakeSheetsClient()
        store = GoogleSheetsKeyValueStore(client, sheet_names={USERS_KEY: "Users"})

        await store.set(USERS_KEY, [{"id": "1"}, {"id": "2"}])

        rows = client.sheets["Users"].rows
        assert rows[0] == ["record_json"]
        assert [json.loads(r[0]) for r in rows[1:]] == [{"id": "1"}, {"id": "2"}]
        assert await store.get(USERS_KEY) == [{"id": "1"}, {"id": "2"}]

    @pytest.mark.asyncio
    async def test_set_replaces_previous_rows(self):
        client = FakeSheetsClient()
        store = GoogleSheetsKeyValueStore(client)
        await store.set("k", [1, 2, 3])
        await store.set("k", [4])
        assert await store.get("k") == [4]
        assert client.sheets["k"].get_all_values() == [["record_json"], ["4"]]

    @pytest.mark.asyncio
    async def test_set_grows_the_sheet(self):
        client = FakeSheetsClient()
        store = GoogleSheetsKeyValueStore(client)
        await store.set("k", list(range(5)))
        assert client.sheets["k"].row_count == 6
        assert await store.get("k") == list(range(5))

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_records(self, monkeypatch):
        monkeypatch.setattr(GoogleSheetsKeyValueStore.set.retry, "wait", wait_none())
        client = FakeSheetsClient()
        store = GoogleSheetsKeyValueStore(client)
        await store.set("k", ["a", "b"])

        client.sheets["k"].fail_updates = True
        with pytest.raises(StorageError):
            await store.set("k", ["a", "b", "c"])

        assert await store.get("k") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_sheet_is_none_and_delete_removes_it(self):
        client = FakeSheetsClient()
        store = GoogleSheetsKeyValueStore(client)
        assert await store.get("k") is None
        await store.set("k", [])
        assert await store.delete("k") is True
        assert "k" not in client.sheets
        assert await store.delete("k") is False


class TestRecordStore:

    @pytest.mark.asyncio
    async def test_load_initializes_empty_collection(self):
        kv = InMemoryKeyValueStore()
        records = RecordStore(kv)
        assert await records.load(USERS_KEY) == []
        assert await kv.get(USERS_KEY) == []

    @pytest.mark.asyncio
    async def test_insert_find_replace_remove(self):
        records = RecordStore(InMemoryKeyValueStore())
        record_id = uuid4()

        await records.insert(USERS_KEY, {"id": str(record_id), "name": "A"})
        assert (await records.find(USERS_KEY, record_id))["name"] == "A"

        await records.replace(USERS_KEY, {"id": str(record_id), "name": "B"})
        assert (await records.find(USERS_KEY, str(record_id)))["name"] == "B"

        assert await records.remove(USERS_KEY, record_id) is True
        assert await records.remove(USERS_KEY, record_id) is False
        assert await records.find(USERS_KEY, record_id) is None

    @pytest.mark.asyncio
    async def test_insert_duplicate_raises(self):
        records = RecordStore(InMemoryKeyValueStore())
        await records.insert(USERS_KEY, {"id": "1"})
        with pytest.raises(DuplicateError):
            await records.insert(USERS_KEY, {"id": "1"})

    @pytest.mark.asyncio
    async def test_replace_missing_raises(self):
        records = RecordStore(InMemoryKeyValueStore())
        with pytest.raises(NotFoundError):
            await records.replace(USERS_KEY, {"id": "1"})

    @pytest.mark.asyncio
    async def test_find_where(self):
        records = RecordStore(InMemoryKeyValueStore())
        for n in range(4):
            await records.insert(USERS_KEY, {"id": str(n), "even": n % 2 == 0})
        found = await records.find_where(USERS_KEY, lambda r: r["even"])
        assert [r["id"] for r in found] == ["0", "2"]


class TestAuditStorage:

    @pytest.mark.asyncio
    async def test_events_are_grouped_by_correlation_id(self):
        storage = KeyValueAuditStorage(InMemoryKeyValueStore())
        correlation_id = uuid4()
        transaction_id = uuid4()

        assert await storage.append_event(AuditEventBuilder.transaction_settled(
            transaction_id=transaction_id,
            actor_id=uuid4(),
            correlation_id=correlation_id,
        ))
        await storage.append_event(AuditEventBuilder.save_failed(
            operation="other",
            error_message="boom",
        ))

        grouped = await storage.get_events_by_correlation_id(correlation_id)
        assert len(grouped) == 1
        assert grouped[0].entity_id == transaction_id

        by_entity = await storage.get_events_by_entity("transaction", transaction_id)
        assert len(by_entity) == 1

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self, kv_store):
        kv_store.fail_writes.add(AUDIT_KEY)
        storage = KeyValueAuditStorage(kv_store)
        event = AuditEventBuilder.save_failed(operation="x", error_message="y")
        assert await storage.append_event(event) is False
