"""
Integration tests for the account and transaction flows.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from settleup.config import get_settings
from settleup.models.transaction import SplitType, TimeRange, TransactionCategory
from settleup.orchestrator import create_app_components
from settleup.services.storage import (
    AUDIT_KEY,
    TRANSACTIONS_KEY,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)


@pytest.fixture
def components(kv_store):
    return create_app_components(kv_store=kv_store)


@pytest.fixture
def account_flow(components):
    return components[0]


@pytest.fixture
def transaction_flow(components):
    return components[1]


@pytest_asyncio.fixture
async def people(account_flow):
    alice, _ = await account_flow.register("Alice", "alice@example.com")
    bob, _ = await account_flow.register("Bob", "bob@example.com")
    carol, _ = await account_flow.register("Carol", "carol@example.com")
    await account_flow.add_friend(alice.id, bob.id)
    await account_flow.add_friend(alice.id, carol.id)
    return alice, bob, carol


def audit_types(records):
    return [r["event_type"] for r in records or []]


class TestAccountFlow:

    @pytest.mark.asyncio
    async def test_register_and_login(self, account_flow, kv_store):
        user, message = await account_flow.register("Alice", "alice@example.com")
        assert user is not None
        assert "Welcome" in message

        logged_in, _ = await account_flow.login("ALICE@example.com")
        assert logged_in.id == user.id

        events = audit_types(await kv_store.get(AUDIT_KEY))
        assert "user_registered" in events
        assert "user_logged_in" in events

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, account_flow, kv_store):
        await account_flow.register("Alice", "alice@example.com")
        user, message = await account_flow.register("Alice 2", "Alice@Example.com")

        assert user is None
        assert "already exists" in message
        assert "registration_rejected" in audit_types(await kv_store.get(AUDIT_KEY))

    @pytest.mark.asyncio
    async def test_register_requires_fields(self, account_flow):
        user, message = await account_flow.register("", "")
        assert user is None
        assert message == "Please fill in all fields"

    @pytest.mark.asyncio
    async def test_unknown_login(self, account_flow, kv_store):
        user, message = await account_flow.login("ghost@example.com")
        assert user is None
        assert message == "Account not found. Please check your email or register."
        assert "login_failed" in audit_types(await kv_store.get(AUDIT_KEY))

    @pytest.mark.asyncio
    async def test_add_friend_by_email(self, account_flow):
        alice, _ = await account_flow.register("Alice", "alice@example.com")
        bob, _ = await account_flow.register("Bob", "bob@example.com")

        ok, _ = await account_flow.add_friend_by_email(alice.id, "BOB@example.com")
        assert ok
        assert [f.id for f in await account_flow.get_friends(bob.id)] == [alice.id]

        ok, message = await account_flow.add_friend_by_email(alice.id, "bob@example.com")
        assert not ok
        assert message == "You are already friends with this user"

    @pytest.mark.asyncio
    async def test_add_friend_by_unknown_or_own_email(self, account_flow):
        alice, _ = await account_flow.register("Alice", "alice@example.com")

        for email in ("nobody@example.com", "alice@example.com"):
            ok, message = await account_flow.add_friend_by_email(alice.id, email)
            assert not ok
            assert message == "No user found with that email address"

    @pytest.mark.asyncio
    async def test_remove_friend(self, account_flow, people):
        alice, bob, _ = people
        ok, _ = await account_flow.remove_friend(bob.id, alice.id)
        assert ok
        assert [f.name for f in await account_flow.get_friends(alice.id)] == ["Carol"]

    @pytest.mark.asyncio
    async def test_search_excludes_self(self, account_flow, people):
        alice, _, _ = people
        found = await account_flow.search_users(alice.id, "example.com")
        assert {u.name for u in found} == {"Bob", "Carol"}
        assert [u.name for u in await account_flow.search_users(alice.id, "CAR")] == ["Carol"]


class TestTransactionFlow:

    @pytest.mark.asyncio
    async def test_lend(self, transaction_flow, people):
        alice, bob, _ = people

        txn, message = await transaction_flow.add_transaction(
            alice.id, "42.50", "Dinner", bob.id, TransactionCategory.LEND
        )

        assert message == "Transaction added"
        assert txn.payer_id == alice.id
        assert txn.amount == Decimal("42.50")
        [balance] = await transaction_flow.get_balances(alice.id)
        assert balance.amount == Decimal("42.50")
        [bob_balance] = await transaction_flow.get_balances(bob.id)
        assert bob_balance.amount == Decimal("-42.50")

    @pytest.mark.asyncio
    async def test_borrow(self, transaction_flow, people):
        alice, bob, _ = people

        txn, _ = await transaction_flow.add_transaction(
            alice.id, "20", "Tickets", bob.id, "borrow"
        )

        assert txn.category == TransactionCategory.BORROW
        assert txn.payer_id == bob.id
        assert txn.payee_id == alice.id
        [balance] = await transaction_flow.get_balances(alice.id)
        assert balance.amount == Decimal("-20")

    @pytest.mark.asyncio
    async def test_invalid_input_mutates_nothing(self, transaction_flow, people, kv_store):
        alice, bob, _ = people

        txn, message = await transaction_flow.add_transaction(alice.id, "abc", "Dinner", bob.id)

        assert txn is None
        assert "Please enter a valid amount" in message
        assert not await kv_store.get(TRANSACTIONS_KEY)
        assert "validation_failed" in audit_types(await kv_store.get(AUDIT_KEY))

    @pytest.mark.asyncio
    async def test_storage_failure_is_a_message(self, transaction_flow, people, kv_store):
        alice, bob, _ = people
        kv_store.fail_writes.add(TRANSACTIONS_KEY)

        txn, message = await transaction_flow.add_transaction(alice.id, "5", "Coffee", bob.id)

        assert txn is None
        assert message == "Failed to add transaction. Please try again."

    @pytest.mark.asyncio
    async def test_equal_split(self, transaction_flow, people, kv_store):
        alice, bob, carol = people

        created, message = await transaction_flow.split_bill(
            alice.id, "90", "Groceries", [bob.id, carol.id], SplitType.EQUAL
        )

        assert len(created) == 2
        assert all(t.amount == Decimal("30") for t in created)
        assert "2 friend(s)" in message

        audit = await kv_store.get(AUDIT_KEY)
        [split_event] = [r for r in audit if r["event_type"] == "split_created"]
        correlation_id = split_event["correlation_id"]
        created_events = [
            r for r in audit
            if r["event_type"] == "transaction_created" and r["correlation_id"] == correlation_id
        ]
        assert len(created_events) == 2

    @pytest.mark.asyncio
    async def test_custom_split_mismatch(self, transaction_flow, people, kv_store):
        alice, bob, carol = people

        created, message = await transaction_flow.split_bill(
            alice.id, "90.00", "Concert", [bob.id, carol.id], SplitType.CUSTOM,
            {bob.id: "30", carol.id: "29"},
        )

        assert created is None
        assert "doesn't match the total" in message
        assert not await kv_store.get(TRANSACTIONS_KEY)

    @pytest.mark.asyncio
    async def test_custom_split(self, transaction_flow, people):
        alice, bob, carol = people

        created, _ = await transaction_flow.split_bill(
            alice.id, "90.00", "Concert", [bob.id, carol.id], SplitType.CUSTOM,
            {bob.id: "60.00", carol.id: "29.99"},
        )

        assert [t.amount for t in created] == [Decimal("60.00"), Decimal("29.99")]

    @pytest.mark.asyncio
    async def test_update_settle_delete(self, transaction_flow, people, kv_store):
        alice, bob, _ = people
        txn, _ = await transaction_flow.add_transaction(alice.id, "10", "Lunch", bob.id)

        bob_side = await transaction_flow.get_transaction(bob.id, txn.id)
        assert bob_side.id == txn.related_transaction_id

        ok, _ = await transaction_flow.update_transaction(
            bob.id, bob_side.model_copy(update={"amount": Decimal("12")})
        )
        assert ok
        assert (await transaction_flow.get_balances(alice.id))[0].amount == Decimal("12")

        ok, _ = await transaction_flow.settle_transaction(alice.id, txn.id)
        assert ok
        assert await transaction_flow.get_balances(alice.id) == []

        ok, message = await transaction_flow.settle_transaction(alice.id, txn.id)
        assert ok
        assert "already settled" in message

        ok, _ = await transaction_flow.delete_transaction(bob.id, bob_side.id)
        assert ok
        assert await transaction_flow.get_transactions(alice.id) == []

        events = audit_types(await kv_store.get(AUDIT_KEY))
        for expected in ("transaction_updated", "transaction_settled", "transaction_deleted"):
            assert expected in events

    @pytest.mark.asyncio
    async def test_update_without_changes(self, transaction_flow, people):
        alice, bob, _ = people
        txn, _ = await transaction_flow.add_transaction(alice.id, "10", "Lunch", bob.id)
        ok, message = await transaction_flow.update_transaction(alice.id, txn)
        assert ok
        assert message == "No changes to save"

    @pytest.mark.asyncio
    async def test_update_with_invalid_values(self, transaction_flow, people, kv_store):
        alice, bob, _ = people
        txn, _ = await transaction_flow.add_transaction(alice.id, "10", "Lunch", bob.id)

        ok, message = await transaction_flow.update_transaction(
            alice.id, txn.model_copy(update={"amount": Decimal("0")})
        )
        assert not ok
        assert "Please enter a valid amount" in message

        ok, message = await transaction_flow.update_transaction(
            alice.id, txn.model_copy(update={"description": ""})
        )
        assert not ok
        assert "Please enter a description" in message

        stored = await transaction_flow.get_transaction(alice.id, txn.id)
        assert stored.amount == Decimal("10")
        assert stored.description == "Lunch"
        assert "validation_failed" in audit_types(await kv_store.get(AUDIT_KEY))

    @pytest.mark.asyncio
    async def test_outsiders_cannot_change_a_transaction(self, transaction_flow, people):
        alice, bob, carol = people
        txn, _ = await transaction_flow.add_transaction(alice.id, "10", "Lunch", bob.id)

        ok, message = await transaction_flow.delete_transaction(carol.id, txn.id)

        assert not ok
        assert message == "You can only change your own transactions"
        assert await transaction_flow.get_transaction(carol.id, txn.id) is None

    @pytest.mark.asyncio
    async def test_missing_transaction(self, transaction_flow, people):
        alice, _, _ = people
        ok, message = await transaction_flow.settle_transaction(alice.id, uuid4())
        assert not ok
        assert message == "Transaction not found"

    @pytest.mark.asyncio
    async def test_statistics(self, transaction_flow, people):
        alice, bob, _ = people
        await transaction_flow.add_transaction(alice.id, "10", "Lunch", bob.id)

        stats = await transaction_flow.get_statistics(alice.id, TimeRange.ALL)

        assert stats.spent == Decimal("10")
        assert stats.category_counts["lend"] == 1


class TestComponents:

    def test_memory_backend(self):
        _, _, store = create_app_components(backend="memory")
        assert isinstance(store, InMemoryKeyValueStore)

    def test_json_backend(self, tmp_path):
        _, _, store = create_app_components(backend="json", data_dir=tmp_path)
        assert isinstance(store, JsonFileKeyValueStore)
        assert store.data_dir == tmp_path

    def test_unconfigured_sheets_fall_back_to_json(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        monkeypatch.chdir(tmp_path)
        get_settings.cache_clear()

        _, _, store = create_app_components(backend="google_sheets", data_dir=tmp_path)

        assert isinstance(store, JsonFileKeyValueStore)

    @pytest.mark.asyncio
    async def test_json_backend_persists_across_restarts(self, tmp_path):
        account_flow, transaction_flow, _ = create_app_components(
            backend="json", data_dir=tmp_path
        )
        alice, _ = await account_flow.register("Alice", "alice@example.com")
        bob, _ = await account_flow.register("Bob", "bob@example.com")
        await account_flow.add_friend(alice.id, bob.id)
        await transaction_flow.add_transaction(alice.id, "42.50", "Dinner", bob.id)

        account_flow, transaction_flow, _ = create_app_components(
            backend="json", data_dir=tmp_path
        )
        again, _ = await account_flow.login("alice@example.com")
        [balance] = await transaction_flow.get_balances(again.id)
        assert balance.amount == Decimal("42.50")
        assert balance.name == "Bob"
