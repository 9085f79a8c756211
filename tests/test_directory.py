"""
Tests for the user directory: registration, login and symmetric friendships.
"""

from uuid import uuid4

import pytest

from settleup.services.storage import USERS_KEY, DuplicateError


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_and_lookup(self, directory):
        user = await directory.register_user("Alice", "alice@example.com")

        assert user is not None
        assert user.friends == []
        assert (await directory.get_user(user.id)).email == "alice@example.com"
        assert [u.id for u in await directory.list_users()] == [user.id]

    @pytest.mark.asyncio
    async def test_duplicate_email_is_rejected_case_insensitively(self, directory, alice):
        with pytest.raises(DuplicateError):
            await directory.register_user("Other Alice", "ALICE@example.com")
        assert len(await directory.list_users()) == 1

    @pytest.mark.asyncio
    async def test_invalid_input_raises_value_error(self, directory):
        with pytest.raises(ValueError):
            await directory.register_user("", "x@example.com")
        with pytest.raises(ValueError):
            await directory.register_user("Nobody", "no-at-sign")

    @pytest.mark.asyncio
    async def test_storage_failure_returns_none(self, directory, kv_store):
        kv_store.fail_writes.add(USERS_KEY)
        assert await directory.register_user("Alice", "alice@example.com") is None

    @pytest.mark.asyncio
    async def test_users_survive_reload(self, directory, records, alice):
        from settleup.directory import UserDirectory

        reloaded = UserDirectory(records)
        assert await reloaded.get_user(alice.id) == alice


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_is_case_insensitive(self, directory, alice):
        found = await directory.authenticate_by_email("  Alice@EXAMPLE.com ")
        assert found.id == alice.id

    @pytest.mark.asyncio
    async def test_unknown_email(self, directory, alice):
        assert await directory.authenticate_by_email("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_read_failure_returns_none(self, directory, alice, kv_store):
        kv_store.fail_reads.add(USERS_KEY)
        assert await directory.authenticate_by_email("alice@example.com") is None


class TestFriendship:

    @pytest.mark.asyncio
    async def test_add_friend_is_symmetric(self, directory, alice, bob):
        assert await directory.add_friend(alice.id, bob.id)

        assert bob.id in (await directory.get_user(alice.id)).friends
        assert alice.id in (await directory.get_user(bob.id)).friends

    @pytest.mark.asyncio
    async def test_add_friend_uses_one_write(self, directory, alice, bob, kv_store):
        before = kv_store.write_count
        assert await directory.add_friend(alice.id, bob.id)
        assert kv_store.write_count == before + 1

    @pytest.mark.asyncio
    async def test_add_friend_is_idempotent(self, directory, alice, bob, kv_store):
        await directory.add_friend(alice.id, bob.id)
        before = kv_store.write_count

        assert await directory.add_friend(bob.id, alice.id)

        assert kv_store.write_count == before
        assert (await directory.get_user(alice.id)).friends == [bob.id]

    @pytest.mark.asyncio
    async def test_cannot_befriend_self(self, directory, alice):
        assert not await directory.add_friend(alice.id, alice.id)
        assert (await directory.get_user(alice.id)).friends == []

    @pytest.mark.asyncio
    async def test_unknown_friend(self, directory, alice):
        assert not await directory.add_friend(alice.id, uuid4())

    @pytest.mark.asyncio
    async def test_remove_friend_from_both_sides(self, directory, alice, bob):
        await directory.add_friend(alice.id, bob.id)

        assert await directory.remove_friend(bob.id, alice.id)

        assert (await directory.get_user(alice.id)).friends == []
        assert (await directory.get_user(bob.id)).friends == []

    @pytest.mark.asyncio
    async def test_failed_write_changes_neither_side(self, directory, alice, bob, kv_store):
        kv_store.fail_writes.add(USERS_KEY)
        assert not await directory.add_friend(alice.id, bob.id)

        kv_store.fail_writes.clear()
        assert (await directory.get_user(alice.id)).friends == []
        assert (await directory.get_user(bob.id)).friends == []

    @pytest.mark.asyncio
    async def test_get_friends_in_added_order(self, directory, friends):
        alice, bob, carol, dave = friends
        names = [f.name for f in await directory.get_friends(alice.id)]
        assert names == ["Bob", "Carol", "Dave"]
        assert [f.name for f in await directory.get_friends(bob.id)] == ["Alice"]


class TestSearch:

    @pytest.mark.asyncio
    async def test_search_by_name_or_email(self, directory, alice, bob, carol):
        assert [u.name for u in await directory.search_users("BO")] == ["Bob"]
        assert len(await directory.search_users("example.com")) == 3

    @pytest.mark.asyncio
    async def test_search_excludes_caller(self, directory, alice, bob):
        found = await directory.search_users("example", exclude_id=alice.id)
        assert [u.id for u in found] == [bob.id]

    @pytest.mark.asyncio
    async def test_blank_query_finds_nobody(self, directory, alice):
        assert await directory.search_users("   ") == []
