"""
Tests for the binding store and the SQLite identity provider.
"""

import pytest

from dal.binding_dal import BindingDAL
from dal.user_dal import UserDAL
from models.avatar_models import BindingRecord
from utils.database_init import AsyncDatabaseInitializer


class TestBindingDAL:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, db):
        assert await BindingDAL(db).get("u1") is None

    @pytest.mark.asyncio
    async def test_set_upserts_single_row_per_user(self, db):
        store = BindingDAL(db)

        await store.set("u1", "a1")
        await store.set("u1", "a2")

        assert await store.get("u1") == "a2"
        assert await store.list() == [BindingRecord(user_id="u1", avatar_id="a2")]

    @pytest.mark.asyncio
    async def test_clear_is_noop_for_unknown_user(self, db):
        store = BindingDAL(db)
        await store.set("u1", "a1")

        assert await store.clear("u2") is False
        assert await store.clear("u1") is True
        assert await store.get("u1") is None

    @pytest.mark.asyncio
    async def test_clear_all_for_avatar(self, db):
        store = BindingDAL(db)
        await store.set("u1", "a1")
        await store.set("u2", "a1")
        await store.set("u3", "a2")

        assert await store.clear_all_for("a1") == 2

        assert await store.list() == [BindingRecord(user_id="u3", avatar_id="a2")]

    @pytest.mark.asyncio
    async def test_clear_many_in_one_batch(self, db):
        store = BindingDAL(db)
        for user_id in ("u1", "u2", "u3"):
            await store.set(user_id, "a1")

        assert await store.clear_many(["u1", "u3", "u1"]) == 2
        assert await store.clear_many([]) == 0

        assert [b.user_id for b in await store.list()] == ["u2"]

    @pytest.mark.asyncio
    async def test_persistence_across_instances(self, settings):
        await BindingDAL(AsyncDatabaseInitializer(settings.database_dir)).set("u1", "a1")

        reopened = BindingDAL(AsyncDatabaseInitializer(settings.database_dir))

        assert await reopened.get("u1") == "a1"


class TestUserDAL:
    @pytest.mark.asyncio
    async def test_create_get_and_list(self, db):
        users = UserDAL(db)
        alice = await users.create_user("alice", user_id="alice-id")
        bob = await users.create_user("bob")

        assert await users.get_user("alice-id") == alice
        assert alice.profile_image_path is None
        assert {u.id for u in await users.list_users()} == {"alice-id", bob.id}
        assert await users.get_user("missing") is None

    @pytest.mark.asyncio
    async def test_persist_updates_pointer(self, db):
        users = UserDAL(db)
        alice = await users.create_user("alice")

        alice.profile_image_path = "/data/users/x/profile.png"
        await users.persist_user(alice)

        assert (await users.get_user(alice.id)).profile_image_path == "/data/users/x/profile.png"

    @pytest.mark.asyncio
    async def test_persist_unknown_user_raises(self, db):
        users = UserDAL(db)
        ghost = await users.create_user("ghost")
        async with db.connection() as conn:
            await conn.execute("DELETE FROM USERS WHERE id = ?", (ghost.id,))
            await conn.commit()

        with pytest.raises(LookupError):
            await users.persist_user(ghost)
