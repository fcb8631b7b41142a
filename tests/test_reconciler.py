"""
Tests for reconciliation and orphan collection.
"""

import asyncio
import os

import pytest

from conftest import make_image_bytes


def _touch(path, data=b"x"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    return path


class TestValidate:
    @pytest.mark.asyncio
    async def test_no_bindings(self, service):
        assert await service.validate() == 0

    @pytest.mark.asyncio
    async def test_consistent_binding_is_untouched(self, service, identity, png_bytes):
        identity.add("alice")
        record = await service.add_avatar("cat.png", png_bytes)
        image = await service.bind("alice", record.id)
        calls = identity.persist_calls

        assert await service.validate() == 0

        assert identity.pointer("alice") == image.path
        assert identity.persist_calls == calls
        assert await service.get_binding("alice") == record.id

    @pytest.mark.asyncio
    async def test_dangling_avatar_is_dropped_and_pointer_cleared(self, service, identity):
        user_dir = service.binder.user_dir("alice")
        stale = _touch(os.path.join(user_dir, "profile_avatar_gone_1.png"))
        identity.add("alice", profile_image_path=stale)
        await service.bindings.set("alice", "gone")

        assert await service.validate() == 0

        assert await service.get_binding("alice") is None
        assert identity.pointer("alice") is None

    @pytest.mark.asyncio
    async def test_unknown_user_is_dropped(self, service, png_bytes):
        record = await service.add_avatar("cat.png", png_bytes)
        await service.bindings.set("ghost", record.id)

        assert await service.validate() == 0

        assert await service.get_binding("ghost") is None

    @pytest.mark.asyncio
    async def test_missing_profile_file_is_repaired(self, service, identity, png_bytes):
        identity.add("alice")
        record = await service.add_avatar("cat.png", png_bytes)
        image = await service.bind("alice", record.id)
        os.remove(image.path)

        assert await service.validate() == 1

        repaired = identity.pointer("alice")
        assert repaired != image.path
        with open(repaired, "rb") as f:
            assert f.read() == png_bytes
        assert await service.get_binding("alice") == record.id

    @pytest.mark.asyncio
    async def test_empty_pointer_is_repaired(self, service, identity, png_bytes):
        identity.add("alice")
        record = await service.add_avatar("cat.png", png_bytes)
        await service.bindings.set("alice", record.id)

        assert await service.validate() == 1

        assert os.path.exists(identity.pointer("alice"))

    @pytest.mark.asyncio
    async def test_failed_repair_drops_binding(self, service, identity, png_bytes):
        identity.add("alice", profile_image_path="/nowhere/profile_avatar_x_1.png")
        record = await service.add_avatar("cat.png", png_bytes)
        await service.bindings.set("alice", record.id)
        identity.fail_persist = True

        assert await service.validate() == 0

        assert await service.get_binding("alice") is None
        assert os.listdir(service.binder.user_dir("alice")) == []

    @pytest.mark.asyncio
    async def test_one_bad_entry_does_not_stop_the_pass(self, service, identity, png_bytes):
        identity.add("alice")
        identity.add("bob")
        record = await service.add_avatar("cat.png", png_bytes)
        await service.bindings.set("alice", "gone")
        await service.bindings.set("bob", record.id)
        await service.bindings.set("ghost", record.id)

        assert await service.validate() == 1

        assert [b.user_id for b in await service.bindings.list()] == ["bob"]
        assert os.path.exists(identity.pointer("bob"))


class TestCollectOrphans:
    @pytest.mark.asyncio
    async def test_deletes_everything_but_current_pointer(self, service, identity):
        user_dir = service.binder.user_dir("alice")
        current = _touch(os.path.join(user_dir, "profile_avatar_a_3.png"))
        old_one = _touch(os.path.join(user_dir, "profile_avatar_a_1.png"))
        old_two = _touch(os.path.join(user_dir, "profile_avatar_b_2.jpg"))
        unrelated = _touch(os.path.join(user_dir, "notes.txt"))
        identity.add("alice", profile_image_path=current)

        assert await service.collect_orphans() == 2

        assert os.path.exists(current)
        assert not os.path.exists(old_one)
        assert not os.path.exists(old_two)
        assert os.path.exists(unrelated)

    @pytest.mark.asyncio
    async def test_user_without_pointer_loses_all_profile_files(self, service, identity):
        user_dir = service.binder.user_dir("bob")
        _touch(os.path.join(user_dir, "profile_avatar_a_1.png"))
        identity.add("bob")

        assert await service.collect_orphans() == 1

    @pytest.mark.asyncio
    async def test_missing_directories_and_bad_users_are_skipped(self, service, identity):
        identity.add("no-dir-yet")
        identity.add("../escape")
        user_dir = service.binder.user_dir("carol")
        _touch(os.path.join(user_dir, "profile_avatar_a_1.png"))
        identity.add("carol")

        assert await service.collect_orphans() == 1

    @pytest.mark.asyncio
    async def test_collects_files_left_by_failed_deletes(self, service, identity, png_bytes):
        identity.add("alice")
        record = await service.add_avatar("cat.png", png_bytes)
        first = await service.bind("alice", record.id)
        await service.bind("alice", record.id)
        leftover = _touch(first.path, png_bytes)  # an old file whose delete failed

        assert await service.collect_orphans() == 1

        assert not os.path.exists(leftover)
        assert os.path.exists(identity.pointer("alice"))


class TestStartupPass:
    @pytest.mark.asyncio
    async def test_run_startup_validates_then_collects(self, service, identity, png_bytes):
        identity.add("alice")
        record = await service.add_avatar("cat.png", png_bytes)
        image = await service.bind("alice", record.id)
        os.remove(image.path)
        stray = _touch(os.path.join(service.binder.user_dir("alice"), "profile_stray.png"))

        await service.reconciler.run_startup(delay_seconds=0)

        assert os.path.exists(identity.pointer("alice"))
        assert not os.path.exists(stray)

    @pytest.mark.asyncio
    async def test_run_startup_swallows_errors(self, service, monkeypatch):
        async def broken_list():
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(service.bindings, "list", broken_list)

        await service.reconciler.run_startup(delay_seconds=0)

    @pytest.mark.asyncio
    async def test_run_periodic_stops_on_cancel(self, service):
        task = asyncio.create_task(service.reconciler.run_periodic(0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_validate_waits_for_in_flight_bind(self, service, identity, png_bytes):
        identity.add("alice")
        identity.persist_delay = 0.05
        record = await service.add_avatar("cat.png", make_image_bytes((9, 9, 9)))

        bind_task = asyncio.create_task(service.bind("alice", record.id))
        await asyncio.sleep(0.01)
        repaired = await service.validate()
        image = await bind_task

        # Validation ran after the bind committed, so nothing needed repair.
        assert repaired == 0
        assert identity.pointer("alice") == image.path
