"""Tests for the in-memory room store."""
from __future__ import annotations

import pytest

from engine.errors import ConcurrentModification, RoomCodeCollision, RoomNotFound
from engine.phase_controller import advance_phase
from models.game import Phase
from services.room_store import InMemoryRoomStore
from conftest import NOW, make_room


class FlakyStore(InMemoryRoomStore):
    """Loses the compare-and-set race a fixed number of times."""

    def __init__(self, conflicts: int, **kwargs):
        super().__init__(**kwargs)
        self.conflicts = conflicts
        self.attempts = 0

    def _compare_and_set(self, code, expected_version, data):
        self.attempts += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            return False
        return super()._compare_and_set(code, expected_version, data)


def rename_host(name):
    def fn(room):
        room.players["p1"].name = name
        return room
    return fn


class TestReadCreate:

    async def test_create_then_read(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        room = await store.read("TEST")
        assert room.code == "TEST"
        assert list(room.players) == ["p1", "p2", "p3"]

    async def test_create_collision(self, store):
        await store.create(make_room())
        with pytest.raises(RoomCodeCollision):
            await store.create(make_room())

    async def test_missing_room(self, store):
        assert await store.read("NOPE") is None
        with pytest.raises(RoomNotFound):
            await store.atomic_update("NOPE", rename_host("x"))

    async def test_reads_are_independent_copies(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        room = await store.read("TEST")
        room.players["p1"].is_alive = False
        assert (await store.read("TEST")).players["p1"].is_alive

    async def test_stored_room_survives_round_trip(self, store):
        original = make_room("werewolf", "cupid", "villager", phase=Phase.DAY_VOTE)
        original.lovers = ["p2", "p3"]
        original.winners = {"the_fool"}
        original.votes = {"p1": "p2"}
        await store.create(original)
        loaded = await store.read("TEST")
        assert loaded.model_dump(exclude={"updated_at"}) == original.model_dump(exclude={"updated_at"})


class TestAtomicUpdate:

    async def test_update_writes(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        room, changed = await store.atomic_update("TEST", rename_host("Ada"))
        assert changed
        assert room.players["p1"].name == "Ada"
        assert (await store.read("TEST")).players["p1"].name == "Ada"

    async def test_none_means_no_write(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        before = await store.read("TEST")
        room, changed = await store.atomic_update("TEST", lambda r: None)
        assert not changed
        assert room.updated_at == before.updated_at

    async def test_conflict_is_retried(self):
        store = FlakyStore(conflicts=2, max_retries=5)
        await store.create(make_room("werewolf", "villager", "villager"))
        room, changed = await store.atomic_update("TEST", rename_host("Ada"))
        assert changed
        assert store.attempts == 3

    async def test_retries_exhausted(self):
        store = FlakyStore(conflicts=10, max_retries=3)
        await store.create(make_room("werewolf", "villager", "villager"))
        with pytest.raises(ConcurrentModification):
            await store.atomic_update("TEST", rename_host("Ada"))
        assert store.attempts == 3
        assert (await store.read("TEST")).players["p1"].name == "Player1"

    async def test_duplicate_advance_is_harmless(self, store):
        """Two clients firing the same advance: the second sees the phase moved and writes nothing."""
        await store.create(make_room("werewolf", "villager", "villager", "villager", phase=Phase.DAY_REVEAL))

        def advance(room):
            return advance_phase(room, Phase.DAY_REVEAL, NOW)

        first, changed_first = await store.atomic_update("TEST", advance)
        second, changed_second = await store.atomic_update("TEST", advance)
        assert changed_first and not changed_second
        assert first.phase == second.phase == Phase.DAY_VOTE


class TestMergeAndSubscribe:

    async def test_merge_presence(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        room = await store.merge("TEST", {"players": {"p2": {"connected": True}}})
        assert room.players["p2"].connected
        assert room.players["p2"].name == "Player2"
        assert not room.players["p1"].connected

    async def test_merge_missing_room(self, store):
        with pytest.raises(RoomNotFound):
            await store.merge("NOPE", {"players": {}})

    async def test_subscribers_see_every_write(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        seen = []

        async def listener(room):
            seen.append(room.players["p1"].name)

        unsubscribe = store.subscribe("TEST", listener)
        await store.atomic_update("TEST", rename_host("Ada"))
        await store.merge("TEST", {"players": {"p1": {"connected": True}}})
        unsubscribe()
        await store.atomic_update("TEST", rename_host("Grace"))
        assert seen == ["Ada", "Ada"]

    async def test_no_write_no_notification(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        seen = []

        async def listener(room):
            seen.append(room)

        store.subscribe("TEST", listener)
        await store.atomic_update("TEST", lambda r: None)
        assert seen == []

    async def test_failing_listener_does_not_break_write(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        seen = []

        async def broken(room):
            raise RuntimeError("socket closed")

        async def healthy(room):
            seen.append(room.players["p1"].name)

        store.subscribe("TEST", broken)
        store.subscribe("TEST", healthy)
        room, changed = await store.atomic_update("TEST", rename_host("Ada"))
        assert changed
        assert seen == ["Ada"]


class TestDelete:

    async def test_delete_discards_room(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        assert await store.delete("TEST") is True
        assert await store.read("TEST") is None
        assert await store.delete("TEST") is False

    async def test_writes_after_delete_fail(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        await store.delete("TEST")
        with pytest.raises(RoomNotFound):
            await store.atomic_update("TEST", rename_host("Ada"))
        with pytest.raises(RoomNotFound):
            await store.merge("TEST", {"players": {}})

    async def test_delete_drops_listeners_and_frees_code(self, store):
        await store.create(make_room("werewolf", "villager", "villager"))
        seen = []

        async def listener(room):
            seen.append(room.players["p1"].name)

        store.subscribe("TEST", listener)
        await store.delete("TEST")
        await store.create(make_room("werewolf", "villager", "villager"))
        await store.atomic_update("TEST", rename_host("Ada"))
        assert seen == []
