"""Tests for the GameMaster intent layer."""
from __future__ import annotations

import random

import pytest

from agents.game_master import GameMaster
from engine.errors import (
    InvalidActionForPhase,
    PermissionDenied,
    RoomCodeCollision,
    RoomCreationFailed,
    RoomNotFound,
)
from models.game import GameSettings, Phase
from services.room_store import InMemoryRoomStore
from utils.room_codes import generate_room_code
from conftest import FakeClock, make_room

PLAYER_IDS = ["host", "p2", "p3", "p4", "p5"]


async def seated_room(gm, game_settings=None):
    room = await gm.create_room("host", "Host", game_settings=game_settings)
    for pid in PLAYER_IDS[1:]:
        room = await gm.join_room(room.code, pid, pid.upper())
    return room


async def start_and_ready(gm, code):
    room = await gm.start_game(code, "host")
    for pid in PLAYER_IDS:
        room = await gm.mark_ready(code, pid)
    return room


def holder(room, role_id):
    return next(p.id for p in room.ordered_players() if p.role == role_id)


class TestRoomCreation:

    async def test_create_room(self, gm):
        room = await gm.create_room("host", "Host", avatar_color="#ff0000")
        assert len(room.code) == 4 and room.code.isalpha() and room.code.isupper()
        assert room.host_id == "host"
        assert room.players["host"].avatar_color == "#ff0000"
        assert (await gm.get_room(room.code.lower())).code == room.code

    async def test_collision_retries_with_new_code(self, gm, store):
        taken = generate_room_code(random.Random(1234))
        await store.create(make_room(code=taken))
        room = await gm.create_room("host", "Host")
        assert room.code != taken
        assert room.players["host"].name == "Host"

    async def test_gives_up_after_max_attempts(self, clock):
        class FullStore(InMemoryRoomStore):
            async def create(self, room):
                raise RoomCodeCollision("taken")

        gm = GameMaster(store=FullStore(), rng=random.Random(1), clock=clock)
        with pytest.raises(RoomCreationFailed):
            await gm.create_room("host", "Host")

    async def test_unknown_room(self, gm):
        with pytest.raises(RoomNotFound):
            await gm.get_room("ZZZZ")
        with pytest.raises(RoomNotFound):
            await gm.join_room("ZZZZ", "p2", "P2")


class TestGameFlow:

    async def test_start_and_ready_reaches_first_night(self, gm):
        room = await seated_room(gm)
        room = await gm.start_game(room.code, "host")
        assert room.phase == Phase.ROLE_REVEAL
        for pid in PLAYER_IDS:
            room = await gm.mark_ready(room.code, pid)
        assert room.phase == Phase.NIGHT_WEREWOLF
        assert room.day == 1

    async def test_wolf_view_is_private(self, gm):
        room = await seated_room(gm, GameSettings(wolf_count=2, active_roles={"seer": True}))
        # Six seats are needed for two wolves
        room = await gm.join_room(room.code, "p6", "P6")
        room = await gm.start_game(room.code, "host")

        wolves = [p.id for p in room.ordered_players() if p.role == "werewolf"]
        view = gm.player_view(room, wolves[0])
        assert view["role"]["id"] == "werewolf"
        assert view["teammates"] == [wolves[1]]

        villager = holder(room, "villager")
        assert gm.player_view(room, villager)["teammates"] == []

    async def test_seer_result_goes_back_to_the_seer(self, gm):
        room = await seated_room(gm, GameSettings(active_roles={"seer": True}))
        room = await start_and_ready(gm, room.code)
        wolf = holder(room, "werewolf")
        seer = holder(room, "seer")

        room, info = await gm.submit_night_action(room.code, wolf, Phase.NIGHT_WEREWOLF, [])
        assert info is None
        assert room.phase == Phase.NIGHT_SEER
        room, info = await gm.submit_night_action(room.code, seer, Phase.NIGHT_SEER, [wolf])
        assert info == {"target": wolf, "team": "werewolf"}
        assert room.phase == Phase.DAY_REVEAL

    async def test_phase_expires_on_the_clock(self, gm, clock):
        room = await seated_room(gm)
        room = await start_and_ready(gm, room.code)
        room = await gm.expire_phase(room.code, Phase.NIGHT_WEREWOLF)
        assert room.phase == Phase.NIGHT_WEREWOLF

        clock.now = room.phase_ends_at
        room = await gm.expire_phase(room.code, Phase.NIGHT_WEREWOLF)
        assert room.phase == Phase.DAY_REVEAL
        assert room.day_log[-1] == "No one died."

    async def test_same_seed_deals_same_roles(self):
        async def deal():
            gm = GameMaster(store=InMemoryRoomStore(), rng=random.Random(7), clock=FakeClock())
            room = await seated_room(gm, GameSettings(active_roles={"seer": True, "doctor": True}))
            room = await gm.start_game(room.code, "host")
            return {pid: p.role for pid, p in room.players.items()}

        assert await deal() == await deal()

    async def test_analysis_only_after_game_over(self, gm):
        room = await seated_room(gm)
        with pytest.raises(InvalidActionForPhase):
            await gm.get_analysis(room.code)

    async def test_analysis_after_village_win(self, gm):
        room = await seated_room(gm)
        room = await start_and_ready(gm, room.code)
        wolf = holder(room, "werewolf")
        room, _ = await gm.submit_night_action(room.code, wolf, Phase.NIGHT_WEREWOLF, [])
        room = await gm.advance_phase(room.code, Phase.DAY_REVEAL)
        for pid in PLAYER_IDS:
            room = await gm.submit_vote(room.code, pid, "skip" if pid == wolf else wolf)
        assert room.phase == Phase.GAME_OVER

        analysis = await gm.get_analysis(room.code)
        assert analysis.accolades["most_targeted"] == [wolf]
        assert len(analysis.accolades["most_accurate"]) == 4
        assert gm.player_view(room, wolf)["won"] is False
        assert gm.player_view(room, holder(room, "villager"))["won"] is True


class TestCloseRoom:

    async def test_host_closes_room(self, gm):
        room = await seated_room(gm)
        await gm.delete_room(room.code.lower(), "host")
        with pytest.raises(RoomNotFound):
            await gm.get_room(room.code)
        with pytest.raises(RoomNotFound):
            await gm.join_room(room.code, "p9", "Late")

    async def test_only_host_closes_room(self, gm):
        room = await seated_room(gm)
        with pytest.raises(PermissionDenied):
            await gm.delete_room(room.code, "p2")
        assert (await gm.get_room(room.code)).code == room.code

    async def test_closing_unknown_room(self, gm):
        with pytest.raises(RoomNotFound):
            await gm.delete_room("ZZZZ", "host")


class TestPresence:

    async def test_set_connected(self, gm):
        room = await seated_room(gm)
        room = await gm.set_connected(room.code, "p2", True)
        assert room.players["p2"].connected
        assert await gm.set_connected(room.code, "p2", True) is None
        assert await gm.set_connected(room.code, "ghost", True) is None

    async def test_presence_does_not_touch_game_state(self, gm):
        room = await seated_room(gm)
        room = await start_and_ready(gm, room.code)
        before = room.semantic_dump()
        await gm.set_connected(room.code, "p3", True)
        after = (await gm.get_room(room.code)).semantic_dump()
        before["players"]["p3"]["connected"] = True
        assert after == before
