"""Shared fixtures and utilities for Nightfall tests."""
from __future__ import annotations

import random
from typing import Dict, List, Optional, Tuple

import pytest
from httpx import AsyncClient, ASGITransport

from agents.game_master import GameMaster
from engine.phase_controller import advance_phase, submit_night_action
from models.game import NIGHT_PHASE_SEQUENCE, GameSettings, Phase, Player, Room
from roles.registry import role_registry
from services.room_store import InMemoryRoomStore, set_room_store

NOW = 1_000.0


class FakeClock:
    """Manually advanced clock for timeout tests."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_room(
    *roles: Optional[str],
    phase: Phase = Phase.LOBBY,
    code: str = "TEST",
    **settings_kw,
) -> Room:
    """
    Room with players p1..pN holding `roles` in order (None = not dealt yet).
    p1 is the host. Limited-use roles get their starting ammo.
    """
    players: Dict[str, Player] = {}
    for i, role in enumerate(roles, start=1):
        pid = f"p{i}"
        players[pid] = Player(id=pid, name=f"Player{i}", role=role, joined_at=float(i))
    room = Room(
        code=code,
        host_id="p1",
        phase=phase,
        players=players,
        settings=GameSettings(**settings_kw),
    )
    for player in room.players.values():
        if player.role:
            ammo = role_registry.get(player.role).starting_ammo
            if ammo:
                room.ammo[player.id] = ammo
    return room


def kill_player(room: Room, player_id: str) -> None:
    """Kill a player directly (for testing specific scenarios)."""
    room.players[player_id].is_alive = False


def alive_ids(room: Room) -> List[str]:
    return [p.id for p in room.alive_players()]


def ids_with_role(room: Room, role_id: str) -> List[str]:
    return [p.id for p in room.ordered_players() if p.role == role_id]


def begin_first_night(room: Room) -> Room:
    """From NIGHT_INTRO, wake the first role."""
    assert room.phase == Phase.NIGHT_INTRO
    return advance_phase(room, Phase.NIGHT_INTRO, NOW)


def run_night(room: Room, actions: Dict[Phase, Tuple[str, List[str]]]) -> Room:
    """
    Play every night sub-phase until the night resolves. Phases missing from
    `actions` are answered with "no action" by their first living holder.
    """
    if room.phase == Phase.NIGHT_INTRO:
        room = begin_first_night(room)
    while room.phase in NIGHT_PHASE_SEQUENCE:
        if room.phase in actions:
            actor, targets = actions[room.phase]
        else:
            actor = next(
                p.id for p in room.alive_players()
                if role_registry.for_player(p).night_phase == room.phase
            )
            targets = []
        room, _ = submit_night_action(room, actor, room.phase, targets, NOW)
    return room


def cast_votes(room: Room, votes: Dict[str, str]) -> Room:
    """Submit votes in order; returns the room after the last one."""
    from engine.day_vote import submit_vote

    for voter, target in votes.items():
        room = submit_vote(room, voter, target, NOW) or room
    return room


@pytest.fixture
def store() -> InMemoryRoomStore:
    return InMemoryRoomStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gm(store: InMemoryRoomStore, clock: FakeClock) -> GameMaster:
    """GameMaster on a private store with a seeded rng and a fake clock."""
    return GameMaster(store=store, rng=random.Random(1234), clock=clock)


@pytest.fixture
async def client():
    """Async HTTP client for API testing, backed by a fresh in-memory store."""
    from main import app
    from routers import ws_router

    set_room_store(InMemoryRoomStore())
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    for code in list(ws_router._phase_timeout_tasks):
        ws_router.cancel_phase_timeout(code)
    set_room_store(None)
