"""Tests for the Hunter's dying shot."""
from __future__ import annotations

import pytest

from engine.deaths import submit_hunter_shot
from engine.errors import InvalidActionForPhase
from engine.phase_controller import advance_phase, expire_phase
from models.game import Phase
from conftest import NOW, alive_ids, cast_votes, make_room, run_night


def hunter_shot_at_night(*roles, victim="p2"):
    room = make_room(*roles, phase=Phase.NIGHT_INTRO)
    return run_night(room, {Phase.NIGHT_WEREWOLF: ("p1", [victim])})


class TestNightInterrupt:
    """A Hunter killed at night interrupts before the day."""

    def test_night_death_opens_hunter_action(self):
        room = hunter_shot_at_night("werewolf", "hunter", "villager", "villager", "villager")
        assert room.phase == Phase.HUNTER_ACTION
        assert room.pending_hunters == ["p2"]
        assert room.origin_phase == Phase.NIGHT_WEREWOLF
        assert room.phase_ends_at == NOW + room.settings.action_wait_time
        assert room.day_log[-1] == "Player2 the Hunter died and seeks revenge!"

    def test_shot_resumes_at_day_reveal(self):
        room = hunter_shot_at_night("werewolf", "hunter", "villager", "villager", "villager")
        room = submit_hunter_shot(room, "p2", "p3", NOW)
        assert room.phase == Phase.DAY_REVEAL
        assert room.origin_phase is None
        assert alive_ids(room) == ["p1", "p4", "p5"]
        assert room.day_log[-1] == "The Hunter shot Player3!"

    def test_shooting_last_wolf_wins_for_village(self):
        room = hunter_shot_at_night("werewolf", "hunter", "villager", "villager", "villager")
        room = submit_hunter_shot(room, "p2", "p1", NOW)
        assert room.phase == Phase.GAME_OVER
        assert room.winners == {"village"}
        assert room.pending_hunters == []

    def test_shot_can_hand_wolves_the_win(self):
        room = hunter_shot_at_night("werewolf", "hunter", "villager", "villager")
        room = submit_hunter_shot(room, "p2", "p3", NOW)
        assert room.phase == Phase.GAME_OVER
        assert room.winners == {"werewolf"}


class TestDayInterrupt:
    """A Hunter voted out fires before night falls."""

    def test_voted_out_hunter_may_pass(self):
        room = make_room("werewolf", "hunter", "villager", "villager", "villager", phase=Phase.DAY_VOTE)
        room = cast_votes(room, {pid: "p2" for pid in ["p1", "p2", "p3", "p4", "p5"]})
        assert room.phase == Phase.HUNTER_ACTION
        assert room.origin_phase == Phase.DAY_VOTE

        room = submit_hunter_shot(room, "p2", None, NOW)
        assert room.phase == Phase.NIGHT_INTRO
        assert alive_ids(room) == ["p1", "p3", "p4", "p5"]
        assert room.day_log[-1] == "Player2 the Hunter lowered their weapon."

    def test_vote_after_night_death_resumes_at_night(self):
        """A death at night must not make a day-vote Hunter resume at DAY_REVEAL."""
        room = make_room("werewolf", "hunter", "villager", "villager", "villager", "villager",
                         phase=Phase.NIGHT_INTRO)
        room = run_night(room, {Phase.NIGHT_WEREWOLF: ("p1", ["p3"])})
        assert room.phase == Phase.DAY_REVEAL
        assert room.day_log[-1] == "Player3 died."

        room = advance_phase(room, Phase.DAY_REVEAL, NOW)
        room = cast_votes(room, {pid: "p2" for pid in ["p1", "p2", "p4", "p5", "p6"]})
        assert room.phase == Phase.HUNTER_ACTION
        assert room.origin_phase == Phase.DAY_VOTE

        room = submit_hunter_shot(room, "p2", "p4", NOW)
        assert room.phase == Phase.NIGHT_INTRO
        assert room.origin_phase is None
        assert alive_ids(room) == ["p1", "p5", "p6"]


class TestShotValidation:
    """Rejected shots leave the room untouched."""

    def test_only_the_fallen_hunter_shoots(self):
        room = hunter_shot_at_night("werewolf", "hunter", "villager", "villager", "villager")
        with pytest.raises(InvalidActionForPhase):
            submit_hunter_shot(room, "p3", "p1", NOW)

    def test_cannot_shoot_self_or_dead(self):
        room = hunter_shot_at_night("werewolf", "hunter", "villager", "villager", "villager")
        with pytest.raises(InvalidActionForPhase):
            submit_hunter_shot(room, "p2", "p2", NOW)
        room.players["p4"].is_alive = False
        with pytest.raises(InvalidActionForPhase):
            submit_hunter_shot(room, "p2", "p4", NOW)

    def test_no_shot_outside_hunter_action(self):
        room = make_room("werewolf", "hunter", "villager", phase=Phase.DAY_REVEAL)
        with pytest.raises(InvalidActionForPhase):
            submit_hunter_shot(room, "p2", "p1", NOW)


class TestChainsAndTimeouts:

    def test_hunter_shooting_hunter_chains(self):
        room = hunter_shot_at_night("werewolf", "hunter", "hunter", "villager", "villager", "villager")
        room = submit_hunter_shot(room, "p2", "p3", NOW)
        assert room.phase == Phase.HUNTER_ACTION
        assert room.pending_hunters == ["p3"]
        assert room.origin_phase == Phase.NIGHT_WEREWOLF

        room = submit_hunter_shot(room, "p3", "p4", NOW)
        assert room.phase == Phase.DAY_REVEAL
        assert alive_ids(room) == ["p1", "p5", "p6"]

    def test_timeout_passes_the_shot(self):
        room = hunter_shot_at_night("werewolf", "hunter", "villager", "villager", "villager")
        deadline = room.phase_ends_at
        assert expire_phase(room, Phase.HUNTER_ACTION, deadline - 1) is None

        room = expire_phase(room, Phase.HUNTER_ACTION, deadline)
        assert room.phase == Phase.DAY_REVEAL
        assert alive_ids(room) == ["p1", "p3", "p4", "p5"]
