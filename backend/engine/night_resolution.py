"""
Night Resolution Engine — pure, deterministic.

Processes the night's NightActions in fixed precedence, independent of the
order in which they were submitted:
  1. Protective roles record shields
  2. Adversary kill (blocked by a shield)
  3. Limited-use kill (blocked by a shield, no effect on the already dead)
  4. Linked-death propagation, one hop
  5. `on_death` hooks (Hunter → HUNTER_ACTION interrupt)
  6. Win check, otherwise DAY_REVEAL with a summary

The only randomness in a game is the role shuffle at start; the same actions
and living set always produce the same deaths.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Set

from engine.deaths import names, propagate_lovers, settle_deaths
from models.game import Phase, Room
from roles.base import NightContext
from roles.registry import role_registry

logger = logging.getLogger(__name__)


@dataclass
class NightOutcome:
    deaths: List[str] = field(default_factory=list)
    causes: Dict[str, str] = field(default_factory=dict)
    shielded: Set[str] = field(default_factory=set)

    def summary(self, room: Room) -> str:
        if not self.deaths:
            return "No one died."
        return f"{names(room, self.deaths)} died."


def _apply_night_actions(room: Room) -> NightOutcome:
    """Steps 1–4 on a working copy. Mutates `room`."""
    ctx = NightContext(room)
    for role in role_registry.night_resolvers():
        role.on_night_resolve(ctx)
    deaths = list(ctx.deaths)
    deaths += propagate_lovers(room, deaths, ctx.causes)
    return NightOutcome(deaths=deaths, causes=dict(ctx.causes), shielded=set(ctx.shielded))


def compute_night_deaths(room: Room) -> NightOutcome:
    """Dry run: the deaths this night's actions would produce. Does not touch `room`."""
    return _apply_night_actions(room.model_copy(deep=True))


def resolve_night(room: Room, now: float) -> Room:
    """Resolve the night and move to HUNTER_ACTION, GAME_OVER or DAY_REVEAL."""
    room = room.model_copy(deep=True)
    origin = room.phase
    outcome = _apply_night_actions(room)

    summary = outcome.summary(room)
    room.day_log.append(summary)
    logger.info(
        f"[{room.code}] Night {room.day} resolved — deaths={outcome.deaths} "
        f"shielded={sorted(outcome.shielded)}"
    )

    if settle_deaths(room, outcome.deaths, outcome.causes, origin, now):
        return room

    room.phase = Phase.DAY_REVEAL
    room.phase_ends_at = None
    logger.info(f"[{room.code}] Phase: {origin.value} → DAY_REVEAL")
    return room
