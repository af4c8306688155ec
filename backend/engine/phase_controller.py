"""
Phase Controller — pure transforms over a Room document.

  LOBBY → ROLE_REVEAL → [night sub-phases] → (HUNTER_ACTION) → DAY_REVEAL
        → DAY_VOTE → (HUNTER_ACTION) → NIGHT_INTRO → [night sub-phases] → ...
        → GAME_OVER

Every public transform takes the caller's snapshot, works on a deep copy and
returns the new document, or None when there is nothing to change. Rejected
intents raise a GameError before any copy is written, so the store never sees
a half-applied update.

Advancement is level-triggered: `advance_phase` and `expire_phase` inspect the
current document and are no-ops when `expected_phase` no longer matches, so a
duplicate trigger from a second client is harmless.
"""
import logging
import random
from typing import Dict, List, Optional, Tuple

from engine.day_vote import all_votes_in, close_voting, open_voting
from engine.deaths import submit_hunter_shot
from engine.errors import InvalidActionForPhase, PermissionDenied
from engine.night_resolution import resolve_night
from engine.role_assignment import assign_roles
from models.game import NIGHT_PHASE_SEQUENCE, NightActions, Phase, Room
from roles.registry import role_registry

logger = logging.getLogger(__name__)


# ── Night sequencing ──────────────────────────────────────────────────────────

def living_holder_can_act(room: Room, phase: Phase) -> bool:
    """True when some living player holds a role that still acts in `phase`."""
    for player in room.alive_players():
        role = role_registry.for_player(player)
        if role.night_phase == phase and role.has_night_action(room, player):
            return True
    return False


def next_night_phase(room: Room, after: Optional[Phase] = None) -> Optional[Phase]:
    """The next sub-phase after `after` (or the first one) that has someone to act."""
    start = NIGHT_PHASE_SEQUENCE.index(after) + 1 if after in NIGHT_PHASE_SEQUENCE else 0
    for phase in NIGHT_PHASE_SEQUENCE[start:]:
        if phase in room.night_actions.submitted:
            continue
        if living_holder_can_act(room, phase):
            return phase
    return None


def _enter_night_phase(room: Room, phase: Phase, now: float) -> Room:
    previous = room.phase
    room.phase = phase
    room.phase_ends_at = now + room.settings.action_wait_time
    logger.info(f"[{room.code}] Phase: {previous.value} → {phase.value}")
    return room


def _advance_night(room: Room, now: float) -> Room:
    """Move to the next applicable sub-phase, or resolve the night when none is left."""
    nxt = next_night_phase(room, room.phase)
    if nxt is not None:
        return _enter_night_phase(room, nxt, now)
    return resolve_night(room, now)


def begin_night(room: Room, now: float) -> Room:
    """Clear last night's record and wake the first role. Mutates the working copy."""
    room.night_actions = NightActions()
    room.votes = {}
    room.day += 1
    room.day_log.append(f"Night {room.day} falls on the village.")
    logger.info(f"[{room.code}] Night {room.day} begins")
    return _advance_night(room, now)


# ── Lobby → game ──────────────────────────────────────────────────────────────

def start_game(room: Room, actor_id: str, rng: random.Random, now: float) -> Room:
    """Host only. Deal roles and move to ROLE_REVEAL."""
    if not room.is_host(actor_id):
        raise PermissionDenied("Only the host can start the game")
    if room.phase != Phase.LOBBY:
        raise InvalidActionForPhase("The game has already started")

    room = room.model_copy(deep=True)
    for player in room.players.values():
        player.is_alive = True
        player.ready = False
    assign_roles(room, rng)

    room.ammo = {}
    for player in room.ordered_players():
        ammo = role_registry.for_player(player).starting_ammo
        if ammo > 0:
            room.ammo[player.id] = ammo

    room.night_actions = NightActions()
    room.lovers = None
    room.votes = {}
    room.vote_history = []
    room.winners = set()
    room.day = 0
    room.day_log = ["The game has begun. Check your role."]
    room.pending_hunters = []
    room.origin_phase = None
    room.found_seer = []
    room.phase_ends_at = None
    room.phase = Phase.ROLE_REVEAL
    logger.info(f"[{room.code}] Phase: LOBBY → ROLE_REVEAL ({len(room.players)} players)")
    return room


def _all_ready(room: Room) -> bool:
    return all(p.ready for p in room.alive_players())


def mark_ready(room: Room, actor_id: str, now: float) -> Optional[Room]:
    """Acknowledge the dealt role. The last acknowledgment starts night one."""
    if room.phase != Phase.ROLE_REVEAL:
        raise InvalidActionForPhase("Roles are not being revealed")
    player = room.players.get(actor_id)
    if player is None:
        raise InvalidActionForPhase(f"'{actor_id}' is not in this room")
    if player.ready:
        return None

    room = room.model_copy(deep=True)
    room.players[actor_id].ready = True
    if _all_ready(room):
        return begin_night(room, now)
    return room


# ── Night submissions ─────────────────────────────────────────────────────────

def submit_night_action(
    room: Room,
    actor_id: str,
    action_phase: Phase,
    targets: List[str],
    now: float,
) -> Tuple[Room, Optional[Dict]]:
    """
    Record the one submission a night sub-phase accepts, then advance.
    An empty `targets` list is an explicit "no action".
    Returns the new document plus private information for the actor (Seer).
    """
    if action_phase not in NIGHT_PHASE_SEQUENCE or room.phase != action_phase:
        raise InvalidActionForPhase(f"It is not {action_phase.value} right now")
    if not room.is_alive(actor_id):
        raise InvalidActionForPhase("Only living players can act at night")
    actor = room.players[actor_id]
    role = role_registry.for_player(actor)
    if role.night_phase != action_phase:
        raise InvalidActionForPhase(f"A {role.name} does not act during {action_phase.value}")
    if action_phase in room.night_actions.submitted:
        raise InvalidActionForPhase("An action was already submitted for this phase")
    role.validate_night_action(room, actor, targets)
    if not role.has_night_action(room, actor):
        raise InvalidActionForPhase(f"{role.name} has nothing left to do tonight")

    room = room.model_copy(deep=True)
    info = role.record_night_action(room, room.players[actor_id], list(targets))
    room.night_actions.submitted.append(action_phase)
    logger.info(f"[{room.code}] {action_phase.value}: {actor_id} ({role.id}) → {targets or 'no action'}")
    return _advance_night(room, now), info


# ── Level-triggered advancement ───────────────────────────────────────────────

def advance_phase(room: Room, expected_phase: Phase, now: float) -> Optional[Room]:
    """
    Advance out of `expected_phase` if its inputs are complete.
    No-op (None) when the room has already moved on or is still waiting.
    """
    if room.phase != expected_phase:
        return None

    phase = room.phase
    if phase == Phase.NIGHT_INTRO:
        return begin_night(room.model_copy(deep=True), now)
    if phase == Phase.DAY_REVEAL:
        return open_voting(room.model_copy(deep=True), now)
    if phase == Phase.ROLE_REVEAL and _all_ready(room):
        return begin_night(room.model_copy(deep=True), now)
    if phase == Phase.DAY_VOTE and all_votes_in(room):
        return close_voting(room, now)
    if phase in NIGHT_PHASE_SEQUENCE and (
        phase in room.night_actions.submitted or not living_holder_can_act(room, phase)
    ):
        return _advance_night(room.model_copy(deep=True), now)
    return None


def expire_phase(room: Room, expected_phase: Phase, now: float) -> Optional[Room]:
    """
    Timeout path. Once `phase_ends_at` has passed, advance with whatever was
    collected; missing inputs count as abstentions.
    """
    if room.phase != expected_phase or room.phase_ends_at is None or now < room.phase_ends_at:
        return None

    phase = room.phase
    if phase in NIGHT_PHASE_SEQUENCE:
        room = room.model_copy(deep=True)
        if phase not in room.night_actions.submitted:
            room.night_actions.submitted.append(phase)
        logger.info(f"[{room.code}] {phase.value} timed out, treated as no action")
        return _advance_night(room, now)
    if phase == Phase.DAY_VOTE:
        logger.info(f"[{room.code}] Day vote timed out with {len(room.votes)} vote(s)")
        return close_voting(room, now)
    if phase == Phase.HUNTER_ACTION:
        logger.info(f"[{room.code}] Hunter timed out, no shot fired")
        return submit_hunter_shot(room, None, None, now)
    return None


# ── Reset ─────────────────────────────────────────────────────────────────────

def reset_room(room: Room, actor_id: str) -> Room:
    """Host only, from any phase. Players are kept; everything else goes back to LOBBY."""
    if not room.is_host(actor_id):
        raise PermissionDenied("Only the host can reset the room")

    room = room.model_copy(deep=True)
    for player in room.players.values():
        player.role = None
        player.is_alive = True
        player.ready = False
    room.phase = Phase.LOBBY
    room.night_actions = NightActions()
    room.ammo = {}
    room.lovers = None
    room.votes = {}
    room.vote_history = []
    room.winners = set()
    room.day = 0
    room.day_log = []
    room.phase_ends_at = None
    room.pending_hunters = []
    room.origin_phase = None
    room.found_seer = []
    logger.info(f"[{room.code}] Room reset to LOBBY by {actor_id}")
    return room
