"""
Death bookkeeping shared by night resolution, day votes and the Hunter's shot:
linked-death propagation, `on_death` dispatch and the HUNTER_ACTION interrupt.
"""
import logging
from typing import Dict, List, Optional

from engine.errors import InvalidActionForPhase
from engine.win_conditions import check_and_apply_win
from models.game import NIGHT_PHASE_SEQUENCE, Phase, Room
from roles.registry import role_registry

logger = logging.getLogger(__name__)

LOVER_CAUSE = "heartbreak"


def kill(room: Room, player_id: Optional[str], cause: str, causes: Dict[str, str]) -> bool:
    if not room.is_alive(player_id):
        return False
    room.players[player_id].is_alive = False
    causes[player_id] = cause
    return True


def propagate_lovers(room: Room, deaths: List[str], causes: Dict[str, str]) -> List[str]:
    """
    If a linked player is among `deaths`, their partner dies too.
    One hop only: the partner's death does not start another chain.
    Returns the additional deaths.
    """
    if not room.lovers or len(room.lovers) != 2:
        return []
    first, second = room.lovers
    extra: List[str] = []
    for dead, partner in ((first, second), (second, first)):
        if dead in deaths and partner not in deaths and kill(room, partner, LOVER_CAUSE, causes):
            extra.append(partner)
    return extra


def run_death_hooks(room: Room, deaths: List[str], causes: Dict[str, str]) -> None:
    for player_id in deaths:
        player = room.players[player_id]
        role_registry.for_player(player).on_death(room, player, causes.get(player_id, ""))


def names(room: Room, player_ids: List[str]) -> str:
    return ", ".join(room.players[pid].name for pid in player_ids)


# ── Hunter interrupt ──────────────────────────────────────────────────────────

def resume_phase(origin: Optional[Phase]) -> Phase:
    """Where play continues once every pending Hunter has fired."""
    if origin in NIGHT_PHASE_SEQUENCE or origin in (Phase.NIGHT_INTRO, Phase.ROLE_REVEAL):
        return Phase.DAY_REVEAL
    return Phase.NIGHT_INTRO


def enter_hunter_action(room: Room, origin: Phase, now: float) -> Room:
    room.origin_phase = origin
    room.phase = Phase.HUNTER_ACTION
    room.phase_ends_at = now + room.settings.action_wait_time
    hunter = room.players[room.pending_hunters[0]]
    room.day_log.append(f"{hunter.name} the Hunter died and seeks revenge!")
    logger.info(f"[{room.code}] Phase: {origin.value} → HUNTER_ACTION ({hunter.id})")
    return room


def settle_deaths(room: Room, deaths: List[str], causes: Dict[str, str], origin: Phase, now: float) -> bool:
    """
    Death hooks, then either the Hunter interrupt or the win check. `deaths`
    must already include linked partners. Returns True when control has moved
    away from the normal flow (HUNTER_ACTION or GAME_OVER).
    """
    run_death_hooks(room, deaths, causes)
    if room.pending_hunters:
        enter_hunter_action(room, origin, now)
        return True
    return check_and_apply_win(room)


def submit_hunter_shot(room: Room, actor_id: Optional[str], target: Optional[str], now: float) -> Room:
    """
    The pending Hunter at the head of the queue fires (or passes with target None).
    `actor_id` None is the timeout path.
    """
    if room.phase != Phase.HUNTER_ACTION or not room.pending_hunters:
        raise InvalidActionForPhase("No Hunter is waiting to shoot")
    hunter_id = room.pending_hunters[0]
    if actor_id is not None and actor_id != hunter_id:
        raise InvalidActionForPhase("Only the fallen Hunter can take the shot")
    if target is not None and (target == hunter_id or not room.is_alive(target)):
        raise InvalidActionForPhase(f"'{target}' is not a valid Hunter target")

    room = room.model_copy(deep=True)
    room.pending_hunters.pop(0)
    hunter = room.players[hunter_id]
    causes: Dict[str, str] = {}
    deaths: List[str] = []

    if target is not None and kill(room, target, "hunter", causes):
        deaths.append(target)
        room.day_log.append(f"The Hunter shot {room.players[target].name}!")
        logger.info(f"[{room.code}] Hunter {hunter_id} shot {target}")
    else:
        room.day_log.append(f"{hunter.name} the Hunter lowered their weapon.")

    deaths = deaths + propagate_lovers(room, deaths, causes)
    if settle_deaths(room, deaths, causes, room.origin_phase or Phase.DAY_VOTE, now):
        return room

    next_phase = resume_phase(room.origin_phase)
    room.origin_phase = None
    room.phase = next_phase
    room.phase_ends_at = None
    logger.info(f"[{room.code}] Phase: HUNTER_ACTION → {next_phase.value}")
    return room
