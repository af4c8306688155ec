"""
Day vote collection and resolution.

Vote weights (Mayor) are applied while tallying; resolution only ever sees
the final outcome: a target id, TIE or SKIP.
"""
import logging
from typing import Dict, List, Optional

from engine.deaths import kill, names, propagate_lovers, settle_deaths
from engine.errors import InvalidActionForPhase
from engine.win_conditions import WinResult, apply_win
from models.game import SKIP, TIE, DayVoteRecord, Phase, Room
from roles.registry import role_registry

logger = logging.getLogger(__name__)


def open_voting(room: Room, now: float) -> Room:
    room.phase = Phase.DAY_VOTE
    room.votes = {}
    room.phase_ends_at = now + room.settings.voting_wait_time
    logger.info(f"[{room.code}] Phase: DAY_REVEAL → DAY_VOTE (day {room.day})")
    return room


def all_votes_in(room: Room) -> bool:
    return all(p.id in room.votes for p in room.alive_players())


def submit_vote(room: Room, actor_id: str, target: str, now: float) -> Optional[Room]:
    """Record (or change) a living player's vote. Closes voting once everyone has voted."""
    if room.phase != Phase.DAY_VOTE:
        raise InvalidActionForPhase("Votes can only be cast during the day vote phase")
    if not room.is_alive(actor_id):
        raise InvalidActionForPhase("Eliminated players cannot vote")
    if target != SKIP and not room.is_alive(target):
        raise InvalidActionForPhase(f"'{target}' is not a valid living player")
    if room.votes.get(actor_id) == target:
        return None

    room = room.model_copy(deep=True)
    room.votes[actor_id] = target
    if all_votes_in(room):
        return close_voting(room, now)
    return room


def tally_votes(room: Room) -> Dict[str, int]:
    """Weighted counts per target (SKIP included). Votes from the dead are ignored."""
    counts: Dict[str, int] = {}
    for voter_id, target in room.votes.items():
        voter = room.players.get(voter_id)
        if not voter or not voter.is_alive:
            continue
        weight = role_registry.for_player(voter).vote_weight(room, voter)
        counts[target] = counts.get(target, 0) + weight
    return counts


def decide_outcome(counts: Dict[str, int]) -> str:
    """Unique leader wins (SKIP may lead); several leaders is a TIE; no votes is a SKIP."""
    top = max(counts.values(), default=0)
    if top <= 0:
        return SKIP
    leaders: List[str] = [target for target, count in counts.items() if count == top]
    if len(leaders) > 1:
        return TIE
    return leaders[0]


def close_voting(room: Room, now: float) -> Room:
    """Tally whatever has been collected (missing voters abstain) and resolve the day."""
    counts = tally_votes(room)
    outcome = decide_outcome(counts)
    logger.info(f"[{room.code}] Day {room.day} tally={counts} outcome={outcome}")
    return resolve_day_vote(room, outcome, now)


def resolve_day_vote(room: Room, outcome: str, now: float) -> Room:
    """Apply the day's outcome. Appends exactly one DayVoteRecord."""
    if room.phase != Phase.DAY_VOTE:
        raise InvalidActionForPhase("The day vote is not open")
    room = room.model_copy(deep=True)
    room.vote_history.append(DayVoteRecord(day=room.day, votes=dict(room.votes), outcome=outcome))
    room.votes = {}
    room.phase_ends_at = None

    if outcome in (TIE, SKIP) or not room.is_alive(outcome):
        room.day_log.append("The vote was a tie!" if outcome == TIE else "No one was eliminated.")
        room.phase = Phase.NIGHT_INTRO
        logger.info(f"[{room.code}] Phase: DAY_VOTE → NIGHT_INTRO (no elimination)")
        return room

    causes: Dict[str, str] = {}
    kill(room, outcome, "vote", causes)
    victim = room.players[outcome]
    room.day_log.append(f"{victim.name} was voted out by the village.")
    logger.info(f"[{room.code}] Voted out {outcome} (role={victim.role})")

    effect = role_registry.for_player(victim).on_vote_out(room, victim)
    if effect is not None:
        if effect.ends_game:
            # Exclusive win: nobody else is touched
            return apply_win(room, WinResult(
                winners=set(effect.winners),
                reason=f"{victim.name} wanted to be voted out all along!",
            ))
        room.winners |= effect.winners

    deaths = [outcome] + propagate_lovers(room, [outcome], causes)
    if len(deaths) > 1:
        room.day_log.append(f"{names(room, deaths[1:])} died of a broken heart.")
    if settle_deaths(room, deaths, causes, Phase.DAY_VOTE, now):
        return room

    room.phase = Phase.NIGHT_INTRO
    logger.info(f"[{room.code}] Phase: DAY_VOTE → NIGHT_INTRO")
    return room
