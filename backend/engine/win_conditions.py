"""
Win Condition Evaluator.

Runs after every death-producing event. Checks, in order:
  1. Lovers — exactly the linked pair is alive (optionally plus Cupid)
  2. Village — no adversary is alive
  3. Werewolves — adversaries ≥ living non-neutral opponents

Winners already recorded by a continued-game individual win (The Fool or the
Tanner when their end-game setting is off) are carried into the final set.
Per-player results come from each role's `is_winner` hook.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from models.game import Phase, Room, Team
from roles.registry import role_registry

logger = logging.getLogger(__name__)


@dataclass
class WinResult:
    winners: Set[str] = field(default_factory=set)
    game_over: bool = True
    reason: str = ""


def _lovers_win(room: Room) -> Optional[WinResult]:
    if not room.lovers or len(room.lovers) != 2:
        return None
    lover_ids = set(room.lovers)
    alive = room.alive_players()
    alive_ids = {p.id for p in alive}
    if not lover_ids <= alive_ids:
        return None

    others = [p for p in alive if p.id not in lover_ids]
    if not others:
        winners = {Team.LOVERS.value}
        # A Cupid who linked themselves still collects the bonus
        for lover_id in room.lovers:
            lover = room.players[lover_id]
            role = role_registry.for_player(lover)
            if role.shares_lovers_win(room, lover):
                winners.add(role.id)
        return WinResult(winners=winners, reason="Only the lovers remain.")

    if len(others) == 1:
        extra = others[0]
        role = role_registry.for_player(extra)
        if role.shares_lovers_win(room, extra):
            return WinResult(
                winners={Team.LOVERS.value, role.id},
                reason="The lovers and their matchmaker are the last ones standing.",
            )
    return None


def evaluate_win(room: Room) -> Optional[WinResult]:
    """Return the win result for the current living set, or None if play continues."""
    result = _lovers_win(room)

    if result is None:
        adversaries = 0
        opponents = 0
        for player in room.alive_players():
            role = role_registry.for_player(player)
            if role.is_adversary():
                adversaries += 1
            elif role.win_team() != Team.NEUTRAL:
                opponents += 1

        if adversaries == 0:
            result = WinResult(winners={Team.VILLAGE.value}, reason="All werewolves have been eliminated.")
        elif adversaries >= opponents:
            result = WinResult(winners={Team.WEREWOLF.value}, reason="The werewolves have overrun the village.")

    if result is None:
        return None
    result.winners = set(room.winners) | result.winners
    return result


def apply_win(room: Room, result: WinResult) -> Room:
    """Terminal transition. Mutates and returns the working copy."""
    room.winners = set(result.winners)
    room.phase = Phase.GAME_OVER
    room.phase_ends_at = None
    room.pending_hunters = []
    room.origin_phase = None
    if result.reason:
        room.day_log.append(result.reason)
    logger.info(f"[{room.code}] Game over — winners: {sorted(room.winners)}")
    return room


def winning_players(room: Room) -> List[str]:
    """Ids of the players who won, in seat order. Empty until the game is over."""
    if room.phase != Phase.GAME_OVER:
        return []
    return [
        p.id for p in room.ordered_players()
        if role_registry.for_player(p).is_winner(room, p)
    ]


def check_and_apply_win(room: Room) -> bool:
    """Evaluate and, if a condition fired, apply it. Returns True when the game ended."""
    result = evaluate_win(room)
    if result and result.game_over:
        apply_win(room, result)
        return True
    return False
