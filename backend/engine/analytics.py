"""
Post-game analytics over the day-by-day vote history.

Read-only: nothing here mutates a room. Designed to be called once the game is
over, but any history works (e.g. to show a running tally).
"""
from typing import Dict, List, Optional

from pydantic import BaseModel

from models.game import NO_VOTE, DayVoteRecord, Player
from roles.registry import role_registry


class PlayerStats(BaseModel):
    player_id: str
    name: str
    role: Optional[str] = None
    votes_cast: int = 0
    skips: int = 0
    votes_received: int = 0
    accurate_votes: int = 0


class GameAnalysis(BaseModel):
    # player id → one entry per day: target id, "skip" or "no_vote"
    voting_matrix: Dict[str, List[str]] = {}
    # accolade → every player tied at the top (empty when nobody scored)
    accolades: Dict[str, List[str]] = {}
    stats: Dict[str, PlayerStats] = {}


def _leaders(scores: Dict[str, int]) -> List[str]:
    top = max(scores.values(), default=0)
    if top <= 0:
        return []
    return sorted(pid for pid, score in scores.items() if score == top)


def analyze_game(history: List[DayVoteRecord], players: List[Player]) -> GameAnalysis:
    """
    Build the voting matrix and accolades:
      - most_accurate: votes cast against an adversary on the day that adversary was voted out
      - most_targeted: votes received across all days, whatever the outcome
    """
    by_id = {p.id: p for p in players}
    stats = {
        p.id: PlayerStats(player_id=p.id, name=p.name, role=p.role)
        for p in players
    }
    matrix: Dict[str, List[str]] = {p.id: [] for p in players}

    for record in history:
        eliminated = by_id.get(record.outcome)
        adversary_out = (
            eliminated is not None
            and role_registry.for_player(eliminated).is_adversary()
        )

        for player in players:
            choice = record.votes.get(player.id, NO_VOTE)
            matrix[player.id].append(choice)
            if choice == NO_VOTE:
                continue
            entry = stats[player.id]
            if choice not in by_id:
                entry.skips += 1
                continue
            entry.votes_cast += 1
            stats[choice].votes_received += 1
            if adversary_out and choice == record.outcome:
                entry.accurate_votes += 1

    accolades = {
        "most_accurate": _leaders({pid: s.accurate_votes for pid, s in stats.items()}),
        "most_targeted": _leaders({pid: s.votes_received for pid, s in stats.items()}),
    }
    return GameAnalysis(voting_matrix=matrix, accolades=accolades, stats=stats)
