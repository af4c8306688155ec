"""
Role capability contract.

Every role-specific rule lives behind one of the hooks below. The engine never
compares role identifiers; it asks the registered Role for its team, its night
sub-phase and what happens when its holder acts, dies or is voted out.

Hooks that take a `room` receive the engine's working copy, never a caller's
snapshot, and may mutate it in place.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from engine.errors import InvalidActionForPhase
from models.game import Phase, Player, Room, Team


class NightContext:
    """
    Scratchpad shared by `on_night_resolve` hooks during one night resolution.
    Roles are visited in ascending `resolve_order`; a shield recorded by an
    earlier role is visible to every later one.
    """

    def __init__(self, room: Room):
        self.room = room
        self.actions = room.night_actions
        self.shielded: Set[str] = set()
        self.deaths: List[str] = []
        self.causes: Dict[str, str] = {}

    def shield(self, player_id: Optional[str]) -> None:
        if player_id:
            self.shielded.add(player_id)

    def kill(self, player_id: Optional[str], cause: str) -> bool:
        """Kill `player_id` unless shielded or already dead. Returns True on a death."""
        if not player_id or player_id in self.shielded:
            return False
        if not self.room.is_alive(player_id):
            return False
        self.room.players[player_id].is_alive = False
        self.deaths.append(player_id)
        self.causes[player_id] = cause
        return True


@dataclass
class VoteOutEffect:
    winners: Set[str] = field(default_factory=set)
    ends_game: bool = False


class Role:
    """Base class for all roles. Subclasses override class attributes and hooks."""

    id: str = "unknown"
    name: str = "Unknown"
    description: str = ""
    team: Team = Team.VILLAGE
    weight: int = 0                         # room-composition tuning only
    night_phase: Optional[Phase] = None      # sub-phase this role wakes up in
    resolve_order: Optional[int] = None      # position in night resolution, if any
    starting_ammo: int = 0                   # limited-use roles
    copies: int = 1                          # cards dealt when the host enables it

    # ── Night ──────────────────────────────────────────────────────────────────

    def has_night_action(self, room: Room, player: Player) -> bool:
        """Whether this living holder still has something to do in its sub-phase."""
        return self.night_phase is not None

    def validate_night_action(self, room: Room, player: Player, targets: List[str]) -> None:
        """Single living target, or none for an abstention."""
        if len(targets) > 1:
            raise InvalidActionForPhase(f"{self.name} takes a single target")
        for target in targets:
            if not room.is_alive(target):
                raise InvalidActionForPhase(f"'{target}' is not a living player")

    def record_night_action(self, room: Room, player: Player, targets: List[str]) -> Optional[Dict]:
        """
        Write this role's submission into `room.night_actions`.
        Returns private information for the actor (investigations) or None.
        """
        return None

    def on_night_resolve(self, ctx: NightContext) -> None:
        pass

    # ── Death and day ──────────────────────────────────────────────────────────

    def on_death(self, room: Room, player: Player, cause: str) -> None:
        pass

    def on_vote_out(self, room: Room, player: Player) -> Optional[VoteOutEffect]:
        return None

    def vote_weight(self, room: Room, player: Player) -> int:
        return 1

    # ── Teams ──────────────────────────────────────────────────────────────────

    def win_team(self) -> Team:
        """Team membership used by the win evaluator."""
        return self.team

    def is_adversary(self) -> bool:
        return self.win_team() == Team.WEREWOLF

    def contributes_to_win(self, team: Team) -> bool:
        return self.win_team() == team

    def appears_as(self, room: Room, player: Player) -> Team:
        """Team reported to investigative roles."""
        return self.win_team()

    def shares_lovers_win(self, room: Room, player: Player) -> bool:
        """Whether this holder joins the lovers' win as the one extra survivor."""
        return False

    def is_winner(self, room: Room, player: Player) -> bool:
        """Whether this holder is among the winners once the game is over."""
        if self.id in room.winners:
            return True
        if Team.LOVERS.value in room.winners and room.lovers and player.id in room.lovers:
            return True
        return any(self.contributes_to_win(team) for team in Team if team.value in room.winners)

    def visible_teammates(self, room: Room, player: Player) -> List[str]:
        """Ids of the players this holder knows by role. Nobody, by default."""
        return []

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "team": self.team.value,
            "weight": self.weight,
            "nightPhase": self.night_phase.value if self.night_phase else None,
        }
