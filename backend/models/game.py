from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any, Set
from enum import Enum
from datetime import datetime, timezone
import time

from config import settings


def utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


# Day vote sentinels. Player ids are never allowed to collide with these.
SKIP = "skip"
TIE = "tie"
NO_VOTE = "no_vote"


class Phase(str, Enum):
    LOBBY = "LOBBY"
    ROLE_REVEAL = "ROLE_REVEAL"
    NIGHT_INTRO = "NIGHT_INTRO"
    NIGHT_CUPID = "NIGHT_CUPID"
    NIGHT_WEREWOLF = "NIGHT_WEREWOLF"
    NIGHT_MINION = "NIGHT_MINION"
    NIGHT_SORCERER = "NIGHT_SORCERER"
    NIGHT_DOCTOR = "NIGHT_DOCTOR"
    NIGHT_SEER = "NIGHT_SEER"
    NIGHT_MASON = "NIGHT_MASON"
    NIGHT_TWIN = "NIGHT_TWIN"
    NIGHT_VIGILANTE = "NIGHT_VIGILANTE"
    HUNTER_ACTION = "HUNTER_ACTION"
    DAY_REVEAL = "DAY_REVEAL"
    DAY_VOTE = "DAY_VOTE"
    GAME_OVER = "GAME_OVER"


# Night sub-phases in wake-up order. Team-building comes first, then the
# adversaries and their helpers, then protection and investigation; the
# limited-use kill is last.
NIGHT_PHASE_SEQUENCE: List[Phase] = [
    Phase.NIGHT_CUPID,
    Phase.NIGHT_WEREWOLF,
    Phase.NIGHT_MINION,
    Phase.NIGHT_SORCERER,
    Phase.NIGHT_DOCTOR,
    Phase.NIGHT_SEER,
    Phase.NIGHT_MASON,
    Phase.NIGHT_TWIN,
    Phase.NIGHT_VIGILANTE,
]


class Team(str, Enum):
    VILLAGE = "village"
    WEREWOLF = "werewolf"
    NEUTRAL = "neutral"
    LOVERS = "lovers"


class CupidMode(str, Enum):
    SELFLESS = "selfless"   # Cupid never shares the lovers' win
    INCLUDED = "included"   # Cupid wins with the lovers if the three of them are the last alive


class GameSettings(BaseModel):
    # Clients send camelCase (wolfCount, activeRoles); dumps stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action_wait_time: int = Field(default_factory=lambda: settings.default_action_wait_time, ge=1)
    voting_wait_time: int = Field(default_factory=lambda: settings.default_voting_wait_time, ge=1)
    wolf_count: int = Field(default=1, ge=1)
    active_roles: Dict[str, bool] = {}
    cupid_mode: CupidMode = CupidMode.SELFLESS
    fool_ends_game: bool = True
    tanner_ends_game: bool = False
    cupid_can_choose_self: bool = False

    def is_role_active(self, role_id: str) -> bool:
        return bool(self.active_roles.get(role_id))


class Player(BaseModel):
    id: str
    name: str
    role: Optional[str] = None
    is_alive: bool = True
    ready: bool = False
    avatar_color: Optional[str] = None  # presentation only
    connected: bool = False              # presentation only, written via merge
    joined_at: float = Field(default_factory=time.time)

    @field_validator("id")
    @classmethod
    def _not_a_sentinel(cls, value: str) -> str:
        if value in (SKIP, TIE, NO_VOTE):
            raise ValueError(f"'{value}' is reserved and cannot be used as a player id")
        return value

    def to_public(self) -> Dict[str, Any]:
        """Safe representation — omits role (hidden during game)."""
        return {
            "id": self.id,
            "name": self.name,
            "isAlive": self.is_alive,
            "ready": self.ready,
            "avatarColor": self.avatar_color,
            "connected": self.connected,
        }


class NightActions(BaseModel):
    """One night's in-progress action set. Cleared when a night begins."""
    wolf_target: Optional[str] = None
    doctor_protect: Optional[str] = None
    vigilante_target: Optional[str] = None
    cupid_links: Optional[List[str]] = None
    sorcerer_check: Optional[str] = None
    # Sub-phases whose submission (possibly an abstention) has been recorded
    submitted: List[Phase] = []


class DayVoteRecord(BaseModel):
    day: int
    votes: Dict[str, str] = {}   # voter id → target id or SKIP
    outcome: str                 # target id, TIE or SKIP


class Room(BaseModel):
    code: str
    host_id: str
    phase: Phase = Phase.LOBBY
    players: Dict[str, Player] = {}
    night_actions: NightActions = Field(default_factory=NightActions)
    ammo: Dict[str, int] = {}
    lovers: Optional[List[str]] = None
    votes: Dict[str, str] = {}
    vote_history: List[DayVoteRecord] = []
    settings: GameSettings = Field(default_factory=GameSettings)
    winners: Set[str] = set()
    day: int = 0
    day_log: List[str] = []
    phase_ends_at: Optional[float] = None
    pending_hunters: List[str] = []
    # Sorcerers who have found the Seer; their win depends on it
    found_seer: List[str] = []
    # Phase that handed control to HUNTER_ACTION; consumed when the shot resolves
    origin_phase: Optional[Phase] = None
    updated_at: datetime = Field(default_factory=utcnow)

    # ── Read helpers ──────────────────────────────────────────────────────────

    def ordered_players(self) -> List[Player]:
        return sorted(self.players.values(), key=lambda p: (p.joined_at, p.id))

    def alive_players(self) -> List[Player]:
        return [p for p in self.ordered_players() if p.is_alive]

    def is_alive(self, player_id: Optional[str]) -> bool:
        player = self.players.get(player_id) if player_id else None
        return bool(player and player.is_alive)

    def is_host(self, player_id: str) -> bool:
        return self.host_id == player_id

    def semantic_dump(self) -> Dict[str, Any]:
        """JSON-safe dump of every field except the volatile timestamp."""
        return self.model_dump(mode="json", exclude={"updated_at"})

    def to_public(self) -> Dict[str, Any]:
        """Room view safe to broadcast while the game is running (roles hidden)."""
        revealed = self.phase == Phase.GAME_OVER
        return {
            "code": self.code,
            "hostId": self.host_id,
            "phase": self.phase.value,
            "day": self.day,
            "players": [
                {**p.to_public(), **({"role": p.role} if revealed else {})}
                for p in self.ordered_players()
            ],
            "votes": self.votes,
            "voteHistory": [r.model_dump() for r in self.vote_history],
            "dayLog": self.day_log,
            "phaseEndsAt": self.phase_ends_at,
            "winners": sorted(self.winners),
            "settings": self.settings.model_dump(mode="json"),
        }


# ── HTTP request/response models ──────────────────────────────────────────────

class CreateRoomRequest(BaseModel):
    host_id: str
    host_name: str = "Host"
    avatar_color: Optional[str] = None
    settings: Optional[GameSettings] = None


class CreateRoomResponse(BaseModel):
    code: str
    host_id: str


class JoinRoomRequest(BaseModel):
    player_id: str
    player_name: str
    avatar_color: Optional[str] = None


class JoinRoomResponse(BaseModel):
    code: str
    player_id: str


class ActorRequest(BaseModel):
    actor_id: str


class UpdateSettingsRequest(BaseModel):
    actor_id: str
    settings: GameSettings


class NightActionRequest(BaseModel):
    actor_id: str
    phase: Phase
    target: Optional[str] = None
    targets: Optional[List[str]] = None  # Cupid links a pair


class VoteRequest(BaseModel):
    actor_id: str
    target: str  # player id or SKIP


class HunterShotRequest(BaseModel):
    actor_id: str
    target: Optional[str] = None


class AdvanceRequest(BaseModel):
    expected_phase: Phase
