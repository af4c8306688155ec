"""
Game Master — pure deterministic Python, no LLM.

Responsibilities:
- Accept client intents (create/join/leave, start, ready, night actions,
  votes, Hunter shots, reset) and apply them to the room document
- Drive level-triggered phase advancement and phase timeouts
- Serve per-player private views and post-game analytics

Every state change goes through `RoomStore.atomic_update` with one of the pure
transforms in `engine/`. The transform may be re-run on contention, so
everything it needs (clock reading, rng) is resolved before the update.
"""
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import settings
from engine import lobby, phase_controller
from engine.analytics import GameAnalysis, analyze_game
from engine.day_vote import submit_vote as _submit_vote
from engine.deaths import submit_hunter_shot as _submit_hunter_shot
from engine.errors import (
    InvalidActionForPhase, PermissionDenied, RoomCodeCollision, RoomCreationFailed, RoomNotFound,
)
from engine.win_conditions import winning_players
from models.game import GameSettings, Phase, Room
from roles.registry import role_registry
from services.room_store import RoomStore, Transform, get_room_store
from utils.room_codes import generate_room_code, normalize_room_code

logger = logging.getLogger(__name__)


class GameMaster:
    """
    Intent layer between transports (HTTP, WebSocket) and the room store.
    `store`, `rng` and `clock` are injectable for tests.
    """

    def __init__(
        self,
        store: Optional[RoomStore] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._store = store
        # Tests pass a seeded Random
        self.rng = rng or random.SystemRandom()
        self.clock = clock or time.time

    @property
    def store(self) -> RoomStore:
        return self._store or get_room_store()

    async def _update(self, code: str, fn: Transform) -> Room:
        room, _ = await self.store.atomic_update(normalize_room_code(code), fn)
        return room

    async def get_room(self, code: str) -> Room:
        room = await self.store.read(normalize_room_code(code))
        if room is None:
            raise RoomNotFound(f"Room {code} not found")
        return room

    # ── Lobby ──────────────────────────────────────────────────────────────────

    async def create_room(
        self,
        host_id: str,
        host_name: str,
        avatar_color: Optional[str] = None,
        game_settings: Optional[GameSettings] = None,
    ) -> Room:
        """Create a room under a fresh code, retrying on collisions."""
        for attempt in range(1, settings.room_code_max_attempts + 1):
            code = generate_room_code(self.rng)
            room = lobby.new_room(code, host_id, host_name, self.clock(), avatar_color, game_settings)
            try:
                room = await self.store.create(room)
            except RoomCodeCollision:
                logger.warning(f"[{code}] Room code collision (attempt {attempt}/{settings.room_code_max_attempts})")
                continue
            logger.info(f"[{code}] Room created by {host_id}")
            return room
        raise RoomCreationFailed("Could not find a free room code, please try again")

    async def join_room(
        self, code: str, player_id: str, name: str, avatar_color: Optional[str] = None,
    ) -> Room:
        now = self.clock()
        return await self._update(
            code, lambda room: lobby.join_room(room, player_id, name, now, avatar_color)
        )

    async def leave_room(self, code: str, player_id: str) -> Room:
        return await self._update(code, lambda room: lobby.leave_room(room, player_id))

    async def update_settings(self, code: str, actor_id: str, game_settings: GameSettings) -> Room:
        return await self._update(
            code, lambda room: lobby.update_settings(room, actor_id, game_settings)
        )

    async def set_connected(self, code: str, player_id: str, connected: bool) -> Optional[Room]:
        """Presence flag. Blind merge: nothing else in the room depends on it."""
        room = await self.get_room(code)
        if player_id not in room.players or room.players[player_id].connected == connected:
            return None
        return await self.store.merge(
            room.code, {"players": {player_id: {"connected": connected}}}
        )

    # ── Game flow ──────────────────────────────────────────────────────────────

    async def start_game(self, code: str, actor_id: str) -> Room:
        now = self.clock()
        # One shuffle seed per intent, so a retried transform deals the same deck
        seed = self.rng.getrandbits(64)
        return await self._update(
            code,
            lambda room: phase_controller.start_game(room, actor_id, random.Random(seed), now),
        )

    async def mark_ready(self, code: str, actor_id: str) -> Room:
        now = self.clock()
        return await self._update(code, lambda room: phase_controller.mark_ready(room, actor_id, now))

    async def submit_night_action(
        self, code: str, actor_id: str, phase: Phase, targets: List[str],
    ) -> Tuple[Room, Optional[Dict[str, Any]]]:
        """Returns the updated room and the actor's private result (Seer), if any."""
        now = self.clock()
        captured: Dict[str, Any] = {}

        def _apply(room: Room) -> Room:
            updated, info = phase_controller.submit_night_action(room, actor_id, phase, targets, now)
            captured["info"] = info
            return updated

        room = await self._update(code, _apply)
        return room, captured.get("info")

    async def submit_vote(self, code: str, actor_id: str, target: str) -> Room:
        now = self.clock()
        return await self._update(code, lambda room: _submit_vote(room, actor_id, target, now))

    async def submit_hunter_shot(self, code: str, actor_id: str, target: Optional[str]) -> Room:
        now = self.clock()
        return await self._update(
            code, lambda room: _submit_hunter_shot(room, actor_id, target, now)
        )

    async def advance_phase(self, code: str, expected_phase: Phase) -> Room:
        now = self.clock()
        return await self._update(
            code, lambda room: phase_controller.advance_phase(room, expected_phase, now)
        )

    async def expire_phase(self, code: str, expected_phase: Phase) -> Room:
        now = self.clock()
        return await self._update(
            code, lambda room: phase_controller.expire_phase(room, expected_phase, now)
        )

    async def reset_room(self, code: str, actor_id: str) -> Room:
        return await self._update(code, lambda room: phase_controller.reset_room(room, actor_id))

    async def delete_room(self, code: str, actor_id: str) -> None:
        """Host only, from any phase. Discards the room and frees its code."""
        room = await self.get_room(code)
        if not room.is_host(actor_id):
            raise PermissionDenied("Only the host can close the room")
        await self.store.delete(room.code)
        logger.info(f"[{room.code}] Room closed by {actor_id}")

    # ── Read models ────────────────────────────────────────────────────────────

    async def get_analysis(self, code: str) -> GameAnalysis:
        room = await self.get_room(code)
        if room.phase != Phase.GAME_OVER:
            raise InvalidActionForPhase("Analytics are available once the game is over")
        return analyze_game(room.vote_history, room.ordered_players())

    def player_view(self, room: Room, player_id: str) -> Dict[str, Any]:
        """
        What one player may see on top of the public room: their own role,
        the teammates that role knows, their lover and any remaining ammo.
        Once the game is over it also says whether they won.
        """
        player = room.players.get(player_id)
        if player is None or player.role is None:
            return {"playerId": player_id, "role": None}

        role = role_registry.for_player(player)
        view: Dict[str, Any] = {
            "playerId": player_id,
            "role": role.to_dict(),
            "ammo": room.ammo.get(player_id, 0),
            "teammates": role.visible_teammates(room, player),
            "lover": None,
        }
        if room.lovers and player_id in room.lovers:
            view["lover"] = next(pid for pid in room.lovers if pid != player_id)
        if room.phase == Phase.GAME_OVER:
            view["won"] = player_id in winning_players(room)
        return view


# Module-level singleton
game_master = GameMaster()
