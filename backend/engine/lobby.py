"""
Lobby transforms: room creation, joining, leaving and host settings.
"""
import logging
from typing import Optional

from engine.errors import InvalidActionForPhase, PermissionDenied
from models.game import GameSettings, Phase, Player, Room

logger = logging.getLogger(__name__)


def new_room(
    code: str,
    host_id: str,
    host_name: str,
    now: float,
    avatar_color: Optional[str] = None,
    game_settings: Optional[GameSettings] = None,
) -> Room:
    host = Player(id=host_id, name=host_name, avatar_color=avatar_color, joined_at=now)
    return Room(
        code=code,
        host_id=host_id,
        players={host_id: host},
        settings=game_settings or GameSettings(),
    )


def join_room(
    room: Room,
    player_id: str,
    name: str,
    now: float,
    avatar_color: Optional[str] = None,
) -> Optional[Room]:
    """
    Add a player, or refresh a returning player's display attributes.
    New players may only join while the room is in LOBBY. A finished game is
    frozen until the host resets it, display attributes included.
    """
    existing = room.players.get(player_id)
    if existing is not None:
        if existing.name == name and existing.avatar_color == avatar_color:
            return None
        if room.phase == Phase.GAME_OVER:
            raise InvalidActionForPhase("The game is over; wait for the host to reset the room")
        room = room.model_copy(deep=True)
        room.players[player_id].name = name
        room.players[player_id].avatar_color = avatar_color
        logger.info(f"[{room.code}] Player {player_id} rejoined as '{name}'")
        return room

    if room.phase != Phase.LOBBY:
        raise InvalidActionForPhase("This game has already started")

    room = room.model_copy(deep=True)
    room.players[player_id] = Player(
        id=player_id, name=name, avatar_color=avatar_color, joined_at=now,
    )
    logger.info(f"[{room.code}] Player {player_id} ('{name}') joined ({len(room.players)} in room)")
    return room


def leave_room(room: Room, player_id: str) -> Optional[Room]:
    """Remove a player before roles are dealt. The host seat passes to the longest-waiting player."""
    if player_id not in room.players:
        return None
    if room.phase != Phase.LOBBY:
        raise InvalidActionForPhase("Players cannot leave once roles are dealt")

    room = room.model_copy(deep=True)
    del room.players[player_id]
    if room.host_id == player_id and room.players:
        room.host_id = room.ordered_players()[0].id
        logger.info(f"[{room.code}] Host left, {room.host_id} is the new host")
    logger.info(f"[{room.code}] Player {player_id} left ({len(room.players)} in room)")
    return room


def update_settings(room: Room, actor_id: str, game_settings: GameSettings) -> Optional[Room]:
    if not room.is_host(actor_id):
        raise PermissionDenied("Only the host can change the settings")
    if room.phase != Phase.LOBBY:
        raise InvalidActionForPhase("Settings are locked once the game starts")
    if room.settings == game_settings:
        return None

    room = room.model_copy(deep=True)
    room.settings = game_settings.model_copy(deep=True)
    logger.info(f"[{room.code}] Settings updated: {game_settings.model_dump(mode='json')}")
    return room
