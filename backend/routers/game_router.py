"""
Room HTTP endpoints.

Routes:
  GET  /api/roles                          — Role catalog (for the settings screen)
  POST /api/rooms                          — Create room + register host as first player
  GET  /api/rooms/{code}                   — Public room state (roles hidden until GAME_OVER)
  GET  /api/rooms/{code}/players/{pid}     — A player's private view (own role, teammates)
  POST /api/rooms/{code}/join              — Player joins the lobby (or rejoins)
  POST /api/rooms/{code}/leave             — Player leaves the lobby
  PUT  /api/rooms/{code}/settings          — Host updates settings (LOBBY only)
  POST /api/rooms/{code}/start             — Host starts the game (role assignment)
  POST /api/rooms/{code}/ready             — Player acknowledges their role
  POST /api/rooms/{code}/night-action      — Night sub-phase submission
  POST /api/rooms/{code}/vote              — Day vote (player id or "skip")
  POST /api/rooms/{code}/hunter-shot       — Fallen Hunter's shot (target may be null)
  POST /api/rooms/{code}/advance           — Level-triggered phase advance
  POST /api/rooms/{code}/reset             — Host resets the room to LOBBY
  DELETE /api/rooms/{code}                 — Host closes the room (?actor_id=...)
  GET  /api/rooms/{code}/analysis          — Post-game voting matrix + accolades

Domain errors (GameError) are turned into JSON responses by the handler
registered in main.py.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Response

from agents.game_master import game_master
from models.game import (
    ActorRequest, AdvanceRequest,
    CreateRoomRequest, CreateRoomResponse,
    HunterShotRequest,
    JoinRoomRequest, JoinRoomResponse,
    NightActionRequest, Room, UpdateSettingsRequest, VoteRequest,
)
from roles.registry import role_registry
from routers.ws_router import cancel_phase_timeout, schedule_phase_timeout
from utils.room_codes import normalize_room_code

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms"])


def _state(room: Room) -> Dict[str, Any]:
    """Public room state, after making sure its phase timer is armed."""
    schedule_phase_timeout(room)
    return room.to_public()


@router.get("/roles")
async def list_roles():
    return {"roles": [role.to_dict() for role in role_registry.all()]}


@router.post("/rooms", response_model=CreateRoomResponse, status_code=201)
async def create_room(body: CreateRoomRequest):
    room = await game_master.create_room(
        body.host_id, body.host_name, body.avatar_color, body.settings,
    )
    return CreateRoomResponse(code=room.code, host_id=room.host_id)


@router.get("/rooms/{code}")
async def get_room(code: str):
    room = await game_master.get_room(code)
    return room.to_public()


@router.get("/rooms/{code}/players/{player_id}")
async def get_player_view(code: str, player_id: str):
    room = await game_master.get_room(code)
    return game_master.player_view(room, player_id)


@router.post("/rooms/{code}/join", response_model=JoinRoomResponse)
async def join_room(code: str, body: JoinRoomRequest):
    room = await game_master.join_room(code, body.player_id, body.player_name, body.avatar_color)
    return JoinRoomResponse(code=room.code, player_id=body.player_id)


@router.post("/rooms/{code}/leave")
async def leave_room(code: str, body: ActorRequest):
    return _state(await game_master.leave_room(code, body.actor_id))


@router.put("/rooms/{code}/settings")
async def update_settings(code: str, body: UpdateSettingsRequest):
    return _state(await game_master.update_settings(code, body.actor_id, body.settings))


@router.post("/rooms/{code}/start")
async def start_game(code: str, body: ActorRequest):
    return _state(await game_master.start_game(code, body.actor_id))


@router.post("/rooms/{code}/ready")
async def mark_ready(code: str, body: ActorRequest):
    return _state(await game_master.mark_ready(code, body.actor_id))


@router.post("/rooms/{code}/night-action")
async def submit_night_action(code: str, body: NightActionRequest):
    targets: List[str] = body.targets if body.targets is not None else (
        [body.target] if body.target else []
    )
    room, info = await game_master.submit_night_action(code, body.actor_id, body.phase, targets)
    return {"room": _state(room), "result": info}


@router.post("/rooms/{code}/vote")
async def submit_vote(code: str, body: VoteRequest):
    return _state(await game_master.submit_vote(code, body.actor_id, body.target))


@router.post("/rooms/{code}/hunter-shot")
async def submit_hunter_shot(code: str, body: HunterShotRequest):
    return _state(await game_master.submit_hunter_shot(code, body.actor_id, body.target))


@router.post("/rooms/{code}/advance")
async def advance_phase(code: str, body: AdvanceRequest):
    return _state(await game_master.advance_phase(code, body.expected_phase))


@router.post("/rooms/{code}/reset")
async def reset_room(code: str, body: ActorRequest):
    room = await game_master.reset_room(code, body.actor_id)
    cancel_phase_timeout(room.code)
    return room.to_public()


@router.delete("/rooms/{code}", status_code=204)
async def delete_room(code: str, actor_id: str):
    await game_master.delete_room(code, actor_id)
    cancel_phase_timeout(normalize_room_code(code))
    return Response(status_code=204)


@router.get("/rooms/{code}/analysis")
async def get_analysis(code: str):
    analysis = await game_master.get_analysis(code)
    return analysis.model_dump()
