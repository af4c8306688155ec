"""
WebSocket Hub — real-time room subscriptions.

URL: /ws/{code}?playerId={player_id}

Connection flow:
  1. Validate room + player exist (close 4404 / 4403 otherwise)
  2. Register the socket; the first socket of a room subscribes to the store
  3. Mark the player connected (presence merge)
  4. Send a private "connected" message: public room + the player's own view
  5. Message loop (intents)
  6. On disconnect: unregister, mark disconnected, drop the subscription with the last socket

Every change to the room document, whoever made it, is pushed to each
connected player as "room_state" with that player's private view attached.

Client → server message types ({"type": ..., "data": {...}}):
  ping            — keep-alive heartbeat → "pong"
  ready           — acknowledge role (ROLE_REVEAL)
  start           — host starts the game
  night_action    — {"phase", "target" | "targets"}; empty target = no action
  vote            — {"target"}: player id or "skip"
  hunter_shot     — {"target"} or null to pass
  advance         — {"expectedPhase"}: level-triggered phase advance
  update_settings — host only, LOBBY
  reset           — host only

Phase timeouts:
  Whenever a room enters a timed phase (night sub-phase, HUNTER_ACTION,
  DAY_VOTE) a task sleeps until `phase_ends_at` and then calls
  `expire_phase`. Re-entering a phase with a new deadline replaces the task.
"""
import asyncio
import json
import logging
from typing import Callable, Dict, List, Optional, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from agents.game_master import game_master
from engine.errors import GameError
from models.game import GameSettings, Phase, Room
from utils.room_codes import normalize_room_code

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Phase timeouts ────────────────────────────────────────────────────────────

# {code: ((phase, phase_ends_at), task)}
_phase_timeout_tasks: Dict[str, Tuple[Tuple[Phase, float], asyncio.Task]] = {}


def schedule_phase_timeout(room: Room) -> None:
    """Make sure exactly one timeout task matches the room's current deadline."""
    key = (room.phase, room.phase_ends_at)
    existing = _phase_timeout_tasks.get(room.code)
    if existing and existing[0] == key:
        return
    if existing:
        existing[1].cancel()
        _phase_timeout_tasks.pop(room.code, None)
    if room.phase_ends_at is None:
        return

    delay = max(0.0, room.phase_ends_at - game_master.clock())
    task = asyncio.create_task(_phase_timeout(room.code, room.phase, delay))
    _phase_timeout_tasks[room.code] = (key, task)
    logger.debug(f"[{room.code}] {room.phase.value} expires in {delay:.1f}s")


def cancel_phase_timeout(code: str) -> None:
    existing = _phase_timeout_tasks.pop(code, None)
    if existing:
        existing[1].cancel()


async def _phase_timeout(code: str, phase: Phase, delay: float) -> None:
    """Expire `phase` after `delay` seconds if the room is still in it."""
    await asyncio.sleep(delay)
    existing = _phase_timeout_tasks.get(code)
    if existing and existing[1] is asyncio.current_task():
        _phase_timeout_tasks.pop(code, None)
    try:
        room = await game_master.expire_phase(code, phase)
    except GameError as exc:
        logger.warning(f"[{code}] Timeout for {phase.value} failed: {exc.message}")
        return
    logger.info(f"[{code}] Timeout fired for {phase.value} → {room.phase.value}")
    schedule_phase_timeout(room)


# ── Connection Manager ─────────────────────────────────────────────────────────

class ConnectionManager:
    """
    Tracks active WebSocket connections per room and the store subscription
    that feeds them. Safe for asyncio single-threaded event loop (no extra
    locking needed).
    """

    def __init__(self):
        # {code: {player_id: WebSocket}}
        self._rooms: Dict[str, Dict[str, WebSocket]] = {}
        # {code: unsubscribe}
        self._subscriptions: Dict[str, Callable[[], None]] = {}

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def connect(self, code: str, player_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self._rooms.setdefault(code, {})[player_id] = ws
        if code not in self._subscriptions:
            self._subscriptions[code] = game_master.store.subscribe(code, self._on_room_change)
        logger.debug(f"[{code}] {player_id} connected ({self.count(code)} total)")

    def disconnect(self, code: str, player_id: str) -> None:
        room_conns = self._rooms.get(code, {})
        room_conns.pop(player_id, None)
        if not room_conns:
            self._rooms.pop(code, None)
            unsubscribe = self._subscriptions.pop(code, None)
            if unsubscribe:
                unsubscribe()

    def count(self, code: str) -> int:
        return len(self._rooms.get(code, {}))

    def is_connected(self, code: str, player_id: str) -> bool:
        return player_id in self._rooms.get(code, {})

    # ── Sending ────────────────────────────────────────────────────────────────

    async def send_to(self, code: str, player_id: str, message: Dict) -> None:
        """Send a private message to a single player."""
        ws = self._rooms.get(code, {}).get(player_id)
        if ws:
            try:
                await ws.send_json(message)
            except Exception as exc:
                logger.warning(f"[{code}] send_to {player_id} failed: {exc}")
                self.disconnect(code, player_id)

    async def broadcast_room(self, room: Room) -> None:
        """Push the room to every connected player, each with their own private view."""
        public = room.to_public()
        for pid in list(self._rooms.get(room.code, {})):
            await self.send_to(room.code, pid, {
                "type": "room_state",
                "room": public,
                "you": game_master.player_view(room, pid),
            })

    async def _on_room_change(self, room: Room) -> None:
        await self.broadcast_room(room)
        schedule_phase_timeout(room)


# Module-level singleton
manager = ConnectionManager()


# ── WebSocket endpoint ─────────────────────────────────────────────────────────

@router.websocket("/ws/{code}")
async def websocket_endpoint(
    ws: WebSocket,
    code: str,
    playerId: str = Query(..., description="Player id used to join the room"),
):
    code = normalize_room_code(code)

    # ── Validate room and player ───────────────────────────────────────────────
    try:
        room = await game_master.get_room(code)
    except GameError:
        await ws.close(code=4404, reason="Room not found")
        return
    if playerId not in room.players:
        await ws.close(code=4403, reason="Player not found in this room")
        return

    # ── Accept and register ────────────────────────────────────────────────────
    await manager.connect(code, playerId, ws)
    room = await game_master.set_connected(code, playerId, True) or room

    await manager.send_to(code, playerId, {
        "type": "connected",
        "playerId": playerId,
        "room": room.to_public(),
        "you": game_master.player_view(room, playerId),
    })
    schedule_phase_timeout(room)

    # ── Message loop ───────────────────────────────────────────────────────────
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send_to(code, playerId, {
                    "type": "error",
                    "message": "Invalid JSON",
                    "code": "PARSE_ERROR",
                })
                continue

            msg_type = data.get("type", "")
            inner_data = data.get("data") if isinstance(data.get("data"), dict) else {}
            await _handle_message(code, playerId, msg_type, inner_data)

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(code, playerId)
        try:
            await game_master.set_connected(code, playerId, False)
        except GameError as exc:
            logger.debug(f"[{code}] Presence update skipped: {exc.message}")


# ── Message dispatcher ─────────────────────────────────────────────────────────

async def _handle_message(code: str, player_id: str, msg_type: str, data: Dict) -> None:
    try:
        await _dispatch_message(code, player_id, msg_type, data)
    except WebSocketDisconnect:
        raise
    except GameError as exc:
        logger.info(f"[{code}] Rejected {msg_type} from {player_id}: {exc.code} {exc.message}")
        await manager.send_to(code, player_id, {
            "type": "error", "message": exc.message, "code": exc.code,
        })
    except ValueError as exc:  # pydantic ValidationError included
        await manager.send_to(code, player_id, {
            "type": "error", "message": str(exc), "code": "INVALID_PAYLOAD",
        })
    except Exception:
        logger.exception("[%s] Unhandled error in _handle_message (type=%s)", code, msg_type)
        await manager.send_to(code, player_id, {
            "type": "error", "message": "Internal server error", "code": "SERVER_ERROR",
        })


def _targets(data: Dict) -> List[str]:
    if data.get("targets") is not None:
        return list(data["targets"])
    return [data["target"]] if data.get("target") else []


async def _dispatch_message(code: str, player_id: str, msg_type: str, data: Dict) -> None:
    room: Optional[Room] = None

    if msg_type == "ping":
        await manager.send_to(code, player_id, {"type": "pong"})
        return

    elif msg_type == "ready":
        room = await game_master.mark_ready(code, player_id)

    elif msg_type == "start":
        room = await game_master.start_game(code, player_id)

    elif msg_type == "night_action":
        room, info = await game_master.submit_night_action(
            code, player_id, Phase(data.get("phase", "")), _targets(data),
        )
        if info is not None:
            await manager.send_to(code, player_id, {"type": "night_result", "result": info})

    elif msg_type == "vote":
        room = await game_master.submit_vote(code, player_id, data.get("target", ""))

    elif msg_type == "hunter_shot":
        room = await game_master.submit_hunter_shot(code, player_id, data.get("target") or None)

    elif msg_type == "advance":
        room = await game_master.advance_phase(code, Phase(data.get("expectedPhase", "")))

    elif msg_type == "update_settings":
        room = await game_master.update_settings(
            code, player_id, GameSettings.model_validate(data.get("settings", {})),
        )

    elif msg_type == "reset":
        room = await game_master.reset_room(code, player_id)
        cancel_phase_timeout(code)

    else:
        await manager.send_to(code, player_id, {
            "type": "error",
            "message": f"Unknown message type: '{msg_type}'",
            "code": "UNKNOWN_TYPE",
        })
        return

    schedule_phase_timeout(room)
