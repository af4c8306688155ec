"""
Room Store — the synchronization service the engine is written against.

  read(code)              → Room | None
  subscribe(code, fn)     → unsubscribe callable; fn(room) awaited on every change
  atomic_update(code, fn) → read-modify-write with compare-and-swap semantics
  merge(code, fields)     → blind partial write for presentation-only fields
  create(room)            → write-if-absent, RoomCodeCollision otherwise
  delete(code)            → discard the room; True if it existed

`fn` passed to atomic_update is a pure `Room -> Optional[Room]` transform. It
may run more than once when a concurrent writer wins the race, so it must not
have side effects outside the room it returns. Returning None means "nothing
to change" and writes nothing.

Two implementations: an in-process versioned store (default, used by tests and
single-instance deployments) and Firestore (multi-instance).
"""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from config import settings
from engine.errors import ConcurrentModification, RoomCodeCollision, RoomNotFound
from models.game import Room, utcnow

logger = logging.getLogger(__name__)

Transform = Callable[[Room], Optional[Room]]
Listener = Callable[[Room], Awaitable[None]]


def _encode(room: Room) -> Dict[str, Any]:
    return room.model_dump(mode="json")


def _decode(data: Dict[str, Any]) -> Room:
    return Room.model_validate(data)


def _deep_merge(base: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dicts are merged key by key, everything else is replaced (Firestore merge=True)."""
    merged = dict(base)
    for key, value in fields.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class RoomStore(ABC):

    @abstractmethod
    async def read(self, code: str) -> Optional[Room]:
        ...

    @abstractmethod
    async def create(self, room: Room) -> Room:
        ...

    @abstractmethod
    async def atomic_update(self, code: str, fn: Transform) -> Tuple[Room, bool]:
        """Apply `fn` atomically. Returns (current room, whether a write happened)."""
        ...

    @abstractmethod
    async def merge(self, code: str, fields: Dict[str, Any]) -> Room:
        ...

    @abstractmethod
    async def delete(self, code: str) -> bool:
        ...

    @abstractmethod
    def subscribe(self, code: str, listener: Listener) -> Callable[[], None]:
        ...


# ── In-memory ─────────────────────────────────────────────────────────────────

class InMemoryRoomStore(RoomStore):
    """
    Versioned documents held as JSON dicts, so every reader gets its own copy
    and a stored room always survives a serialization round-trip.
    """

    def __init__(self, max_retries: Optional[int] = None):
        self.max_retries = max_retries or settings.transaction_max_retries
        # {code: (version, encoded room)}
        self._docs: Dict[str, Tuple[int, Dict[str, Any]]] = {}
        self._listeners: Dict[str, List[Listener]] = {}

    def _compare_and_set(self, code: str, expected_version: int, data: Dict[str, Any]) -> bool:
        current = self._docs.get(code)
        if current is None or current[0] != expected_version:
            return False
        self._docs[code] = (expected_version + 1, data)
        return True

    async def read(self, code: str) -> Optional[Room]:
        entry = self._docs.get(code)
        return _decode(entry[1]) if entry else None

    async def create(self, room: Room) -> Room:
        if room.code in self._docs:
            raise RoomCodeCollision(f"Room code {room.code} is taken")
        room = room.model_copy(update={"updated_at": utcnow()})
        self._docs[room.code] = (0, _encode(room))
        return room

    async def atomic_update(self, code: str, fn: Transform) -> Tuple[Room, bool]:
        for attempt in range(1, self.max_retries + 1):
            entry = self._docs.get(code)
            if entry is None:
                raise RoomNotFound(f"Room {code} not found")
            version, data = entry
            current = _decode(data)

            updated = fn(current)
            if updated is None:
                return current, False

            updated.updated_at = utcnow()
            if self._compare_and_set(code, version, _encode(updated)):
                await self._notify(code, updated)
                return updated, True
            logger.warning(f"[{code}] Write conflict (attempt {attempt}/{self.max_retries}), retrying")

        raise ConcurrentModification(f"Room {code} kept changing, please retry")

    async def merge(self, code: str, fields: Dict[str, Any]) -> Room:
        entry = self._docs.get(code)
        if entry is None:
            raise RoomNotFound(f"Room {code} not found")
        version, data = entry
        merged = _deep_merge(data, fields)
        merged["updated_at"] = utcnow().isoformat()
        room = _decode(merged)
        self._docs[code] = (version + 1, _encode(room))
        await self._notify(code, room)
        return room

    async def delete(self, code: str) -> bool:
        """Drop the document and its listeners. Later writes raise RoomNotFound."""
        existed = self._docs.pop(code, None) is not None
        self._listeners.pop(code, None)
        if existed:
            logger.info(f"[{code}] Room deleted")
        return existed

    def subscribe(self, code: str, listener: Listener) -> Callable[[], None]:
        self._listeners.setdefault(code, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(code, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(code, None)

        return unsubscribe

    async def _notify(self, code: str, room: Room) -> None:
        listeners = list(self._listeners.get(code, []))
        if not listeners:
            return
        results = await asyncio.gather(
            *(listener(room.model_copy(deep=True)) for listener in listeners),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"[{code}] Subscriber failed: {result}")


# ── Firestore ─────────────────────────────────────────────────────────────────

class FirestoreRoomStore(RoomStore):
    """
    One document per room in `settings.rooms_collection`. Sync client calls run
    in the default thread pool; updates go through Firestore transactions,
    which retry on contention up to `transaction_max_retries` attempts.
    """

    def __init__(self):
        if settings.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
        # Lazy import so the store can be selected before GCP creds exist
        from google.cloud import firestore
        self._firestore = firestore
        self.db = firestore.Client(project=settings.google_cloud_project or None)

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    def _ref(self, code: str):
        return self.db.collection(settings.rooms_collection).document(code)

    async def read(self, code: str) -> Optional[Room]:
        doc = await self._run(lambda: self._ref(code).get())
        if doc.exists:
            return _decode(doc.to_dict())
        return None

    async def create(self, room: Room) -> Room:
        from google.api_core.exceptions import AlreadyExists

        room = room.model_copy(update={"updated_at": utcnow()})
        data = _encode(room)
        try:
            await self._run(lambda: self._ref(room.code).create(data))
        except AlreadyExists:
            raise RoomCodeCollision(f"Room code {room.code} is taken") from None
        return room

    async def atomic_update(self, code: str, fn: Transform) -> Tuple[Room, bool]:
        from google.api_core.exceptions import Aborted

        firestore = self._firestore
        ref = self._ref(code)

        @firestore.transactional
        def _txn(transaction) -> Tuple[Room, bool]:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise RoomNotFound(f"Room {code} not found")
            current = _decode(snapshot.to_dict())
            updated = fn(current)
            if updated is None:
                return current, False
            updated.updated_at = utcnow()
            transaction.set(ref, _encode(updated))
            return updated, True

        def _apply() -> Tuple[Room, bool]:
            transaction = self.db.transaction(max_attempts=settings.transaction_max_retries)
            return _txn(transaction)

        try:
            return await self._run(_apply)
        except ValueError as exc:
            # Exhausted attempts surface as ValueError chained to the last Aborted
            if isinstance(exc.__cause__, Aborted):
                logger.warning(f"[{code}] Transaction retries exhausted")
                raise ConcurrentModification(f"Room {code} kept changing, please retry") from exc
            raise

    async def merge(self, code: str, fields: Dict[str, Any]) -> Room:
        data = dict(fields, updated_at=utcnow().isoformat())
        await self._run(lambda: self._ref(code).set(data, merge=True))
        room = await self.read(code)
        if room is None:
            raise RoomNotFound(f"Room {code} not found")
        return room

    async def delete(self, code: str) -> bool:
        ref = self._ref(code)
        doc = await self._run(lambda: ref.get())
        if not doc.exists:
            return False
        await self._run(lambda: ref.delete())
        logger.info(f"[{code}] Room deleted")
        return True

    def subscribe(self, code: str, listener: Listener) -> Callable[[], None]:
        """
        Firestore invokes snapshot callbacks on its own thread; hop back onto
        the event loop before calling the async listener.
        """
        loop = asyncio.get_running_loop()

        def _on_snapshot(docs, changes, read_time):
            for doc in docs:
                if not doc.exists:
                    continue
                room = _decode(doc.to_dict())
                loop.call_soon_threadsafe(lambda r=room: asyncio.ensure_future(listener(r)))

        watch = self._ref(code).on_snapshot(_on_snapshot)
        return watch.unsubscribe


_room_store: Optional[RoomStore] = None


def get_room_store() -> RoomStore:
    """Lazy singleton — initialised on first call, not at import time.
    This prevents credential errors from crashing the app before FastAPI boots.
    Use as a FastAPI dependency: Depends(get_room_store)
    """
    global _room_store
    if _room_store is None:
        if settings.store_backend == "firestore":
            _room_store = FirestoreRoomStore()
        else:
            _room_store = InMemoryRoomStore()
        logger.info(f"Room store: {type(_room_store).__name__}")
    return _room_store


def set_room_store(store: Optional[RoomStore]) -> None:
    """Swap the process-wide store (tests, alternative backends)."""
    global _room_store
    _room_store = store
