"""
Domain errors raised by engine transforms and the intent layer.

Every transform raises before it builds a new document, so a rejected intent
never reaches the store. Routers map these to HTTP statuses; the WebSocket hub
sends `code` back to the submitting client only.
"""


class GameError(Exception):
    status_code = 400
    code = "GAME_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class RoomNotFound(GameError):
    status_code = 404
    code = "ROOM_NOT_FOUND"


class RoomCodeCollision(GameError):
    status_code = 409
    code = "ROOM_CODE_COLLISION"


class RoomCreationFailed(GameError):
    status_code = 503
    code = "ROOM_CREATION_FAILED"


class InvalidActionForPhase(GameError):
    status_code = 409
    code = "WRONG_PHASE"


class InsufficientResource(GameError):
    status_code = 409
    code = "INSUFFICIENT_RESOURCE"


class ConcurrentModification(GameError):
    status_code = 503
    code = "CONCURRENT_MODIFICATION"


class PermissionDenied(GameError):
    status_code = 403
    code = "PERMISSION_DENIED"


class GameSetupInvalid(GameError):
    status_code = 400
    code = "INVALID_SETUP"
