import random
import string
from typing import Optional

from config import settings

# Uppercase letters only, easy to read out loud
ROOM_CODE_ALPHABET = string.ascii_uppercase


def generate_room_code(rng: Optional[random.Random] = None, length: Optional[int] = None) -> str:
    """Random human-typeable room code, e.g. 'QWZK'."""
    rng = rng or random.SystemRandom()
    length = length or settings.room_code_length
    return "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def normalize_room_code(code: str) -> str:
    return code.strip().upper()
