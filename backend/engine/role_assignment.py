"""
Role Assignment — deck building and the one random step of a game.

Deck composition:
  - `wolf_count` copies of the adversary role
  - every role the host enabled, in registry order (paired roles deal two)
  - padded with the default role up to the player count

The deck is shuffled with the caller's `random.Random` and dealt to players in
(joined_at, id) order, so a seeded rng reproduces the same assignment.
"""
import logging
import random
from typing import Dict, List

from config import settings
from engine.errors import GameSetupInvalid
from models.game import GameSettings, Room
from roles.registry import role_registry

logger = logging.getLogger(__name__)


def validate_setup(game_settings: GameSettings, n_players: int) -> None:
    """Raise GameSetupInvalid when the room cannot start with these settings."""
    if n_players < settings.min_players:
        raise GameSetupInvalid(
            f"Need at least {settings.min_players} players to start; got {n_players}."
        )
    unknown = [rid for rid in game_settings.active_roles if not role_registry.has(rid)]
    if unknown:
        raise GameSetupInvalid(f"Unknown roles: {', '.join(sorted(unknown))}")
    if game_settings.wolf_count * 2 >= n_players:
        raise GameSetupInvalid(
            f"Too many werewolves: {game_settings.wolf_count} for {n_players} players."
        )
    deck_size = game_settings.wolf_count + len(_enabled_roles(game_settings))
    if deck_size > n_players:
        raise GameSetupInvalid(
            f"Not enough players for the selected roles: deck has {deck_size}, "
            f"room has {n_players}."
        )


def _enabled_roles(game_settings: GameSettings) -> List[str]:
    return [
        r.id
        for r in role_registry.optional_roles() if game_settings.is_role_active(r.id)
        for _ in range(r.copies)
    ]


def build_deck(game_settings: GameSettings, n_players: int) -> List[str]:
    validate_setup(game_settings, n_players)
    deck: List[str] = [role_registry.ADVERSARY_ROLE_ID] * game_settings.wolf_count
    deck += _enabled_roles(game_settings)
    deck += [role_registry.DEFAULT_ROLE_ID] * (n_players - len(deck))
    return deck


def assign_roles(room: Room, rng: random.Random) -> Dict[str, str]:
    """
    Shuffle a deck and deal one role per player. Mutates `room` (a working copy)
    and returns the player id → role id mapping.
    """
    players = room.ordered_players()
    deck = build_deck(room.settings, len(players))
    rng.shuffle(deck)

    assignments: Dict[str, str] = {}
    for player, role_id in zip(players, deck):
        player.role = role_id
        assignments[player.id] = role_id

    logger.info(
        f"[{room.code}] Roles assigned to {len(players)} players "
        f"(wolves={room.settings.wolf_count}). Deck: {sorted(deck)}"
    )
    return assignments
