"""
Role Registry — static catalog of role definitions keyed by role id.

New roles are added by subclassing `Role` and calling `role_registry.register`.
"""
import logging
from typing import Dict, List, Optional

from models.game import Phase, Player
from roles.base import Role
from roles.implementations import (
    Cupid, Doctor, Hunter, Lycan, Mason, Mayor, Minion, Seer, Sorcerer, Tanner,
    TheBeholder, TheFool, Twins, Vigilante, Villager, Werewolf,
)

logger = logging.getLogger(__name__)


class RoleRegistry:
    # Deck building: the padding role and the role `wolf_count` multiplies
    DEFAULT_ROLE_ID = Villager.id
    ADVERSARY_ROLE_ID = Werewolf.id

    def __init__(self):
        self._roles: Dict[str, Role] = {}

    def register(self, role: Role) -> None:
        if role.id in self._roles:
            logger.warning("Role '%s' re-registered — replacing previous definition", role.id)
        self._roles[role.id] = role

    def get(self, role_id: str) -> Role:
        try:
            return self._roles[role_id]
        except KeyError:
            raise KeyError(f"Unknown role: {role_id}") from None

    def has(self, role_id: str) -> bool:
        return role_id in self._roles

    def all(self) -> List[Role]:
        return list(self._roles.values())

    def for_player(self, player: Player) -> Role:
        """Role of `player`; unassigned players count as the default role."""
        return self.get(player.role or self.DEFAULT_ROLE_ID)

    def optional_roles(self) -> List[Role]:
        """Roles a host may enable, in registration order."""
        return [
            r for r in self._roles.values()
            if r.id not in (self.DEFAULT_ROLE_ID, self.ADVERSARY_ROLE_ID)
        ]

    def roles_for_phase(self, phase: Phase) -> List[Role]:
        return [r for r in self._roles.values() if r.night_phase == phase]

    def night_resolvers(self) -> List[Role]:
        """Roles taking part in night resolution, in resolution order."""
        return sorted(
            (r for r in self._roles.values() if r.resolve_order is not None),
            key=lambda r: r.resolve_order,
        )

    def role_for_phase(self, phase: Phase) -> Optional[Role]:
        roles = self.roles_for_phase(phase)
        return roles[0] if roles else None


def _build_registry() -> RoleRegistry:
    registry = RoleRegistry()
    for role in (
        Villager(),
        Werewolf(),
        Seer(),
        Doctor(),
        Hunter(),
        Vigilante(),
        Cupid(),
        Mayor(),
        Lycan(),
        TheFool(),
        Tanner(),
        Minion(),
        Sorcerer(),
        Mason(),
        Twins(),
        TheBeholder(),
    ):
        registry.register(role)
    return registry


# Module-level singleton
role_registry = _build_registry()
