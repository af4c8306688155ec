from typing import Dict, List, Optional

from engine.errors import InsufficientResource, InvalidActionForPhase
from models.game import CupidMode, Phase, Player, Room, Team
from roles.base import NightContext, Role, VoteOutEffect


class Villager(Role):
    id = "villager"
    name = "Villager"
    description = "Find the wolves. Don't die."
    team = Team.VILLAGE
    weight = 1


class Werewolf(Role):
    id = "werewolf"
    name = "Werewolf"
    description = "Eliminate the villagers at night."
    team = Team.WEREWOLF
    weight = -6
    night_phase = Phase.NIGHT_WEREWOLF
    resolve_order = 20

    def record_night_action(self, room: Room, player: Player, targets: List[str]) -> Optional[Dict]:
        room.night_actions.wolf_target = targets[0] if targets else None
        return None

    def on_night_resolve(self, ctx: NightContext) -> None:
        ctx.kill(ctx.actions.wolf_target, cause=self.id)

    def visible_teammates(self, room: Room, player: Player) -> List[str]:
        from roles.registry import role_registry

        return [
            p.id for p in room.ordered_players()
            if p.id != player.id and role_registry.for_player(p).is_adversary()
        ]


class Doctor(Role):
    id = "doctor"
    name = "Doctor"
    description = "Protect one person each night."
    team = Team.VILLAGE
    weight = 4
    night_phase = Phase.NIGHT_DOCTOR
    resolve_order = 10

    def record_night_action(self, room: Room, player: Player, targets: List[str]) -> Optional[Dict]:
        room.night_actions.doctor_protect = targets[0] if targets else None
        return None

    def on_night_resolve(self, ctx: NightContext) -> None:
        ctx.shield(ctx.actions.doctor_protect)


class Seer(Role):
    id = "seer"
    name = "Seer"
    description = "Reveal one player's true nature."
    team = Team.VILLAGE
    weight = 7
    night_phase = Phase.NIGHT_SEER

    def record_night_action(self, room: Room, player: Player, targets: List[str]) -> Optional[Dict]:
        # Nothing is written to the shared record; the answer goes to the Seer only.
        if not targets:
            return None
        from roles.registry import role_registry

        target = room.players[targets[0]]
        seen = role_registry.for_player(target).appears_as(room, target)
        return {"target": target.id, "team": seen.value}


class Vigilante(Role):
    id = "vigilante"
    name = "Vigilante"
    description = "You have one bullet to use at night."
    team = Team.VILLAGE
    weight = 3
    night_phase = Phase.NIGHT_VIGILANTE
    resolve_order = 30
    starting_ammo = 1

    def has_night_action(self, room: Room, player: Player) -> bool:
        return room.ammo.get(player.id, 0) > 0

    def validate_night_action(self, room: Room, player: Player, targets: List[str]) -> None:
        super().validate_night_action(room, player, targets)
        if targets and room.ammo.get(player.id, 0) <= 0:
            raise InsufficientResource("The Vigilante has no bullets left")

    def record_night_action(self, room: Room, player: Player, targets: List[str]) -> Optional[Dict]:
        room.night_actions.vigilante_target = targets[0] if targets else None
        if targets:
            room.ammo[player.id] = room.ammo.get(player.id, 0) - 1
        return None

    def on_night_resolve(self, ctx: NightContext) -> None:
        # kill() skips shielded targets and anyone the wolves already took
        ctx.kill(ctx.actions.vigilante_target, cause=self.id)


class Cupid(Role):
    id = "cupid"
    name = "Cupid"
    description = "Link two players. If one dies, both die."
    team = Team.VILLAGE
    weight = -2
    night_phase = Phase.NIGHT_CUPID

    def has_night_action(self, room: Room, player: Player) -> bool:
        return room.day <= 1 and not room.lovers

    def validate_night_action(self, room: Room, player: Player, targets: List[str]) -> None:
        if not targets:
            return
        if len(targets) != 2 or targets[0] == targets[1]:
            raise InvalidActionForPhase("Cupid must link two different players")
        for target in targets:
            if not room.is_alive(target):
                raise InvalidActionForPhase(f"'{target}' is not a living player")
        if player.id in targets and not room.settings.cupid_can_choose_self:
            raise InvalidActionForPhase("Cupid cannot link themselves in this room")

    def record_night_action(self, room: Room, player: Player, targets: List[str]) -> Optional[Dict]:
        if targets:
            room.night_actions.cupid_links = list(targets)
            room.lovers = list(targets)
        return None

    def shares_lovers_win(self, room: Room, player: Player) -> bool:
        return room.settings.cupid_mode == CupidMode.INCLUDED


class Hunter(Role):
    id = "hunter"
    name = "Hunter"
    description = "If you die, take someone with you."
    team = Team.VILLAGE
    weight = 3

    def on_death(self, room: Room, player: Player, cause: str) -> None:
        if player.id not in room.pending_hunters:
            room.pending_hunters.append(player.id)


class Mayor(Role):
    id = "mayor"
    name = "Mayor"
    description = "Your vote counts as 2."
    team = Team.VILLAGE
    weight = 2

    def vote_weight(self, room: Room, player: Player) -> int:
        return 2


class Lycan(Role):
    id = "lycan"
    name = "Lycan"
    description = "You are a villager, but the Seer sees you as a werewolf."
    team = Team.VILLAGE
    weight = -1

    def appears_as(self, room: Room, player: Player) -> Team:
        return Team.WEREWOLF


class TheFool(Role):
    id = "the_fool"
    name = "The Fool"
    description = "You only win if you are voted out."
    team = Team.NEUTRAL
    weight = 0

    def on_vote_out(self, room: Room, player: Player) -> Optional[VoteOutEffect]:
        return VoteOutEffect(winners={self.id}, ends_game=room.settings.fool_ends_game)


class Tanner(Role):
    id = "tanner"
    name = "Tanner"
    description = "You only win if you are voted out."
    team = Team.NEUTRAL
    weight = 0

    def on_vote_out(self, room: Room, player: Player) -> Optional[VoteOutEffect]:
        return VoteOutEffect(winners={self.id}, ends_game=room.settings.tanner_ends_game)


def _holders_of(room: Room, role_id: str, exclude: Optional[str] = None) -> List[str]:
    return [p.id for p in room.ordered_players() if p.role == role_id and p.id != exclude]


class Recognition(Role):
    """
    Wakes on the first night only, to learn who its teammates are. The
    submission is an acknowledgment with no targets; one living holder closes
    the sub-phase for the group.
    """

    def has_night_action(self, room: Room, player: Player) -> bool:
        return room.day <= 1

    def validate_night_action(self, room: Room, player: Player, targets: List[str]) -> None:
        if targets:
            raise InvalidActionForPhase(f"{self.name} only acknowledges their teammates")

    def record_night_action(self, room: Room, player: Player, targets: List[str]) -> Optional[Dict]:
        return {"teammates": self.visible_teammates(room, player)}


class Minion(Recognition):
    id = "minion"
    name = "Minion"
    description = "You know the wolves. They don't know you."
    team = Team.WEREWOLF
    weight = -3
    night_phase = Phase.NIGHT_MINION

    def is_adversary(self) -> bool:
        # Wins with the wolves but is neither a wolf nor needed dead for the village
        return False

    def visible_teammates(self, room: Room, player: Player) -> List[str]:
        return _holders_of(room, Werewolf.id)


class Mason(Recognition):
    id = "mason"
    name = "Mason"
    description = "You know who the other Masons are."
    team = Team.VILLAGE
    weight = 2
    night_phase = Phase.NIGHT_MASON
    copies = 2

    def visible_teammates(self, room: Room, player: Player) -> List[str]:
        return _holders_of(room, self.id, exclude=player.id)


class Twins(Recognition):
    id = "twin"
    name = "Twins"
    description = "You know who your twin is."
    team = Team.VILLAGE
    weight = 2
    night_phase = Phase.NIGHT_TWIN
    copies = 2

    def visible_teammates(self, room: Room, player: Player) -> List[str]:
        return _holders_of(room, self.id, exclude=player.id)


class Sorcerer(Role):
    id = "sorcerer"
    name = "Sorcerer"
    description = "Find the Seer. You win with the Werewolves."
    team = Team.WEREWOLF
    weight = -3
    night_phase = Phase.NIGHT_SORCERER

    def is_adversary(self) -> bool:
        return False

    def record_night_action(self, room: Room, player: Player, targets: List[str]) -> Optional[Dict]:
        room.night_actions.sorcerer_check = targets[0] if targets else None
        if not targets:
            return None
        target = room.players[targets[0]]
        is_seer = target.role == Seer.id
        if is_seer and player.id not in room.found_seer:
            room.found_seer.append(player.id)
        return {"target": target.id, "isSeer": is_seer}

    def is_winner(self, room: Room, player: Player) -> bool:
        return player.id in room.found_seer and super().is_winner(room, player)


class TheBeholder(Role):
    id = "the_beholder"
    name = "The Beholder"
    description = "A Villager who knows exactly who the Seer is starting from Night 1."
    team = Team.VILLAGE
    weight = 1

    def visible_teammates(self, room: Room, player: Player) -> List[str]:
        return _holders_of(room, Seer.id)
