"""Indexed, read-only view of a slate's player pool.

Players are addressed by their integer index into ``PlayerPool.players`` so
lineups stay compact and the pool can be shared across sampler threads
without copying.
"""

from __future__ import annotations

from collections import defaultdict
import math
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from pydantic import ValidationError

from nexusdfs.config.roster import RosterRules
from nexusdfs.errors import Infeasible, InvalidInput
from nexusdfs.models.player import PlayerRecord, Position, StackRecord

PlayerInput = Union[PlayerRecord, Mapping[str, Any]]
StackInput = Union[StackRecord, Mapping[str, Any]]

MISSING_STACK_PLUS = 0.1
DEFAULT_STACK_PLUS = 1.0
MIN_OWNERSHIP = 0.1


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", str(exc))


def _coerce_players(players: Iterable[PlayerInput]) -> List[PlayerRecord]:
    records: List[PlayerRecord] = []
    for idx, item in enumerate(players):
        if isinstance(item, PlayerRecord):
            records.append(item)
            continue
        try:
            records.append(PlayerRecord.model_validate(item))
        except ValidationError as exc:
            raise InvalidInput(f"players[{idx}] {_validation_message(exc)}") from exc
    return records


def _coerce_stacks(stacks: Iterable[StackInput]) -> List[StackRecord]:
    records: List[StackRecord] = []
    for idx, item in enumerate(stacks):
        if isinstance(item, StackRecord):
            records.append(item)
            continue
        try:
            records.append(StackRecord.model_validate(item))
        except ValidationError as exc:
            raise InvalidInput(f"stacks[{idx}] {_validation_message(exc)}") from exc
    return records


class PlayerPool:
    def __init__(self, players: Sequence[PlayerRecord], stacks: Sequence[StackRecord] = ()):
        if not players:
            raise InvalidInput("Player pool is empty")

        seen: set[str] = set()
        for player in players:
            if player.player_id in seen:
                raise InvalidInput(f"Duplicate player id: {player.player_id}")
            seen.add(player.player_id)

        self.players: Tuple[PlayerRecord, ...] = tuple(players)
        self.stacks: Tuple[StackRecord, ...] = tuple(stacks)

        self._index_by_id: Dict[str, int] = {p.player_id: idx for idx, p in enumerate(self.players)}
        by_position: Dict[Position, List[int]] = defaultdict(list)
        by_team: Dict[str, List[int]] = defaultdict(list)
        by_team_position: Dict[Tuple[str, Position], List[int]] = defaultdict(list)
        for idx, player in enumerate(self.players):
            by_position[player.position].append(idx)
            by_team[player.team].append(idx)
            by_team_position[(player.team, player.position)].append(idx)

        self._by_position = {pos: tuple(items) for pos, items in by_position.items()}
        self._by_team = {team: tuple(items) for team, items in by_team.items()}
        self._by_team_position = {key: tuple(items) for key, items in by_team_position.items()}
        self.teams: Tuple[str, ...] = tuple(sorted(self._by_team))

        self._stacks_by_team: Dict[str, StackRecord] = {}
        for stack in self.stacks:
            self._stacks_by_team[stack.team] = stack

        self.field_average_ownership = sum(p.ownership for p in self.players) / len(self.players)
        self.mean_projection = sum(p.projection for p in self.players) / len(self.players)

    @classmethod
    def build(cls, players: Iterable[PlayerInput], stacks: Iterable[StackInput] = ()) -> "PlayerPool":
        """Validate raw player/stack payloads and build the pool."""

        return cls(_coerce_players(players), _coerce_stacks(stacks))

    def __len__(self) -> int:
        return len(self.players)

    def __getitem__(self, index: int) -> PlayerRecord:
        return self.players[index]

    def index_of(self, player_id: str) -> int:
        try:
            return self._index_by_id[player_id]
        except KeyError as exc:
            raise InvalidInput(f"Unknown player id: {player_id}") from exc

    def by_id(self, player_id: str) -> PlayerRecord:
        return self.players[self.index_of(player_id)]

    def has_player(self, player_id: str) -> bool:
        return player_id in self._index_by_id

    def has_team(self, team: str) -> bool:
        return team in self._by_team

    def by_position(self, position: Position) -> Tuple[int, ...]:
        return self._by_position.get(position, ())

    def by_team(self, team: str) -> Tuple[int, ...]:
        return self._by_team.get(team, ())

    def by_team_position(self, team: str, position: Position) -> Tuple[int, ...]:
        return self._by_team_position.get((team, position), ())

    def stack_plus(self, team: str) -> float:
        """Stack+ rating for ``team``; teams without a descriptor are rated low."""

        stack = self._stacks_by_team.get(team)
        if stack is not None:
            return stack.stack_plus
        return MISSING_STACK_PLUS if self._stacks_by_team else DEFAULT_STACK_PLUS

    def minimum_salary(self, rules: RosterRules) -> int:
        """Cheapest possible lineup salary with the captain surcharge applied."""

        role_minimums: List[int] = []
        for position in rules.roster_order:
            candidates = self.by_position(position)
            if not candidates:
                raise Infeasible(f"No {position.value} players in pool")
            role_minimums.append(min(self.players[idx].salary for idx in candidates))

        captain_minimum = min(role_minimums[slot] for slot in rules.captain_slots)
        surcharge = captain_minimum * (rules.captain_multiplier - 1.0)
        return round_half_up(sum(role_minimums) + surcharge)

    def check_feasible(self, rules: RosterRules) -> None:
        """Raise ``Infeasible`` when no lineup can fit under the salary cap."""

        minimum = self.minimum_salary(rules)
        if minimum > rules.salary_cap:
            raise Infeasible(
                f"Minimum lineup salary {minimum} exceeds salary cap {rules.salary_cap}"
            )
