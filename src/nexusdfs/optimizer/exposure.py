"""Exposure bounds and the running counters that enforce them for a batch."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import math
import threading
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from nexusdfs.errors import InvalidInput
from nexusdfs.models.exposure import ExposureScope, ExposureSetting
from nexusdfs.models.lineup import Lineup
from nexusdfs.models.player import ROLE_ORDER

from .player_pool import PlayerPool

_EPSILON = 1e-9
BLOCKED_BIAS = 1e-3

EntityKey = Tuple[Hashable, ...]


def _fraction(value: Optional[float]) -> Optional[float]:
    return None if value is None else value / 100.0


@dataclass(frozen=True)
class ExposureBound:
    scope: ExposureScope
    key: str
    stack_size: Optional[int] = None
    min_fraction: Optional[float] = None
    max_fraction: Optional[float] = None
    target_fraction: Optional[float] = None

    @property
    def entity(self) -> EntityKey:
        if self.scope is ExposureScope.TEAM_STACK:
            return (ExposureScope.TEAM_STACK.value, self.key, self.stack_size)
        return (self.scope.value, self.key)

    @property
    def label(self) -> str:
        if self.scope is ExposureScope.TEAM_STACK:
            return f"team_stack:{self.key}/{self.stack_size}"
        return f"{self.scope.value}:{self.key}"

    @property
    def has_min(self) -> bool:
        return self.min_fraction is not None and self.min_fraction > 0

    @property
    def has_max(self) -> bool:
        return self.max_fraction is not None and self.max_fraction < 1.0


def compile_bounds(settings: Iterable[ExposureSetting], pool: PlayerPool) -> List[ExposureBound]:
    """Expand exposure settings into per-entity bounds.

    A global setting applies to every player without an explicit player bound.
    Unknown team or player keys are rejected.
    """

    bounds: List[ExposureBound] = []
    explicit_players: set[str] = set()
    global_settings: List[ExposureSetting] = []

    for setting in settings:
        if setting.scope is ExposureScope.GLOBAL:
            global_settings.append(setting)
            continue
        key = setting.key or ""
        if setting.scope is ExposureScope.PLAYER:
            if not pool.has_player(key):
                raise InvalidInput(f"Exposure setting references unknown player {key!r}")
            explicit_players.add(key)
        elif setting.scope in (ExposureScope.TEAM, ExposureScope.TEAM_STACK):
            if not pool.has_team(key):
                raise InvalidInput(f"Exposure setting references unknown team {key!r}")
        elif setting.scope is ExposureScope.POSITION:
            key = key.upper()
        bounds.append(
            ExposureBound(
                scope=setting.scope,
                key=key,
                stack_size=setting.stack_size,
                min_fraction=_fraction(setting.min),
                max_fraction=_fraction(setting.max),
                target_fraction=_fraction(setting.target),
            )
        )

    for setting in global_settings:
        for player in pool.players:
            if player.player_id in explicit_players:
                continue
            bounds.append(
                ExposureBound(
                    scope=ExposureScope.PLAYER,
                    key=player.player_id,
                    min_fraction=_fraction(setting.min),
                    max_fraction=_fraction(setting.max),
                    target_fraction=_fraction(setting.target),
                )
            )

    return [bound for bound in bounds if bound.has_min or bound.has_max or bound.target_fraction is not None]


def count_active_bounds(settings: Iterable[ExposureSetting]) -> int:
    return sum(setting.active_bounds for setting in settings)


class BatchCounters:
    """Running per-entity counts for an in-progress batch.

    ``planned`` is the requested batch size and is the denominator for max
    admission; min validation uses the actual number of admitted lineups.
    Mutation happens under ``lock``.
    """

    def __init__(self, pool: PlayerPool, bounds: Sequence[ExposureBound], planned: int):
        self.pool = pool
        self.bounds: Tuple[ExposureBound, ...] = tuple(bounds)
        self.planned = max(1, planned)
        self.lock = threading.RLock()
        self.total = 0
        self._counts: Counter = Counter()
        self._bounds_by_entity: Dict[EntityKey, List[ExposureBound]] = {}
        for bound in self.bounds:
            self._bounds_by_entity.setdefault(bound.entity, []).append(bound)

    def entities(self, lineup: Lineup) -> Counter:
        pool = self.pool
        entities: Counter = Counter()
        teams: Counter = Counter()
        for idx in lineup.slots:
            player = pool[idx]
            entities[(ExposureScope.PLAYER.value, player.player_id)] += 1
            entities[(ExposureScope.POSITION.value, player.position.value)] += 1
            teams[player.team] += 1
        for team, count in teams.items():
            entities[(ExposureScope.TEAM.value, team)] += 1
            entities[(ExposureScope.TEAM_STACK.value, team, count)] += 1
        return entities

    def _denominator(self, bound: ExposureBound, total: int) -> int:
        if bound.scope is ExposureScope.POSITION:
            return total * len(ROLE_ORDER)
        return total

    def count(self, bound: ExposureBound) -> int:
        return self._counts.get(bound.entity, 0)

    def exposure(self, bound: ExposureBound, total: Optional[int] = None) -> float:
        total = self.total if total is None else total
        denominator = self._denominator(bound, total)
        if denominator <= 0:
            return 0.0
        return self.count(bound) / denominator

    def breach(self, lineup: Lineup, *, without: Optional[Lineup] = None) -> Optional[ExposureBound]:
        """First max bound the batch would exceed if ``lineup`` were added."""

        if not self.bounds:
            return None
        added = self.entities(lineup)
        removed = self.entities(without) if without is not None else Counter()
        for entity, amount in added.items():
            for bound in self._bounds_by_entity.get(entity, ()):
                if not bound.has_max:
                    continue
                projected = self._counts.get(entity, 0) + amount - removed.get(entity, 0)
                limit = bound.max_fraction * self._denominator(bound, self.planned)
                if projected > limit + _EPSILON:
                    return bound
        return None

    def add(self, lineup: Lineup) -> None:
        with self.lock:
            self._counts.update(self.entities(lineup))
            self.total += 1

    def remove(self, lineup: Lineup) -> None:
        with self.lock:
            self._counts.subtract(self.entities(lineup))
            self.total -= 1

    def unmet_minimums(self) -> List[ExposureBound]:
        with self.lock:
            return [
                bound
                for bound in self.bounds
                if bound.has_min and self.exposure(bound) + _EPSILON < bound.min_fraction
            ]

    def exceeded_maximums(self) -> List[ExposureBound]:
        """Max bounds broken at the actual batch size."""

        with self.lock:
            return [
                bound
                for bound in self.bounds
                if bound.has_max and self.count(bound) > bound.max_fraction * self._denominator(bound, self.total) + _EPSILON
            ]

    def removal_allowed(self, outgoing: Lineup) -> bool:
        """True when dropping ``outgoing`` unmeets no min and pushes no other max over."""

        removed = self.entities(outgoing)
        before_total = self.total
        after_total = self.total - 1
        for bound in self.bounds:
            before = self.count(bound)
            after = before - removed.get(bound.entity, 0)
            if bound.has_min:
                met = before + _EPSILON >= bound.min_fraction * self._denominator(bound, before_total)
                if met and after + _EPSILON < bound.min_fraction * self._denominator(bound, after_total):
                    return False
            if bound.has_max:
                over = before > bound.max_fraction * self._denominator(bound, before_total) + _EPSILON
                if not over and after > bound.max_fraction * self._denominator(bound, after_total) + _EPSILON:
                    return False
        return True

    def shortfall(self, bound: ExposureBound) -> int:
        """Lineups containing the entity still needed to reach its minimum."""

        needed = bound.min_fraction * self._denominator(bound, max(self.total, 1))
        missing = needed - self.count(bound)
        return max(0, math.ceil(missing - _EPSILON))

    def swap_keeps_minimums(self, outgoing: Lineup, incoming: Lineup) -> bool:
        """True when replacing ``outgoing`` by ``incoming`` leaves no met min unmet."""

        removed = self.entities(outgoing)
        added = self.entities(incoming)
        for bound in self.bounds:
            if not bound.has_min or bound.entity not in removed:
                continue
            before = self.count(bound)
            after = before - removed[bound.entity] + added.get(bound.entity, 0)
            threshold = bound.min_fraction * self._denominator(bound, self.total)
            if before + _EPSILON >= threshold and after + _EPSILON < threshold:
                return False
        return True

    def bias(self, entity: EntityKey) -> float:
        """Sampling bias for an entity: boosted while under min/target, blocked at max."""

        bounds = self._bounds_by_entity.get(entity)
        if not bounds:
            return 1.0
        factor = 1.0
        current_total = max(self.total, 1)
        for bound in bounds:
            count = self._counts.get(entity, 0)
            if bound.has_max and count + 1 > bound.max_fraction * self._denominator(bound, self.planned) + _EPSILON:
                return BLOCKED_BIAS
            current = count / self._denominator(bound, current_total)
            if bound.has_min and current < bound.min_fraction:
                factor *= 1.0 + 4.0 * (bound.min_fraction - current)
            if bound.target_fraction is not None:
                gap = bound.target_fraction - current
                factor *= max(BLOCKED_BIAS, 1.0 + 2.0 * gap)
        return factor

    def player_bias(self, player_index: int) -> float:
        return self.bias((ExposureScope.PLAYER.value, self.pool[player_index].player_id))

    def team_bias(self, team: str) -> float:
        return self.bias((ExposureScope.TEAM.value, team))

    def preferred_stack_size(self, team: str) -> Optional[int]:
        """Stack size of the most under-exposed team-stack minimum for ``team``."""

        best: Optional[Tuple[float, int]] = None
        for bound in self.bounds:
            if bound.scope is not ExposureScope.TEAM_STACK or bound.key != team or not bound.has_min:
                continue
            gap = bound.min_fraction - self.exposure(bound, max(self.total, 1))
            if gap > 0 and (best is None or gap > best[0]):
                best = (gap, bound.stack_size or 0)
        return best[1] if best else None

    def report(self) -> List[dict]:
        with self.lock:
            return [
                {
                    "entity": bound.label,
                    "scope": bound.scope.value,
                    "key": bound.key,
                    "stack_size": bound.stack_size,
                    "count": self.count(bound),
                    "exposure": round(self.exposure(bound) * 100.0, 2),
                    "min": None if bound.min_fraction is None else bound.min_fraction * 100.0,
                    "max": None if bound.max_fraction is None else bound.max_fraction * 100.0,
                    "target": None if bound.target_fraction is None else bound.target_fraction * 100.0,
                }
                for bound in self.bounds
            ]
