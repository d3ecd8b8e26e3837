"""Deterministic lineup scoring: projections, stacks, NexusScore and ROI."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Tuple

from nexusdfs.config.roster import RosterRules
from nexusdfs.errors import InvalidInput
from nexusdfs.models.contest import ContestDescriptor, ContestType
from nexusdfs.models.lineup import Lineup
from nexusdfs.models.player import Position

from .player_pool import MIN_OWNERSHIP, PlayerPool, round_half_up

NEXUS_FLOOR = 25.0
NEXUS_CEILING = 65.0
DEFAULT_FORMULA = "canonical"

POSITION_IMPACT: Mapping[Position, float] = {
    Position.MID: 2.0,
    Position.ADC: 1.8,
    Position.JNG: 1.5,
    Position.TOP: 1.2,
    Position.SUP: 1.0,
    Position.TEAM: 0.8,
}

ROI_MULTIPLIERS: Mapping[ContestType, float] = {
    ContestType.CASH: 0.2,
    ContestType.DOUBLE_UP: 0.3,
    ContestType.GPP: 1.0,
    ContestType.SINGLE_ENTRY: 0.6,
}

_CONSISTENCY_FACTOR = 1.0


@dataclass(frozen=True)
class ScoreComponents:
    projected_points: float
    avg_ownership: float
    ownership_ratio: float
    leverage: float
    stack_bonus: float
    position_bonus: float

    @property
    def base(self) -> float:
        return self.projected_points / 10.0


def lineup_salary(lineup: Lineup, pool: PlayerPool, rules: RosterRules) -> int:
    """Total salary with the captain's salary scaled and rounded half-up."""

    total = 0.0
    for slot, idx in enumerate(lineup.slots):
        salary = pool[idx].salary
        total += salary * rules.captain_multiplier if slot == lineup.captain_slot else salary
    return round_half_up(total)


def effective_salary(lineup: Lineup, pool: PlayerPool, rules: RosterRules, slot: int) -> float:
    salary = pool[lineup.slots[slot]].salary
    return salary * rules.captain_multiplier if slot == lineup.captain_slot else float(salary)


def projected_points(lineup: Lineup, pool: PlayerPool, rules: RosterRules | None = None) -> float:
    multiplier = rules.captain_multiplier if rules is not None else 1.5
    total = 0.0
    for slot, idx in enumerate(lineup.slots):
        projection = pool[idx].projection
        total += projection * multiplier if slot == lineup.captain_slot else projection
    return total


def team_counts(lineup: Lineup, pool: PlayerPool) -> Counter:
    return Counter(pool[idx].team for idx in lineup.slots)


def stack_signature(lineup: Lineup, pool: PlayerPool) -> str:
    """Descending per-team counts of at least two, joined by ``|`` (e.g. ``4|2``)."""

    counts = sorted((count for count in team_counts(lineup, pool).values() if count >= 2), reverse=True)
    return "|".join(str(count) for count in counts)


def stack_type(lineup: Lineup, pool: PlayerPool) -> str:
    """Full team-count pattern joined by ``-`` (e.g. ``4-1-1``)."""

    counts = sorted(team_counts(lineup, pool).values(), reverse=True)
    return "-".join(str(count) for count in counts)


def total_ownership(lineup: Lineup, pool: PlayerPool) -> float:
    return sum(pool[idx].ownership for idx in lineup.slots)


def average_ownership(lineup: Lineup, pool: PlayerPool) -> float:
    return total_ownership(lineup, pool) / len(lineup.slots)


def score_components(lineup: Lineup, pool: PlayerPool, rules: RosterRules | None = None) -> ScoreComponents:
    points = projected_points(lineup, pool, rules)
    avg_own = min(max(average_ownership(lineup, pool), MIN_OWNERSHIP), 100.0)
    field_avg = pool.field_average_ownership
    ratio = avg_own / field_avg if field_avg > 0 else 1.0
    leverage = max(0.5, min(1.5, 2.0 - ratio))

    stack_bonus = 0.0
    for count in team_counts(lineup, pool).values():
        if count >= 3:
            stack_bonus += (count - 2) * 3

    captain = pool[lineup.captain_index]
    position_bonus = (POSITION_IMPACT.get(captain.position, 1.0) - 1.0) * 2
    for slot, idx in enumerate(lineup.slots):
        if slot == lineup.captain_slot:
            continue
        impact = POSITION_IMPACT.get(pool[idx].position, 1.0)
        if impact > 1.0:
            position_bonus += (impact - 1.0) * 0.5

    return ScoreComponents(
        projected_points=points,
        avg_ownership=avg_own,
        ownership_ratio=ratio,
        leverage=leverage,
        stack_bonus=stack_bonus,
        position_bonus=position_bonus,
    )


def _canonical(c: ScoreComponents) -> float:
    return c.base * c.leverage + c.stack_bonus / 2


def _multiplicative(c: ScoreComponents) -> float:
    stack_multiplier = 1 + c.stack_bonus / 100
    position_multiplier = 1 + c.position_bonus / 100
    return c.projected_points * c.leverage * stack_multiplier * position_multiplier / 5


def _weighted(c: ScoreComponents) -> float:
    # 60% projection, 20% leverage, 15% stacks, 5% position
    points = c.projected_points
    return (
        0.6 * points
        + 0.2 * points * (c.leverage - 1)
        + 0.15 * c.stack_bonus
        + 0.05 * c.position_bonus
    ) / 3


def _ceiling(c: ScoreComponents) -> float:
    return (
        c.projected_points * c.leverage
        + c.stack_bonus**1.5
        + c.position_bonus * 1.5
        - _CONSISTENCY_FACTOR * 0.2
    ) / 6


def _ownership(c: ScoreComponents) -> float:
    leverage_bonus = c.projected_points * max(0.0, c.leverage - 1) ** 1.5 * 3
    return (c.projected_points + leverage_bonus + c.stack_bonus * 0.5) / 6


NEXUS_FORMULAS: Dict[str, Callable[[ScoreComponents], float]] = {
    "canonical": _canonical,
    "multiplicative": _multiplicative,
    "weighted": _weighted,
    "ceiling": _ceiling,
    "ownership": _ownership,
}

FORMULA_DESCRIPTIONS: Dict[str, str] = {
    "canonical": "Projection scaled by ownership leverage plus half the stack bonus",
    "multiplicative": "All factors multiply: projection, leverage, stacks and positions",
    "weighted": "60% projection, 20% leverage, 15% stacks, 5% position",
    "ceiling": "Emphasizes high ceilings with stack powers and position boosts",
    "ownership": "Heavily weights ownership leverage with a non-linear boost",
}


def get_formula(name: str) -> Callable[[ScoreComponents], float]:
    try:
        return NEXUS_FORMULAS[name]
    except KeyError as exc:
        raise InvalidInput(
            f"Unknown scoring formula {name!r}; expected one of {', '.join(sorted(NEXUS_FORMULAS))}"
        ) from exc


def clamp_nexus(raw: float) -> float:
    return round(min(NEXUS_CEILING, max(NEXUS_FLOOR, raw)), 1)


def nexus_score(
    lineup: Lineup,
    pool: PlayerPool,
    formula: str = DEFAULT_FORMULA,
    rules: RosterRules | None = None,
) -> float:
    return clamp_nexus(get_formula(formula)(score_components(lineup, pool, rules)))


def estimate_roi(points: float, pool_mean_points: float, contest: ContestDescriptor) -> float:
    """Percent ROI relative to the mean projected points of the batch."""

    if pool_mean_points <= 0:
        return 0.0
    return (points / pool_mean_points - 1.0) * ROI_MULTIPLIERS[contest.type] * 100.0


class LineupScorer:
    """Caches NexusScore per lineup shape for one pool and one formula."""

    def __init__(self, pool: PlayerPool, rules: RosterRules, formula: str = DEFAULT_FORMULA):
        self.pool = pool
        self.rules = rules
        self.formula = formula
        self._fn = get_formula(formula)
        self._cache: Dict[Tuple[Tuple[int, ...], int], float] = {}

    def __call__(self, lineup: Lineup) -> float:
        return clamp_nexus(self.fitness(lineup))

    def fitness(self, lineup: Lineup) -> float:
        """Unclamped score used to rank candidates below the NexusScore floor."""

        key = (lineup.slots, lineup.captain_slot)
        raw = self._cache.get(key)
        if raw is None:
            raw = self._fn(score_components(lineup, self.pool, self.rules))
            self._cache[key] = raw
        return raw
