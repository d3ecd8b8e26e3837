"""Strategy configs, presets and the registry that resolves them by name."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator
from pydantic.config import ConfigDict

from nexusdfs.errors import InvalidInput, UnknownStrategy
from nexusdfs.models.contest import ContestDescriptor, ContestType

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

MONTE_CARLO = "monte_carlo"
GENETIC = "genetic"
SIMULATED_ANNEALING = "simulated_annealing"
ALGORITHMS: Tuple[str, ...] = (MONTE_CARLO, GENETIC, SIMULATED_ANNEALING)

DEFAULT_STACK_DISTRIBUTION = {"4-2": 0.6, "4-1-1": 0.4}
HEAVY_CONSTRAINT_BOUNDS = 25


def parse_stack_pattern(pattern: str) -> Tuple[int, ...]:
    """Parse ``"4-1-1"`` into ``(4, 1, 1)``; counts are descending and sum to at most six."""

    try:
        counts = tuple(int(part) for part in pattern.split("-"))
    except ValueError as exc:
        raise ValueError(f"Invalid stack pattern {pattern!r}") from exc
    if not counts or any(count < 1 for count in counts) or sum(counts) > 6:
        raise ValueError(f"Invalid stack pattern {pattern!r}")
    return tuple(sorted(counts, reverse=True))


def _normalize_weights(weights: Mapping[str, float], what: str) -> Dict[str, float]:
    if any(value < 0 for value in weights.values()):
        raise ValueError(f"{what} weights must be non-negative")
    total = sum(weights.values())
    if total <= 0:
        raise ValueError(f"{what} weights must sum to a positive value")
    return {key: value / total for key, value in weights.items()}


class _StrategyModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class MonteCarloConfig(_StrategyModel):
    kind: Literal["monte_carlo"] = "monte_carlo"
    randomness: float = Field(default=0.3, ge=0.1, le=0.8)
    leverage_multiplier: float = Field(default=1.0, ge=0.2, le=2.0)
    iterations_per_lineup: int = Field(default=64, ge=1, le=10_000)
    stack_distribution: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_STACK_DISTRIBUTION))

    @field_validator("stack_distribution")
    @classmethod
    def _check_stack_distribution(cls, value: Dict[str, float]) -> Dict[str, float]:
        normalized: Dict[str, float] = {}
        for pattern, weight in value.items():
            key = "-".join(str(count) for count in parse_stack_pattern(pattern))
            normalized[key] = normalized.get(key, 0.0) + weight
        return _normalize_weights(normalized, "stack_distribution")


class GeneticConfig(_StrategyModel):
    kind: Literal["genetic"] = "genetic"
    population_size: int = Field(default=100, ge=50, le=200)
    generations: int = Field(default=50, ge=20, le=100)
    mutation_rate: float = Field(default=0.08, ge=0.0, le=1.0)
    tournament_size: int = Field(default=3, ge=2, le=10)
    elite_fraction: float = Field(default=0.05, ge=0.0, le=0.5)
    stall_generations: int = Field(default=5, ge=1)
    stall_tolerance: float = Field(default=0.01, ge=0.0)
    monte_carlo: MonteCarloConfig = Field(default_factory=MonteCarloConfig)


class AnnealingConfig(_StrategyModel):
    kind: Literal["simulated_annealing"] = "simulated_annealing"
    initial_temperature: float = Field(default=5.0, gt=0.0)
    cooling_rate: float = Field(default=0.98, gt=0.0, lt=1.0)
    min_temperature: float = Field(default=0.05, gt=0.0)
    max_proposals: int = Field(default=2000, ge=1)
    captain_move_probability: float = Field(default=0.2, ge=0.0, le=1.0)
    monte_carlo: MonteCarloConfig = Field(default_factory=MonteCarloConfig)


class HybridConfig(_StrategyModel):
    kind: Literal["hybrid"] = "hybrid"
    distribution: Dict[str, float] = Field(
        default_factory=lambda: {MONTE_CARLO: 0.6, GENETIC: 0.3, SIMULATED_ANNEALING: 0.1}
    )
    monte_carlo: MonteCarloConfig = Field(default_factory=MonteCarloConfig)
    genetic: GeneticConfig = Field(default_factory=GeneticConfig)
    simulated_annealing: AnnealingConfig = Field(default_factory=AnnealingConfig)

    @field_validator("distribution")
    @classmethod
    def _check_distribution(cls, value: Dict[str, float]) -> Dict[str, float]:
        unknown = sorted(set(value) - set(ALGORITHMS))
        if unknown:
            raise ValueError(f"Unknown algorithms in distribution: {', '.join(unknown)}")
        normalized = _normalize_weights(value, "distribution")
        return {name: normalized.get(name, 0.0) for name in ALGORITHMS}


class BarbellTargets(_StrategyModel):
    floor: float = Field(default=0.35, ge=0.0, le=1.0)
    ceiling: float = Field(default=0.35, ge=0.0, le=1.0)
    balanced: float = Field(default=0.30, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_sum(self) -> "BarbellTargets":
        if abs(self.floor + self.ceiling + self.balanced - 1.0) > 1e-6:
            raise ValueError("barbell targets must sum to 1")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {"floor": self.floor, "ceiling": self.ceiling, "balanced": self.balanced}


class PortfolioConfig(_StrategyModel):
    kind: Literal["portfolio"] = "portfolio"
    portfolio_size: Optional[int] = Field(default=None, ge=1)
    bulk_multiplier: int = Field(default=25, ge=1, le=100)
    barbell: BarbellTargets = Field(default_factory=BarbellTargets)
    stack_targets: Optional[Dict[str, float]] = Field(default_factory=lambda: dict(DEFAULT_STACK_DISTRIBUTION))
    hybrid: HybridConfig = Field(default_factory=HybridConfig)

    @field_validator("stack_targets")
    @classmethod
    def _check_stack_targets(cls, value: Optional[Dict[str, float]]) -> Optional[Dict[str, float]]:
        if not value:
            return None
        normalized: Dict[str, float] = {}
        for pattern, weight in value.items():
            key = "-".join(str(count) for count in parse_stack_pattern(pattern))
            normalized[key] = normalized.get(key, 0.0) + weight
        return _normalize_weights(normalized, "stack_targets")


StrategyConfig = Annotated[
    Union[MonteCarloConfig, GeneticConfig, AnnealingConfig, HybridConfig, PortfolioConfig],
    Field(discriminator="kind"),
]

_STRATEGY_ADAPTER: TypeAdapter = TypeAdapter(StrategyConfig)


def as_hybrid(config: Union[MonteCarloConfig, GeneticConfig, AnnealingConfig, HybridConfig]) -> HybridConfig:
    """Express any single-algorithm config as a one-sampler hybrid run."""

    if isinstance(config, HybridConfig):
        return config
    if isinstance(config, MonteCarloConfig):
        return HybridConfig(distribution={MONTE_CARLO: 1.0}, monte_carlo=config)
    if isinstance(config, GeneticConfig):
        return HybridConfig(distribution={GENETIC: 1.0}, genetic=config, monte_carlo=config.monte_carlo)
    return HybridConfig(
        distribution={SIMULATED_ANNEALING: 1.0},
        simulated_annealing=config,
        monte_carlo=config.monte_carlo,
    )


def recommend_distribution(contest: ContestDescriptor, constraint_count: int) -> Dict[str, float]:
    """Sampler mix for the ``recommended`` strategy."""

    if constraint_count > HEAVY_CONSTRAINT_BOUNDS:
        return {SIMULATED_ANNEALING: 0.5, GENETIC: 0.3, MONTE_CARLO: 0.2}
    if contest.type is ContestType.CASH:
        return {MONTE_CARLO: 0.8, GENETIC: 0.1, SIMULATED_ANNEALING: 0.1}
    if contest.type is ContestType.DOUBLE_UP:
        return {MONTE_CARLO: 0.7, GENETIC: 0.2, SIMULATED_ANNEALING: 0.1}
    if contest.field_size >= 10_000:
        return {GENETIC: 0.6, MONTE_CARLO: 0.2, SIMULATED_ANNEALING: 0.2}
    return {GENETIC: 0.7, MONTE_CARLO: 0.2, SIMULATED_ANNEALING: 0.1}


# Weight maps are replaced wholesale, never merged key by key.
_WEIGHT_KEYS = frozenset({"distribution", "stack_distribution", "stack_targets"})


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = deepcopy(dict(base))
    for key, value in override.items():
        if key not in _WEIGHT_KEYS and isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


@dataclass(frozen=True)
class StrategyPreset:
    key: str
    name: str
    description: str
    usage: str
    algorithm: str
    base_config: Mapping[str, Any] = field(default_factory=dict)
    contest_fit: Tuple[ContestType, ...] = ()


_MC_BALANCED = {"randomness": 0.5, "leverage_multiplier": 0.8}

DEFAULT_PRESETS: Tuple[StrategyPreset, ...] = (
    StrategyPreset(
        key="recommended",
        name="Recommended",
        description="Smart algorithm selection based on your contest and constraints",
        usage="Auto-selects the best approach for your specific situation",
        algorithm="auto",
        base_config={"kind": "hybrid"},
        contest_fit=tuple(ContestType),
    ),
    StrategyPreset(
        key="balanced",
        name="Balanced",
        description="Reliable lineups with good upside potential",
        usage="General purpose optimization for most contests",
        algorithm="hybrid",
        base_config={
            "kind": "hybrid",
            "distribution": {MONTE_CARLO: 0.6, GENETIC: 0.3, SIMULATED_ANNEALING: 0.1},
            "monte_carlo": _MC_BALANCED,
            "genetic": {"population_size": 60, "generations": 30, "monte_carlo": _MC_BALANCED},
            "simulated_annealing": {"monte_carlo": _MC_BALANCED},
        },
        contest_fit=tuple(ContestType),
    ),
    StrategyPreset(
        key="cash_game",
        name="Cash Game",
        description="Consistent scoring for cash games and double-ups",
        usage="Optimized for consistent cashing in cash games",
        algorithm=MONTE_CARLO,
        base_config={"kind": MONTE_CARLO, "randomness": 0.4, "leverage_multiplier": 0.4},
        contest_fit=(ContestType.CASH, ContestType.DOUBLE_UP),
    ),
    StrategyPreset(
        key="tournament",
        name="Tournament/GPP",
        description="High-ceiling lineups for large field tournaments",
        usage="Designed for GPPs and large tournaments",
        algorithm=GENETIC,
        base_config={
            "kind": GENETIC,
            "population_size": 120,
            "generations": 60,
            "mutation_rate": 0.2,
            "monte_carlo": {"randomness": 0.4, "leverage_multiplier": 1.3},
        },
        contest_fit=(ContestType.GPP,),
    ),
    StrategyPreset(
        key="contrarian",
        name="Contrarian",
        description="Low-owned players and unique stacks for differentiation",
        usage="Maximum differentiation from the field",
        algorithm=GENETIC,
        base_config={
            "kind": GENETIC,
            "population_size": 100,
            "generations": 50,
            "mutation_rate": 0.25,
            "monte_carlo": {"randomness": 0.5, "leverage_multiplier": 2.0},
        },
        contest_fit=(ContestType.GPP,),
    ),
    StrategyPreset(
        key="constraint_focused",
        name="Constraint Optimizer",
        description="Perfect for complex exposure and stacking requirements",
        usage="Best when you have detailed exposure constraints",
        algorithm=SIMULATED_ANNEALING,
        base_config={
            "kind": SIMULATED_ANNEALING,
            "monte_carlo": {"leverage_multiplier": 0.6},
        },
    ),
    StrategyPreset(
        key="portfolio",
        name="Portfolio",
        description="Barbell portfolio of floor, balanced and ceiling lineups",
        usage="Multi-entry tournaments where lineups should cover different outcomes",
        algorithm="portfolio",
        base_config={"kind": "portfolio"},
        contest_fit=(ContestType.GPP,),
    ),
)


@dataclass(frozen=True)
class ResolvedStrategy:
    name: str
    algorithm: str
    config: Union[MonteCarloConfig, GeneticConfig, AnnealingConfig, HybridConfig, PortfolioConfig]
    formula: Optional[str] = None


@dataclass
class _UsageStats:
    usage: int = 0
    lineups: int = 0
    nexus_total: float = 0.0
    roi_total: float = 0.0
    last_used: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "usage": self.usage,
            "lineups": self.lineups,
            "average_nexus_score": round(self.nexus_total / self.lineups, 2) if self.lineups else None,
            "average_roi": round(self.roi_total / self.lineups, 2) if self.lineups else None,
            "last_used": self.last_used,
        }


class StrategyRegistry:
    """Named strategy presets plus per-strategy usage counters."""

    def __init__(self, presets: Tuple[StrategyPreset, ...] = DEFAULT_PRESETS):
        self._presets: Dict[str, StrategyPreset] = {preset.key: preset for preset in presets}
        self._usage: Dict[str, _UsageStats] = {key: _UsageStats() for key in self._presets}
        self._lock = threading.Lock()

    def names(self) -> List[str]:
        return list(self._presets)

    def get(self, name: str) -> StrategyPreset:
        try:
            return self._presets[name]
        except KeyError as exc:
            raise UnknownStrategy(name) from exc

    def resolve(
        self,
        name: str,
        *,
        contest: ContestDescriptor,
        constraint_count: int = 0,
        custom_config: Optional[Mapping[str, Any]] = None,
    ) -> ResolvedStrategy:
        """Merge the preset's base config with ``custom_config`` and validate it."""

        preset = self.get(name)
        overrides = dict(custom_config or {})
        formula = overrides.pop("formula", None)
        if formula is not None and not isinstance(formula, str):
            raise InvalidInput("custom_config.formula must be a string")

        base = dict(preset.base_config)
        if preset.algorithm == "auto":
            base["distribution"] = recommend_distribution(contest, constraint_count)

        merged = _deep_merge(base, overrides)
        merged["kind"] = base["kind"]
        try:
            config = _STRATEGY_ADAPTER.validate_python(merged)
        except ValidationError as exc:
            raise InvalidInput(f"Invalid custom_config for {name}: {exc.errors()[0].get('msg')}") from exc

        algorithm = preset.algorithm
        if algorithm == "auto":
            algorithm = "hybrid"
        logger.info("Resolved strategy %s -> %s (%s)", name, algorithm, config.kind)
        return ResolvedStrategy(name=name, algorithm=algorithm, config=config, formula=formula)

    def record_usage(self, name: str, nexus_scores: List[float], rois: List[float]) -> None:
        with self._lock:
            stats = self._usage.setdefault(name, _UsageStats())
            stats.usage += 1
            stats.lineups += len(nexus_scores)
            stats.nexus_total += sum(nexus_scores)
            stats.roi_total += sum(rois)
            stats.last_used = time.time()

    def is_suitable(self, name: str, contest: ContestDescriptor, complexity_score: float) -> bool:
        if name == "constraint_focused":
            return complexity_score > 10
        preset = self.get(name)
        return contest.type in preset.contest_fit

    def describe(self, contest: ContestDescriptor, complexity_score: float = 0.0) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            usage = {key: stats.as_dict() for key, stats in self._usage.items()}
        return {
            key: {
                "name": preset.name,
                "description": preset.description,
                "usage": preset.usage,
                "algorithm": preset.algorithm,
                "contest_fit": [item.value for item in preset.contest_fit],
                "recommended": key == "recommended",
                "suitable": self.is_suitable(key, contest, complexity_score),
                "performance": usage.get(key, _UsageStats().as_dict()),
            }
            for key, preset in self._presets.items()
        }
