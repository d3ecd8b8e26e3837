"""Captain-mode lineup optimizer: samplers, scoring, exposure and portfolio selection."""

from .player_pool import PlayerPool
from .scoring import NEXUS_FORMULAS, LineupScorer, estimate_roi, nexus_score
from .service import BuildOutput, build_lineups
from .strategies import ALGORITHMS, StrategyRegistry

__all__ = [
    "ALGORITHMS",
    "BuildOutput",
    "LineupScorer",
    "NEXUS_FORMULAS",
    "PlayerPool",
    "StrategyRegistry",
    "build_lineups",
    "estimate_roi",
    "nexus_score",
]
