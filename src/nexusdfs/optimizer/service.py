"""Batch generation: runs a resolved strategy and scores the result."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from nexusdfs.config.roster import RosterRules
from nexusdfs.config.settings import OptimizerSettings
from nexusdfs.errors import Cancelled, ExposureInfeasible, Infeasible
from nexusdfs.models.contest import ContestDescriptor, ContestType
from nexusdfs.models.lineup import Lineup, LineupPlayer, LineupResult
from nexusdfs.pool.analysis import (
    PlayerUsage,
    calculate_player_usage,
    diversity_score,
    source_distribution,
    stack_distribution,
)

from .backfill import backfill_minimums, trim_maximums
from .context import BatchContext, CancellationToken
from .exposure import BatchCounters, ExposureBound
from .hybrid import HybridDriver, HybridOutcome
from .player_pool import PlayerPool
from .portfolio import label_candidates, portfolio_summary, select_portfolio
from .scoring import (
    LineupScorer,
    average_ownership,
    estimate_roi,
    lineup_salary,
    projected_points,
    stack_signature,
    stack_type,
    total_ownership,
)
from .strategies import SIMULATED_ANNEALING, PortfolioConfig, ResolvedStrategy, as_hybrid

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

ProgressCallback = Callable[..., None]

LOW_DIVERSITY = 0.3
CONSTRAINT_HINT_THRESHOLD = 5

STATUS_INITIALIZING = "Initializing"
STATUS_FINALIZING = "Finalizing"
STATUS_COMPLETED = "Completed"

_GENERATE_RANGE = (5.0, 80.0)
_SCORE_RANGE = (80.0, 92.0)
_SELECT_PERCENT = 94.0
_FINALIZE_PERCENT = 97.0


class _ProgressReporter:
    """Maps batch milestones onto the 0-100 progress scale.

    Only whole-percent changes are published so large batches do not flood
    the bus.
    """

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self._last: Optional[tuple] = None

    def _emit(self, percent: float, status: str, current: Optional[int] = None, target: Optional[int] = None) -> None:
        if self._callback is None:
            return
        key = (int(percent), status.split(" ")[0])
        if key == self._last and current != target:
            return
        self._last = key
        self._callback(percent, status, current=current, target=target)

    @staticmethod
    def _scale(bounds: tuple, current: int, target: int) -> float:
        low, high = bounds
        if target <= 0:
            return high
        return low + (high - low) * min(current, target) / target

    def generating(self, current: int, target: int) -> None:
        self._emit(self._scale(_GENERATE_RANGE, current, target), f"Generating candidates {current} of {target}", current, target)

    def scoring(self, current: int, target: int) -> None:
        self._emit(self._scale(_SCORE_RANGE, current, target), f"Scoring candidates {current} of {target}", current, target)

    def selecting(self, size: int) -> None:
        self._emit(_SELECT_PERCENT, f"Selecting top {size}")

    def finalizing(self) -> None:
        self._emit(_FINALIZE_PERCENT, STATUS_FINALIZING)


@dataclass
class BuildOutput:
    lineups: List[LineupResult]
    summary: Dict[str, Any]
    recommendations: List[Dict[str, str]] = field(default_factory=list)
    player_usage: List[PlayerUsage] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return bool(self.summary.get("cancelled"))


def _to_result(
    lineup: Lineup,
    lineup_id: str,
    *,
    pool: PlayerPool,
    rules: RosterRules,
    scorer: LineupScorer,
    points: float,
    pool_mean: float,
    contest: ContestDescriptor,
    label: Optional[str],
) -> LineupResult:
    players = tuple(
        LineupPlayer(
            player_id=pool[idx].player_id,
            name=pool[idx].name,
            team=pool[idx].team,
            position=pool[idx].position.value,
            salary=pool[idx].salary,
            projection=pool[idx].projection,
            ownership=pool[idx].ownership,
            is_captain=slot == lineup.captain_slot,
        )
        for slot, idx in enumerate(lineup.slots)
    )
    return LineupResult(
        lineup_id=lineup_id,
        captain_id=pool[lineup.captain_index].player_id,
        players=players,
        salary=lineup_salary(lineup, pool, rules),
        projection=round(points, 2),
        nexus_score=scorer(lineup),
        roi=round(estimate_roi(points, pool_mean, contest), 2),
        stack_signature=stack_signature(lineup, pool),
        stack_type=stack_type(lineup, pool),
        avg_ownership=round(average_ownership(lineup, pool), 2),
        total_ownership=round(total_ownership(lineup, pool), 2),
        algorithm=lineup.source,
        formula=scorer.formula,
        label=label,
    )


def build_recommendations(
    summary: Dict[str, Any],
    *,
    contest: ContestDescriptor,
    constraint_count: int,
    algorithm: str,
) -> List[Dict[str, str]]:
    recommendations: List[Dict[str, str]] = []
    if summary.get("generated", 0) > 1 and summary.get("diversity_score", 0.0) < LOW_DIVERSITY:
        recommendations.append(
            {
                "type": "diversity",
                "severity": "warning",
                "message": 'Consider using "tournament" or "contrarian" strategy for more lineup diversity',
            }
        )
    if constraint_count > CONSTRAINT_HINT_THRESHOLD and algorithm != SIMULATED_ANNEALING:
        recommendations.append(
            {
                "type": "constraints",
                "severity": "info",
                "message": 'Try "constraint_focused" strategy for better exposure constraint handling',
            }
        )
    average_roi = summary.get("average_roi") or 0.0
    if contest.type is ContestType.GPP and average_roi < 0:
        recommendations.append(
            {
                "type": "performance",
                "severity": "suggestion",
                "message": 'Consider "contrarian" strategy for higher ceiling in tournaments',
            }
        )
    return recommendations


def build_lineups(
    pool: PlayerPool,
    *,
    rules: RosterRules,
    settings: OptimizerSettings,
    strategy: ResolvedStrategy,
    count: int,
    bounds: Sequence[ExposureBound],
    contest: ContestDescriptor,
    token: CancellationToken,
    seed: int,
    formula: str,
    next_lineup_id: Callable[[], str],
    workers: int = 1,
    constraint_count: int = 0,
    progress: Optional[ProgressCallback] = None,
) -> BuildOutput:
    """Generate, backfill and score one batch for ``strategy``.

    Raises ``ExposureInfeasible`` when minimums cannot be met or a short
    batch cannot be trimmed under its maximums, ``Cancelled``
    when the token fires before an acceptable partial batch exists and
    ``Infeasible`` when no lineup could be produced at all.
    """

    started = time.perf_counter()
    reporter = _ProgressReporter(progress)
    scorer = LineupScorer(pool, rules, formula)
    config = strategy.config
    is_portfolio = isinstance(config, PortfolioConfig)
    if is_portfolio:
        size = config.portfolio_size or count
        planned = size * config.bulk_multiplier
        hybrid_config = config.hybrid
    else:
        size = count
        planned = count
        hybrid_config = as_hybrid(config)

    counters = BatchCounters(pool, bounds, planned)
    context = BatchContext(
        pool,
        rules,
        scorer,
        counters,
        token,
        target=planned,
        on_admit=reporter.generating,
    )
    driver = HybridDriver(
        pool,
        rules,
        scorer,
        seed=seed,
        workers=workers,
        repair_attempts=settings.repair_attempts,
    )
    logger.info(
        "Generating %s lineups with strategy=%s formula=%s seed=%s bounds=%s",
        planned,
        strategy.name,
        formula,
        seed,
        len(bounds),
    )
    outcome: HybridOutcome = driver.run(context, hybrid_config, planned)

    labels: Dict[tuple, str] = {}
    portfolio_info: Optional[Dict[str, Any]] = None
    final_context = context
    if is_portfolio:
        bulk = context.accepted
        for idx, lineup in enumerate(bulk, start=1):
            scorer(lineup)
            reporter.scoring(idx, len(bulk))
        candidates = label_candidates(bulk, pool, scorer)
        reporter.selecting(size)
        final_context = BatchContext(pool, rules, scorer, BatchCounters(pool, bounds, size), token, target=size)
        final_context.stats = context.stats
        selected = select_portfolio(
            candidates,
            size,
            config.barbell.as_dict(),
            config.stack_targets,
            final_context.submit,
        )
        chosen = {candidate.lineup.fingerprint for candidate in selected}
        labels = {candidate.lineup.fingerprint: candidate.label for candidate in candidates}
        reserve = [candidate.lineup for candidate in candidates if candidate.lineup.fingerprint not in chosen]
        backfill_minimums(
            final_context,
            driver.monte_carlo(final_context, hybrid_config, "backfill"),
            rounds=settings.backfill_rounds,
            candidates=reserve,
        )
    elif not token.cancelled:
        backfill_minimums(
            context,
            driver.monte_carlo(context, hybrid_config, "backfill"),
            rounds=settings.backfill_rounds,
        )

    cancelled = token.cancelled
    try:
        trim_maximums(final_context)
    except ExposureInfeasible:
        if cancelled:
            raise Cancelled(f"Generation {token.reason or 'cancelled'}", accepted=len(final_context)) from None
        raise

    final = final_context.accepted
    if cancelled:
        unmet = final_context.counters.unmet_minimums()
        if not final or unmet:
            logger.info("Generation cancelled with %s lineups (%s unmet minimums)", len(final), len(unmet))
            raise Cancelled(f"Generation {token.reason or 'cancelled'}", accepted=len(final))
    if not final:
        raise Infeasible("No feasible lineups could be generated under the current constraints")

    if not is_portfolio:
        for idx, lineup in enumerate(final, start=1):
            scorer(lineup)
            reporter.scoring(idx, len(final))

    reporter.finalizing()
    points = [projected_points(lineup, pool, rules) for lineup in final]
    pool_mean = sum(points) / len(points)
    ranked = []
    for sequence, (lineup, lineup_points) in enumerate(zip(final, points)):
        result = _to_result(
            lineup,
            next_lineup_id(),
            pool=pool,
            rules=rules,
            scorer=scorer,
            points=lineup_points,
            pool_mean=pool_mean,
            contest=contest,
            label=labels.get(lineup.fingerprint),
        )
        ranked.append((-result.nexus_score, sequence, result))
    ranked.sort(key=lambda item: (item[0], item[1]))
    results = [item[2] for item in ranked]

    if is_portfolio:
        final_fingerprints = {lineup.fingerprint for lineup in final}
        portfolio_info = portfolio_summary(
            [candidate for candidate in candidates if candidate.lineup.fingerprint in final_fingerprints]
        )
        portfolio_info["candidates"] = len(bulk)

    summary: Dict[str, Any] = {
        "strategy": strategy.name,
        "algorithm": strategy.algorithm,
        "formula": formula,
        "seed": seed,
        "requested": count if not is_portfolio else size,
        "generated": len(results),
        "allocation": outcome.allocation,
        "source_distribution": source_distribution(results),
        "refilled": outcome.refilled,
        "parallel": outcome.parallel,
        "average_nexus_score": round(sum(r.nexus_score for r in results) / len(results), 2),
        "average_roi": round(sum(r.roi for r in results) / len(results), 2),
        "average_projection": round(pool_mean, 2),
        "nexus_range": [min(r.nexus_score for r in results), max(r.nexus_score for r in results)],
        "diversity_score": round(diversity_score(results), 4),
        "stack_distribution": stack_distribution(results),
        "exposure": final_context.counters.report(),
        "stats": final_context.stats.as_dict(),
        "cancelled": cancelled,
        "elapsed_seconds": round(time.perf_counter() - started, 3),
    }
    if portfolio_info is not None:
        summary["portfolio"] = portfolio_info

    message = None
    if cancelled:
        message = f"Generation {token.reason or 'cancelled'}; returning {len(results)} lineups"
    elif len(results) < summary["requested"]:
        message = f"Generated {len(results)} of {summary['requested']} lineups before exhausting attempts"
    if message:
        logger.warning(message)

    recommendations = build_recommendations(
        summary,
        contest=contest,
        constraint_count=constraint_count,
        algorithm=strategy.algorithm,
    )
    logger.info(
        "Generated %s lineups in %.2fs (avg nexus %.1f, discarded=%s, repair failures=%s)",
        len(results),
        summary["elapsed_seconds"],
        summary["average_nexus_score"],
        summary["stats"]["discarded"],
        summary["stats"]["repair_failures"],
    )
    return BuildOutput(
        lineups=results,
        summary=summary,
        recommendations=recommendations,
        player_usage=calculate_player_usage(results),
        message=message,
    )
