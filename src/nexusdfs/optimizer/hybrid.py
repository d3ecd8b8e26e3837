"""Hybrid driver: splits a batch across samplers and refills after dedupe."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
import random
import time
from typing import Dict, List, Mapping, Optional, Sequence

from nexusdfs.config.roster import RosterRules

from .context import BatchContext
from .player_pool import PlayerPool
from .sampling import AnnealingSampler, GeneticSampler, MonteCarloSampler
from .scoring import LineupScorer
from .strategies import ALGORITHMS, GENETIC, MONTE_CARLO, SIMULATED_ANNEALING, HybridConfig

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)


def largest_remainder(total: int, fractions: Mapping[str, float], order: Optional[Sequence[str]] = None) -> Dict[str, int]:
    """Split ``total`` by ``fractions`` rounding down, then hand out the
    remainder largest fractional part first (ties go to the earlier key)."""

    keys = list(order) if order is not None else list(fractions)
    weight_total = sum(max(fractions.get(key, 0.0), 0.0) for key in keys)
    if total <= 0 or weight_total <= 0:
        return {key: 0 for key in keys}

    exact = {key: total * max(fractions.get(key, 0.0), 0.0) / weight_total for key in keys}
    shares = {key: int(exact[key]) for key in keys}
    remainder = total - sum(shares.values())
    ranked = sorted(keys, key=lambda key: (-(exact[key] - shares[key]), keys.index(key)))
    for key in ranked[:remainder]:
        shares[key] += 1
    return shares


@dataclass
class HybridOutcome:
    allocation: Dict[str, int]
    accepted: Dict[str, int] = field(default_factory=dict)
    refilled: int = 0
    elapsed: float = 0.0
    parallel: bool = False


class HybridDriver:
    """Runs the configured samplers against one shared batch context.

    With a single worker (or a fixed seed) samplers run sequentially in the
    order Monte Carlo, genetic, simulated annealing, so output depends only
    on the seed. Otherwise they run on a thread pool and share the batch's
    locked counters.
    """

    def __init__(
        self,
        pool: PlayerPool,
        rules: RosterRules,
        scorer: LineupScorer,
        *,
        seed: int,
        workers: int = 1,
        repair_attempts: int = 20,
    ):
        self.pool = pool
        self.rules = rules
        self.scorer = scorer
        self.workers = max(1, workers)
        self.repair_attempts = repair_attempts
        master = random.Random(seed)
        self._seeds = {name: master.randrange(1, 2**31 - 1) for name in (*ALGORITHMS, "refill", "backfill")}
        self.samplers: List = []

    def rng(self, name: str) -> random.Random:
        return random.Random(self._seeds[name])

    def monte_carlo(self, context: BatchContext, config: HybridConfig, name: str = MONTE_CARLO) -> MonteCarloSampler:
        sampler = MonteCarloSampler(
            self.pool,
            self.rules,
            config.monte_carlo,
            counters=context.counters,
            rng=self.rng(name),
            repair_attempts=self.repair_attempts,
        )
        self.samplers.append(sampler)
        return sampler

    def _build(self, algorithm: str, context: BatchContext, config: HybridConfig):
        if algorithm == MONTE_CARLO:
            return self.monte_carlo(context, config)
        if algorithm == GENETIC:
            sampler = GeneticSampler(
                self.pool,
                self.rules,
                config.genetic,
                counters=context.counters,
                scorer=self.scorer,
                rng=self.rng(GENETIC),
                repair_attempts=self.repair_attempts,
            )
        else:
            sampler = AnnealingSampler(
                self.pool,
                self.rules,
                config.simulated_annealing,
                counters=context.counters,
                scorer=self.scorer,
                rng=self.rng(SIMULATED_ANNEALING),
                repair_attempts=self.repair_attempts,
            )
        self.samplers.append(sampler)
        return sampler

    def run(self, context: BatchContext, config: HybridConfig, count: int) -> HybridOutcome:
        started = time.perf_counter()
        allocation = largest_remainder(count, config.distribution, ALGORITHMS)
        jobs = [(name, quota) for name, quota in allocation.items() if quota > 0]
        parallel = self.workers > 1 and len(jobs) > 1
        outcome = HybridOutcome(allocation=allocation, parallel=parallel)
        logger.info(
            "Hybrid run for %s lineups: allocation=%s parallel=%s",
            count,
            allocation,
            parallel,
        )

        samplers = [(name, quota, self._build(name, context, config)) for name, quota in jobs]
        if parallel:
            with ThreadPoolExecutor(max_workers=min(self.workers, len(samplers))) as executor:
                futures = {name: executor.submit(sampler.run, context, quota) for name, quota, sampler in samplers}
                for name, future in futures.items():
                    outcome.accepted[name] = future.result()
        else:
            for name, quota, sampler in samplers:
                if context.cancelled:
                    break
                outcome.accepted[name] = sampler.run(context, quota)

        if not context.full and not context.cancelled:
            missing = context.remaining
            logger.info("Refilling %s lineups from Monte Carlo", missing)
            outcome.refilled = self.monte_carlo(context, config, "refill").run(context, missing)

        self._collect_stats(context)
        outcome.elapsed = time.perf_counter() - started
        return outcome

    def _collect_stats(self, context: BatchContext) -> None:
        repairs = sum(sampler.repairs for sampler in self.samplers)
        failures = sum(sampler.repair_failures for sampler in self.samplers)
        context.record(repairs=repairs, repair_failures=failures)
        self.samplers = []
