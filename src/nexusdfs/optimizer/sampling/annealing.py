"""Simulated annealing refinement of Monte Carlo lineups."""

from __future__ import annotations

import logging
import math
import random
import time
from typing import Optional

from nexusdfs.config.roster import RosterRules
from nexusdfs.models.lineup import Lineup

from ..constraints import feasible
from ..context import BatchContext
from ..exposure import BatchCounters
from ..player_pool import PlayerPool
from ..scoring import LineupScorer
from ..strategies import SIMULATED_ANNEALING, AnnealingConfig
from .monte_carlo import MonteCarloSampler

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

_CANCEL_CHECK_INTERVAL = 100


class AnnealingSampler:
    name = SIMULATED_ANNEALING

    def __init__(
        self,
        pool: PlayerPool,
        rules: RosterRules,
        config: AnnealingConfig,
        *,
        counters: BatchCounters,
        scorer: LineupScorer,
        rng: random.Random,
        repair_attempts: int = 20,
    ):
        self.pool = pool
        self.rules = rules
        self.config = config
        self.counters = counters
        self.scorer = scorer
        self.rng = rng
        self.seeder = MonteCarloSampler(
            pool,
            rules,
            config.monte_carlo,
            counters=counters,
            rng=rng,
            repair_attempts=repair_attempts,
        )
        self.rejected = 0

    @property
    def repairs(self) -> int:
        return self.seeder.repairs

    @property
    def repair_failures(self) -> int:
        return self.seeder.repair_failures

    def propose(self, lineup: Lineup) -> Optional[Lineup]:
        """Swap one role slot for a same-position player, or move the Captain."""

        captain_slots = self.rules.captain_slots
        if len(captain_slots) > 1 and self.rng.random() < self.config.captain_move_probability:
            choices = [slot for slot in captain_slots if slot != lineup.captain_slot]
            return lineup.with_captain(self.rng.choice(choices))

        slot = self.rng.randrange(len(lineup.slots))
        taken = set(lineup.slots)
        candidates = [idx for idx in self.pool.by_position(self.rules.roster_order[slot]) if idx not in taken]
        if not candidates:
            return None
        return lineup.with_slot(slot, self.rng.choice(candidates))

    def anneal(self, start: Lineup, context: BatchContext) -> Lineup:
        """Return the best admissible, not-yet-seen state visited from ``start``."""

        current = start
        current_energy = -self.scorer.fitness(current)
        best = start
        best_energy = current_energy if not context.seen(start) else math.inf
        temperature = self.config.initial_temperature

        for step in range(self.config.max_proposals):
            if temperature < self.config.min_temperature:
                break
            if step % _CANCEL_CHECK_INTERVAL == 0 and context.cancelled:
                break
            temperature_now = temperature
            temperature *= self.config.cooling_rate

            proposal = self.propose(current)
            if proposal is None or not feasible(proposal, self.pool, self.rules, self.counters).ok:
                self.rejected += 1
                continue

            energy = -self.scorer.fitness(proposal)
            delta = energy - current_energy
            if delta <= 0 or self.rng.random() < math.exp(-delta / temperature_now):
                current, current_energy = proposal, energy
                if energy < best_energy and not context.seen(proposal):
                    best, best_energy = proposal, energy

        return best.tagged(self.name)

    def run(self, context: BatchContext, quota: int) -> int:
        if quota <= 0:
            return 0
        started = time.perf_counter()
        accepted = attempts = 0
        budget = quota * 4
        while accepted < quota and attempts < budget and not context.full:
            if context.cancelled:
                break
            attempts += 1
            start = self.seeder.draw()
            if start is None:
                context.record(discarded=1)
                continue
            result = self.anneal(start, context)
            if context.submit(result):
                accepted += 1
            elif result.fingerprint != start.fingerprint and context.submit(start.tagged(self.name)):
                accepted += 1
        context.record(attempts=attempts)
        logger.info(
            "Simulated annealing accepted %s/%s lineups in %.2fs (%s rejected proposals)",
            accepted,
            quota,
            time.perf_counter() - started,
            self.rejected,
        )
        return accepted
