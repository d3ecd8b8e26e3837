"""Genetic search over captain-mode lineups."""

from __future__ import annotations

import logging
import math
import random
import time
from typing import Callable, List, Optional

from nexusdfs.config.roster import RosterRules
from nexusdfs.models.lineup import Lineup

from ..context import BatchContext
from ..exposure import BatchCounters
from ..player_pool import PlayerPool
from ..repair import repair_lineup
from ..scoring import LineupScorer
from ..strategies import GENETIC, GeneticConfig
from .monte_carlo import MonteCarloSampler, weighted_choice

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

_TOP_WINDOW = 10
_MAX_EPOCHS = 25

GenerationCallback = Callable[[int, float], None]


class GeneticSampler:
    """Tournament selection, uniform crossover and per-slot mutation.

    The initial population comes from the Monte Carlo sampler. Each epoch
    evolves a population until the generation budget is spent or the mean
    of the top ten stops improving; the evolved population is then offered
    to the batch best first. Epochs repeat until the quota is met.
    """

    name = GENETIC

    def __init__(
        self,
        pool: PlayerPool,
        rules: RosterRules,
        config: GeneticConfig,
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
        self.repair_attempts = repair_attempts
        self.seeder = MonteCarloSampler(
            pool,
            rules,
            config.monte_carlo,
            counters=counters,
            rng=rng,
            repair_attempts=repair_attempts,
        )
        self.child_repair_failures = 0
        self.generations_run = 0

    @property
    def repairs(self) -> int:
        return self.seeder.repairs

    @property
    def repair_failures(self) -> int:
        return self.child_repair_failures + self.seeder.repair_failures

    def _initial_population(self, should_stop: Callable[[], bool]) -> List[Lineup]:
        population: List[Lineup] = []
        seen: set = set()
        size = self.config.population_size
        for _ in range(size * 4):
            if len(population) >= size or should_stop():
                break
            candidate = self.seeder.draw()
            if candidate is None or candidate.fingerprint in seen:
                continue
            seen.add(candidate.fingerprint)
            population.append(candidate.tagged(self.name))
        return population

    def _tournament(self, ranked: List[Lineup]) -> Lineup:
        contenders = [self.rng.randrange(len(ranked)) for _ in range(self.config.tournament_size)]
        return ranked[min(contenders)]

    def _crossover(self, first: Lineup, second: Lineup) -> Lineup:
        slots = [a if self.rng.random() < 0.5 else b for a, b in zip(first.slots, second.slots)]
        self._resample_duplicates(slots)
        captain = first.captain_slot if self.rng.random() < 0.5 else second.captain_slot
        return Lineup(slots=tuple(slots), captain_slot=captain, source=self.name)

    def _resample_duplicates(self, slots: List[int]) -> None:
        """Redraw repeated players from the slot's position, weighted by projection."""

        for slot, idx in enumerate(slots):
            if idx not in slots[:slot]:
                continue
            taken = set(slots)
            candidates = [
                candidate
                for candidate in self.pool.by_position(self.rules.roster_order[slot])
                if candidate not in taken
            ]
            if candidates:
                weights = [max(self.pool[candidate].projection, 0.01) for candidate in candidates]
                slots[slot] = weighted_choice(self.rng, candidates, weights)

    def _mutate(self, lineup: Lineup) -> Lineup:
        slots = list(lineup.slots)
        for slot, position in enumerate(self.rules.roster_order):
            if self.rng.random() < self.config.mutation_rate:
                candidates = self.pool.by_position(position)
                if candidates:
                    slots[slot] = self.rng.choice(candidates)
        captain = lineup.captain_slot
        if self.rng.random() < self.config.mutation_rate / 2:
            captain = self.rng.choice(self.rules.captain_slots)
        return Lineup(slots=tuple(slots), captain_slot=captain, source=self.name)

    def _child(self, ranked: List[Lineup]) -> Optional[Lineup]:
        child = self._mutate(self._crossover(self._tournament(ranked), self._tournament(ranked)))
        repaired = repair_lineup(child, self.pool, self.rules, self.counters, attempts=self.repair_attempts)
        if repaired is not None:
            return repaired
        self.child_repair_failures += 1
        replacement = self.seeder.draw()
        return replacement.tagged(self.name) if replacement is not None else None

    def _rank(self, population: List[Lineup]) -> List[Lineup]:
        return sorted(population, key=lambda lineup: (-self.scorer.fitness(lineup), lineup.fingerprint))

    def evolve(
        self,
        should_stop: Callable[[], bool],
        on_generation: Optional[GenerationCallback] = None,
    ) -> List[Lineup]:
        """Run one epoch and return the final population ranked best first."""

        population = self._initial_population(should_stop)
        if len(population) < 2:
            return population

        size = self.config.population_size
        elite_count = max(1, math.ceil(size * self.config.elite_fraction))
        best_window = -math.inf
        stale = 0

        ranked = self._rank(population)
        for generation in range(self.config.generations):
            if should_stop():
                break
            next_population = ranked[:elite_count]
            attempts = 0
            while len(next_population) < size and attempts < size * 4:
                attempts += 1
                child = self._child(ranked)
                if child is not None:
                    next_population.append(child)
            ranked = self._rank(next_population)
            self.generations_run += 1

            window = ranked[:_TOP_WINDOW]
            window_mean = sum(self.scorer.fitness(lineup) for lineup in window) / len(window)
            if on_generation is not None:
                on_generation(generation + 1, window_mean)
            if window_mean - best_window > self.config.stall_tolerance:
                best_window = window_mean
                stale = 0
            else:
                stale += 1
                if stale >= self.config.stall_generations:
                    break
            time.sleep(0)

        return ranked

    def run(self, context: BatchContext, quota: int) -> int:
        if quota <= 0:
            return 0
        started = time.perf_counter()
        accepted = 0

        def should_stop() -> bool:
            return context.cancelled or context.full

        for _ in range(_MAX_EPOCHS):
            if accepted >= quota or should_stop():
                break
            ranked = self.evolve(should_stop)
            if not ranked:
                break
            before = accepted
            offered: set = set()
            for lineup in ranked:
                if accepted >= quota or context.full:
                    break
                if lineup.fingerprint in offered:
                    continue
                offered.add(lineup.fingerprint)
                if context.submit(lineup):
                    accepted += 1
            if accepted == before:
                context.record(discarded=len(ranked))
                break

        logger.info(
            "Genetic accepted %s/%s lineups in %.2fs (%s generations)",
            accepted,
            quota,
            time.perf_counter() - started,
            self.generations_run,
        )
        return accepted
