"""Stack-first Monte Carlo lineup sampler."""

from __future__ import annotations

import logging
import random
import time
from typing import Dict, List, Optional, Sequence, Tuple

from nexusdfs.config.roster import RosterRules
from nexusdfs.models.lineup import Lineup

from ..context import BatchContext
from ..exposure import BatchCounters
from ..player_pool import MIN_OWNERSHIP, PlayerPool
from ..repair import repair_lineup
from ..strategies import MONTE_CARLO, MonteCarloConfig, parse_stack_pattern

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)


def weighted_choice(rng: random.Random, items: Sequence, weights: Sequence[float]):
    total = sum(weights)
    if total <= 0:
        return rng.choice(items)
    return rng.choices(items, weights=weights, k=1)[0]


class MonteCarloSampler:
    """Draws lineups around a seed team stack.

    One draw picks a seed team by Stack+ (scaled by exposure bias), drafts the
    primary stack from it, drafts any secondary stacks, fills the remaining
    roles from teams not already stacked and then names the Captain.
    Candidates that break the salary cap or a max exposure go through
    bounded repair before being handed back.
    """

    name = MONTE_CARLO

    def __init__(
        self,
        pool: PlayerPool,
        rules: RosterRules,
        config: MonteCarloConfig,
        *,
        counters: BatchCounters,
        rng: random.Random,
        repair_attempts: int = 20,
    ):
        self.pool = pool
        self.rules = rules
        self.config = config
        self.counters = counters
        self.rng = rng
        self.repair_attempts = repair_attempts
        self._patterns: List[Tuple[int, ...]] = [
            parse_stack_pattern(pattern) for pattern in sorted(config.stack_distribution)
        ]
        self._pattern_weights = [config.stack_distribution[pattern] for pattern in sorted(config.stack_distribution)]
        self.repairs = 0
        self.repair_failures = 0

    def _player_weight(self, idx: int) -> float:
        player = self.pool[idx]
        ownership = max(player.ownership, MIN_OWNERSHIP)
        leverage = ownership ** self.config.leverage_multiplier
        return max(player.projection, 0.01) / leverage * self.counters.player_bias(idx)

    def _pick_seed_team(self) -> str:
        teams = list(self.pool.teams)
        weights = [max(self.pool.stack_plus(team), 0.01) * self.counters.team_bias(team) for team in teams]
        return weighted_choice(self.rng, teams, weights)

    def _pick_pattern(self, team: str) -> Tuple[int, ...]:
        preferred = self.counters.preferred_stack_size(team)
        if preferred is not None:
            return (preferred,) + tuple(1 for _ in range(len(self.rules.roster_order) - preferred))
        return weighted_choice(self.rng, self._patterns, self._pattern_weights)

    def _draft_stack(
        self,
        team: str,
        size: int,
        open_slots: List[int],
        slots: Dict[int, int],
    ) -> None:
        """Fill up to ``size`` open slots with players from ``team``."""

        available: List[Tuple[int, List[int]]] = []
        for slot in open_slots:
            candidates = [
                idx
                for idx in self.pool.by_team_position(team, self.rules.roster_order[slot])
                if idx not in slots.values()
            ]
            if candidates:
                available.append((slot, candidates))

        for _ in range(min(size, len(available))):
            role_weights = [max(self._player_weight(idx) for idx in candidates) for _, candidates in available]
            pick = weighted_choice(self.rng, range(len(available)), role_weights)
            slot, candidates = available.pop(pick)
            weights = [self._player_weight(idx) for idx in candidates]
            slots[slot] = weighted_choice(self.rng, candidates, weights)
            open_slots.remove(slot)

    def _fill_slot(self, slot: int, slots: Dict[int, int], stacked_teams: set[str]) -> bool:
        position = self.rules.roster_order[slot]
        taken = set(slots.values())
        candidates = [
            idx
            for idx in self.pool.by_position(position)
            if idx not in taken and self.pool[idx].team not in stacked_teams
        ]
        if not candidates:
            candidates = [idx for idx in self.pool.by_position(position) if idx not in taken]
        if not candidates:
            return False
        slots[slot] = weighted_choice(self.rng, candidates, [self._player_weight(idx) for idx in candidates])
        return True

    def _pick_captain(self, slots: Dict[int, int], seed_team: str) -> int:
        eligible = list(self.rules.captain_slots)
        stack_slots = [slot for slot in eligible if self.pool[slots[slot]].team == seed_team]
        if stack_slots and self.rng.random() >= self.config.randomness:
            return max(stack_slots, key=lambda slot: (self.pool[slots[slot]].projection, -slot))
        return self.rng.choice(eligible)

    def draw(
        self,
        *,
        seed_team: Optional[str] = None,
        forced_player: Optional[int] = None,
        stack_size: Optional[int] = None,
    ) -> Optional[Lineup]:
        """Produce one candidate lineup, repaired if needed, or ``None``."""

        roster = self.rules.roster_order
        slots: Dict[int, int] = {}
        if forced_player is not None:
            forced_slot = roster.index(self.pool[forced_player].position)
            slots[forced_slot] = forced_player
            seed_team = seed_team or self.pool[forced_player].team

        team = seed_team or self._pick_seed_team()
        if stack_size is not None:
            pattern: Tuple[int, ...] = (stack_size,) + tuple(1 for _ in range(len(roster) - stack_size))
        else:
            pattern = self._pick_pattern(team)

        open_slots = [slot for slot in range(len(roster)) if slot not in slots]
        already = sum(1 for idx in slots.values() if self.pool[idx].team == team)
        self._draft_stack(team, pattern[0] - already, open_slots, slots)
        stacked = {team}

        for size in pattern[1:]:
            if size < 2 or not open_slots:
                continue
            others = [name for name in self.pool.teams if name not in stacked]
            if not others:
                break
            weights = [max(self.pool.stack_plus(name), 0.01) * self.counters.team_bias(name) for name in others]
            secondary = weighted_choice(self.rng, others, weights)
            self._draft_stack(secondary, size, open_slots, slots)
            stacked.add(secondary)

        for slot in list(open_slots):
            if not self._fill_slot(slot, slots, stacked):
                return None
            open_slots.remove(slot)

        lineup = Lineup(
            slots=tuple(slots[slot] for slot in range(len(roster))),
            captain_slot=self._pick_captain(slots, team),
            source=self.name,
        )
        repaired = repair_lineup(
            lineup,
            self.pool,
            self.rules,
            self.counters,
            attempts=self.repair_attempts,
            on_attempt=self._count_repair,
        )
        if repaired is None:
            self.repair_failures += 1
        return repaired

    def _count_repair(self) -> None:
        self.repairs += 1

    def run(self, context: BatchContext, quota: int) -> int:
        """Submit lineups to ``context`` until ``quota`` are admitted or attempts run out."""

        if quota <= 0:
            return 0
        started = time.perf_counter()
        budget = quota * self.config.iterations_per_lineup
        accepted = attempts = 0
        while accepted < quota and attempts < budget and not context.full:
            if context.cancelled:
                break
            attempts += 1
            candidate = self.draw()
            if candidate is None:
                context.record(discarded=1)
                continue
            if context.submit(candidate):
                accepted += 1
        context.record(attempts=attempts)
        logger.info(
            "Monte Carlo accepted %s/%s lineups in %.2fs (%s attempts)",
            accepted,
            quota,
            time.perf_counter() - started,
            attempts,
        )
        return accepted
