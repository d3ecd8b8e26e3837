"""Exposure-minimum backfill for a finished batch."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from nexusdfs.errors import ExposureInfeasible
from nexusdfs.models.exposure import ExposureScope
from nexusdfs.models.lineup import Lineup

from .context import BatchContext
from .exposure import ExposureBound
from .sampling import MonteCarloSampler

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

_ATTEMPTS_PER_LINEUP = 24


def _draw_for(bound: ExposureBound, context: BatchContext, sampler: MonteCarloSampler) -> Optional[Lineup]:
    if bound.scope is ExposureScope.PLAYER:
        return sampler.draw(forced_player=context.pool.index_of(bound.key))
    if bound.scope is ExposureScope.TEAM:
        return sampler.draw(seed_team=bound.key)
    if bound.scope is ExposureScope.TEAM_STACK:
        return sampler.draw(seed_team=bound.key, stack_size=bound.stack_size)
    return sampler.draw()


def _swap_in(context: BatchContext, bound: ExposureBound, incoming: Lineup) -> bool:
    """Replace the lowest-scoring lineup lacking the entity whose removal is safe."""

    counters = context.counters
    victims = [lineup for lineup in context.accepted if bound.entity not in counters.entities(lineup)]
    victims.sort(key=lambda lineup: (context.scorer(lineup), lineup.fingerprint))
    for victim in victims:
        if context.replace(victim, incoming):
            return True
    return False


def trim_maximums(context: BatchContext) -> int:
    """Drop lineups until every max holds at the actual batch size.

    Admission checks maxes against the planned size, so a batch that comes
    back short can end over a max. The lowest-scoring lineup holding the
    over-exposed entity goes first, skipping any whose removal would unmeet
    a min. Raises ``ExposureInfeasible`` when no such lineup is left.
    """

    counters = context.counters
    trimmed = 0
    while True:
        exceeded = counters.exceeded_maximums()
        if not exceeded:
            break
        bound = exceeded[0]
        victims = [lineup for lineup in context.accepted if bound.entity in counters.entities(lineup)]
        victims.sort(key=lambda lineup: (context.scorer(lineup), lineup.fingerprint))
        dropped = False
        if len(context) > 1:
            for victim in victims:
                if counters.removal_allowed(victim) and context.discard(victim):
                    dropped = True
                    break
        if not dropped:
            raise ExposureInfeasible(
                f"Maximum exposure for {bound.label} cannot hold in a batch of {len(context)} lineups "
                f"({counters.exposure(bound) * 100:.1f}% > {bound.max_fraction * 100:.1f}%)",
                entity=bound.label,
            )
        trimmed += 1

    if trimmed:
        logger.info("Trimmed %s lineups to keep maximum exposures at %s lineups", trimmed, len(context))
    return trimmed


def backfill_minimums(
    context: BatchContext,
    sampler: MonteCarloSampler,
    *,
    rounds: int = 2,
    candidates: Iterable[Lineup] = (),
) -> int:
    """Raise under-exposed entities to their minimum, or fail.

    Reserve ``candidates`` containing the entity are tried before fresh
    draws. Returns the number of rounds used; raises ``ExposureInfeasible``
    naming the first entity still below its minimum.
    """

    counters = context.counters
    reserve: List[Lineup] = list(candidates)
    used = 0
    for round_number in range(1, rounds + 1):
        unmet = counters.unmet_minimums()
        if not unmet or context.cancelled:
            break
        used = round_number
        logger.info(
            "Backfill round %s: %s unmet minimums (%s)",
            round_number,
            len(unmet),
            ", ".join(bound.label for bound in unmet[:5]),
        )
        for bound in unmet:
            pending = [
                lineup
                for lineup in reserve
                if bound.entity in counters.entities(lineup) and not context.seen(lineup)
            ]
            tries = max(counters.shortfall(bound), 1) * _ATTEMPTS_PER_LINEUP
            for _ in range(tries):
                if counters.shortfall(bound) <= 0 or context.cancelled:
                    break
                incoming = pending.pop(0) if pending else _draw_for(bound, context, sampler)
                if incoming is None or context.seen(incoming):
                    continue
                if bound.entity not in counters.entities(incoming):
                    continue
                if not context.full:
                    context.submit(incoming)
                else:
                    _swap_in(context, bound, incoming)

    context.record(backfill_rounds=used)
    if context.cancelled:
        return used
    unmet = counters.unmet_minimums()
    if unmet:
        first = unmet[0]
        raise ExposureInfeasible(
            f"Minimum exposure for {first.label} could not be met "
            f"({counters.exposure(first) * 100:.1f}% < {first.min_fraction * 100:.1f}%)",
            entity=first.label,
        )
    return used
