"""Bounded repair of near-feasible lineups by single-slot swaps."""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from nexusdfs.config.roster import RosterRules
from nexusdfs.models.exposure import ExposureScope
from nexusdfs.models.lineup import Lineup

from .constraints import Violation, feasible
from .exposure import BatchCounters
from .player_pool import PlayerPool
from .scoring import effective_salary


def _alternatives(
    lineup: Lineup,
    pool: PlayerPool,
    rules: RosterRules,
    slot: int,
    *,
    max_salary: Optional[int] = None,
    avoid_team: Optional[str] = None,
    counters: Optional[BatchCounters] = None,
) -> Sequence[int]:
    """Same-position replacements for ``slot`` ordered by projection, best first."""

    taken = set(lineup.slots)
    candidates = []
    for idx in pool.by_position(rules.roster_order[slot]):
        if idx in taken:
            continue
        player = pool[idx]
        if max_salary is not None and player.salary >= max_salary:
            continue
        if avoid_team is not None and player.team == avoid_team:
            continue
        if counters is not None and counters.player_bias(idx) <= 1e-3:
            continue
        candidates.append(idx)
    candidates.sort(key=lambda idx: (-pool[idx].projection, pool[idx].salary, idx))
    return candidates


def _fix_salary(lineup: Lineup, pool: PlayerPool, rules: RosterRules) -> Optional[Lineup]:
    order = sorted(
        range(len(lineup.slots)),
        key=lambda slot: -effective_salary(lineup, pool, rules, slot),
    )
    for slot in order:
        current = pool[lineup.slots[slot]].salary
        options = _alternatives(lineup, pool, rules, slot, max_salary=current)
        if options:
            return lineup.with_slot(slot, options[0])
    return None


def _fix_exposure(
    lineup: Lineup,
    pool: PlayerPool,
    rules: RosterRules,
    counters: BatchCounters,
) -> Optional[Lineup]:
    bound = counters.breach(lineup)
    if bound is None:
        return lineup

    if bound.scope is ExposureScope.PLAYER:
        slots = [slot for slot, idx in enumerate(lineup.slots) if pool[idx].player_id == bound.key]
        avoid_team = None
    elif bound.scope in (ExposureScope.TEAM, ExposureScope.TEAM_STACK):
        slots = [
            slot
            for slot, idx in enumerate(lineup.slots)
            if pool[idx].team == bound.key and slot != lineup.captain_slot
        ]
        slots.sort(key=lambda slot: pool[lineup.slots[slot]].projection)
        avoid_team = bound.key if bound.scope is ExposureScope.TEAM else None
    else:
        return None

    for slot in slots:
        options = _alternatives(lineup, pool, rules, slot, avoid_team=avoid_team, counters=counters)
        if options:
            return lineup.with_slot(slot, options[0])
    return None


def _fix_duplicate(lineup: Lineup, pool: PlayerPool, rules: RosterRules) -> Optional[Lineup]:
    seen: set[int] = set()
    for slot, idx in enumerate(lineup.slots):
        if idx in seen:
            options = _alternatives(lineup, pool, rules, slot)
            return lineup.with_slot(slot, options[0]) if options else None
        seen.add(idx)
    return lineup


def repair_lineup(
    lineup: Lineup,
    pool: PlayerPool,
    rules: RosterRules,
    counters: Optional[BatchCounters] = None,
    *,
    attempts: int = 20,
    on_attempt: Optional[Callable[[], None]] = None,
) -> Optional[Lineup]:
    """Swap players until the lineup is feasible or the attempt budget runs out.

    Salary breaches replace the most expensive slot (captain salary scaled)
    with the best cheaper player at that position. Max-exposure breaches
    replace the offending player or a non-captain player from the offending
    team. Returns ``None`` when the lineup cannot be repaired.
    """

    current = lineup
    for _ in range(attempts + 1):
        ok, violation = feasible(current, pool, rules, counters)
        if ok:
            return current
        if on_attempt is not None:
            on_attempt()
        if violation is Violation.SALARY_CAP:
            repaired = _fix_salary(current, pool, rules)
        elif violation is Violation.EXPOSURE_MAX and counters is not None:
            repaired = _fix_exposure(current, pool, rules, counters)
        elif violation is Violation.DUPLICATE_PLAYER:
            repaired = _fix_duplicate(current, pool, rules)
        else:
            return None
        if repaired is None:
            return None
        current = repaired
    return None
