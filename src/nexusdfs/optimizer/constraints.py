"""Lineup feasibility checks in a fixed, reportable order."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional

from nexusdfs.config.roster import RosterRules
from nexusdfs.models.lineup import Lineup

from .exposure import BatchCounters
from .player_pool import PlayerPool
from .scoring import lineup_salary


class Violation(str, Enum):
    NONE = "none"
    POSITION_FILL = "position_fill"
    CAPTAIN_POSITION = "captain_position"
    DUPLICATE_PLAYER = "duplicate_player"
    SALARY_CAP = "salary_cap"
    EXPOSURE_MAX = "exposure_max"


class Feasibility(NamedTuple):
    ok: bool
    violation: Violation


FEASIBLE = Feasibility(True, Violation.NONE)


def feasible(
    lineup: Lineup,
    pool: PlayerPool,
    rules: RosterRules,
    counters: Optional[BatchCounters] = None,
) -> Feasibility:
    """Check roster shape, captain, uniqueness, salary and exposure, in that order."""

    slots = lineup.slots
    if len(slots) != rules.size:
        return Feasibility(False, Violation.POSITION_FILL)
    for slot, idx in enumerate(slots):
        if idx < 0 or idx >= len(pool) or pool[idx].position is not rules.roster_order[slot]:
            return Feasibility(False, Violation.POSITION_FILL)

    if lineup.captain_slot not in rules.captain_slots:
        return Feasibility(False, Violation.CAPTAIN_POSITION)

    if len(set(slots)) != len(slots):
        return Feasibility(False, Violation.DUPLICATE_PLAYER)

    if lineup_salary(lineup, pool, rules) > rules.salary_cap:
        return Feasibility(False, Violation.SALARY_CAP)

    if counters is not None and counters.breach(lineup) is not None:
        return Feasibility(False, Violation.EXPOSURE_MAX)

    return FEASIBLE
