"""Barbell portfolio selection over a bulk candidate pool."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from nexusdfs.models.lineup import Lineup

from .hybrid import largest_remainder
from .player_pool import PlayerPool
from .scoring import LineupScorer, stack_type, total_ownership

FLOOR = "floor"
CEILING = "ceiling"
BALANCED = "balanced"
BARBELL_LABELS = (FLOOR, CEILING, BALANCED)


@dataclass(frozen=True)
class PortfolioCandidate:
    lineup: Lineup
    nexus: float
    fitness: float
    total_ownership: float
    stack_type: str
    label: str


def label_candidates(
    lineups: Sequence[Lineup],
    pool: PlayerPool,
    scorer: LineupScorer,
) -> List[PortfolioCandidate]:
    """Score candidates and label them by NexusScore percentile rank.

    The top quarter is ``ceiling``, the bottom quarter ``floor`` and the
    rest ``balanced``. Returned best first.
    """

    ranked = sorted(
        lineups,
        key=lambda lineup: (-scorer(lineup), -scorer.fitness(lineup), lineup.fingerprint),
    )
    total = len(ranked)
    candidates: List[PortfolioCandidate] = []
    for position, lineup in enumerate(ranked):
        if position < total * 0.25:
            label = CEILING
        elif position >= total * 0.75:
            label = FLOOR
        else:
            label = BALANCED
        candidates.append(
            PortfolioCandidate(
                lineup=lineup,
                nexus=scorer(lineup),
                fitness=scorer.fitness(lineup),
                total_ownership=total_ownership(lineup, pool),
                stack_type=stack_type(lineup, pool),
                label=label,
            )
        )
    return candidates


def select_portfolio(
    candidates: Sequence[PortfolioCandidate],
    size: int,
    barbell: Mapping[str, float],
    stack_targets: Optional[Mapping[str, float]],
    admit: Callable[[Lineup], bool],
) -> List[PortfolioCandidate]:
    """Greedy barbell selection.

    Candidates are visited best NexusScore first, ties going to lower total
    ownership. A pick must fit its label quota and its stack-type quota and
    pass ``admit``; the stack quota and then the label quota are dropped in
    later passes if the portfolio is still short.
    """

    label_quota = largest_remainder(size, barbell, BARBELL_LABELS)
    stack_quota: Optional[Dict[str, int]] = largest_remainder(size, stack_targets) if stack_targets else None
    ordered = sorted(candidates, key=lambda c: (-c.nexus, c.total_ownership, c.lineup.fingerprint))

    selected: List[PortfolioCandidate] = []
    chosen: set = set()
    for use_label, use_stack in ((True, True), (True, False), (False, False)):
        for candidate in ordered:
            if len(selected) >= size:
                return selected
            fingerprint = candidate.lineup.fingerprint
            if fingerprint in chosen:
                continue
            if use_label and label_quota.get(candidate.label, 0) <= 0:
                continue
            if use_stack and stack_quota is not None and stack_quota.get(candidate.stack_type, 0) <= 0:
                continue
            if not admit(candidate.lineup):
                continue
            selected.append(candidate)
            chosen.add(fingerprint)
            label_quota[candidate.label] = label_quota.get(candidate.label, 0) - 1
            if stack_quota is not None and candidate.stack_type in stack_quota:
                stack_quota[candidate.stack_type] -= 1
    return selected


def portfolio_summary(selected: Sequence[PortfolioCandidate]) -> Dict[str, object]:
    labels = {label: 0 for label in BARBELL_LABELS}
    stacks: Dict[str, int] = {}
    for candidate in selected:
        labels[candidate.label] = labels.get(candidate.label, 0) + 1
        stacks[candidate.stack_type] = stacks.get(candidate.stack_type, 0) + 1
    scores = [candidate.nexus for candidate in selected]
    return {
        "size": len(selected),
        "labels": labels,
        "stack_types": dict(sorted(stacks.items())),
        "nexus_range": [min(scores), max(scores)] if scores else None,
    }
