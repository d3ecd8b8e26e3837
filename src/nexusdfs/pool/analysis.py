"""Batch-level statistics over finished lineups."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from nexusdfs.models.lineup import LineupResult

DIVERSITY_SAMPLE = 50


@dataclass(frozen=True)
class PlayerUsage:
    player_id: str
    name: str
    team: str
    position: str
    count: int
    captain_count: int
    exposure: float


def calculate_player_usage(lineups: Sequence[LineupResult]) -> List[PlayerUsage]:
    total_lineups = len(lineups)
    if total_lineups == 0:
        return []

    usage: Dict[str, Dict[str, Any]] = {}
    for lineup in lineups:
        for player in lineup.players:
            entry = usage.setdefault(
                player.player_id,
                {
                    "name": player.name,
                    "team": player.team,
                    "position": player.position,
                    "count": 0,
                    "captain_count": 0,
                },
            )
            entry["count"] = int(entry["count"]) + 1
            if player.is_captain:
                entry["captain_count"] = int(entry["captain_count"]) + 1

    sorted_usage = sorted(
        usage.items(),
        key=lambda item: (-int(item[1]["count"]), str(item[1]["name"])),
    )
    return [
        PlayerUsage(
            player_id=player_id,
            name=str(data["name"]),
            team=str(data["team"]),
            position=str(data["position"]),
            count=int(data["count"]),
            captain_count=int(data["captain_count"]),
            exposure=int(data["count"]) / total_lineups,
        )
        for player_id, data in sorted_usage
    ]


def lineup_distance(first: LineupResult, second: LineupResult) -> float:
    """Jaccard distance between the player sets of two lineups."""

    ids1 = set(first.signature)
    ids2 = set(second.signature)
    union = ids1 | ids2
    if not union:
        return 0.0
    return 1.0 - len(ids1 & ids2) / len(union)


def diversity_score(lineups: Sequence[LineupResult], sample: int = DIVERSITY_SAMPLE) -> float:
    """Mean pairwise distance over the first ``sample`` lineups."""

    window = list(lineups[:sample])
    if len(window) < 2:
        return 0.0
    total = 0.0
    comparisons = 0
    for i in range(len(window)):
        for j in range(i + 1, len(window)):
            total += lineup_distance(window[i], window[j])
            comparisons += 1
    return total / comparisons


def stack_distribution(lineups: Sequence[LineupResult]) -> Dict[str, int]:
    return dict(sorted(Counter(lineup.stack_type for lineup in lineups).items()))


def source_distribution(lineups: Sequence[LineupResult]) -> Dict[str, int]:
    return dict(sorted(Counter(lineup.algorithm for lineup in lineups).items()))
