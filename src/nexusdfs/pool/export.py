"""Lineup export helpers: plain CSV, JSON and the DraftKings upload layout."""

from __future__ import annotations

import csv
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from io import StringIO
import json
from typing import Callable, Dict, List, Mapping, Sequence

from nexusdfs.config.roster import RosterRules, get_rules
from nexusdfs.errors import ExportError
from nexusdfs.models.lineup import LineupPlayer, LineupResult
from nexusdfs.models.player import Position

EXPORT_FORMATS = ("csv", "json", "draftkings")

SlotMatcher = Callable[[LineupPlayer], bool]

_SLOT_MATCHERS: Mapping[str, SlotMatcher] = {
    "CPT": lambda player: player.is_captain,
    "FLEX": lambda player: not player.is_captain and player.position != Position.TEAM.value,
    "TEAM": lambda player: player.position == Position.TEAM.value,
}


@dataclass(frozen=True)
class ExportPayload:
    content: str
    media_type: str
    filename: str

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'


def _slot_headers(slot_order: Sequence[str]) -> tuple:
    counts: Dict[str, int] = {}
    headers: List[str] = []
    for slot in slot_order:
        key = slot
        counts[key] = counts.get(key, 0) + 1
        if list(slot_order).count(slot) > 1 and key not in {"FLEX", "UTIL"}:
            headers.append(f"{key}{counts[key]}")
        else:
            headers.append(key)
    return tuple(headers)


def _assign_slots(lineup: LineupResult, slot_order: Sequence[str]) -> List[LineupPlayer]:
    """Return players matched to upload slots preserving slot order."""

    remaining = list(lineup.players)
    assignments: List[LineupPlayer] = []
    for slot in slot_order:
        matcher = _SLOT_MATCHERS.get(slot)
        if matcher is None:
            raise ExportError(f"Unsupported export slot {slot}")
        match_index = next((idx for idx, player in enumerate(remaining) if matcher(player)), None)
        if match_index is None:
            raise ExportError(f"Lineup {lineup.lineup_id} missing player for slot {slot}")
        assignments.append(remaining.pop(match_index))
    if remaining:
        raise ExportError(f"Lineup {lineup.lineup_id} has extra players after slot assignment")
    return assignments


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def export_csv(lineups: Sequence[LineupResult], rules: RosterRules) -> str:
    buffer = StringIO()
    writer = csv.writer(buffer)
    roles = _slot_headers([position.value for position in rules.roster_order])
    writer.writerow(
        ["lineup_id", "CPT", *roles, "salary", "projection", "nexus_score", "roi", "stack_type", "algorithm"]
    )
    for lineup in lineups:
        captain = next(player for player in lineup.players if player.is_captain)
        writer.writerow(
            [
                lineup.lineup_id,
                captain.name,
                *(player.name for player in lineup.players),
                lineup.salary,
                f"{lineup.projection:.2f}",
                f"{lineup.nexus_score:.1f}",
                f"{lineup.roi:.2f}",
                lineup.stack_type,
                lineup.algorithm,
            ]
        )
    return buffer.getvalue()


def export_json(lineups: Sequence[LineupResult]) -> str:
    return json.dumps({"lineups": [asdict(lineup) for lineup in lineups]}, indent=2)


def export_draftkings(lineups: Sequence[LineupResult], rules: RosterRules) -> str:
    """Contest upload CSV: one row per lineup, cells ``Name (id)``."""

    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(rules.export_order)
    for lineup in lineups:
        assignments = _assign_slots(lineup, rules.export_order)
        writer.writerow([f"{player.name} ({player.player_id})" for player in assignments])
    return buffer.getvalue()


def export_lineups(
    lineups: Sequence[LineupResult],
    fmt: str,
    rules: RosterRules | None = None,
) -> ExportPayload:
    rules = rules or get_rules()
    fmt = (fmt or "").strip().lower()
    if fmt not in EXPORT_FORMATS:
        raise ExportError(f"Unsupported export format: {fmt or '<empty>'}")
    if not lineups:
        raise ExportError("No lineups to export")

    stamp = _timestamp()
    if fmt == "json":
        return ExportPayload(export_json(lineups), "application/json", f"nexusdfs_lineups_{stamp}.json")
    if fmt == "draftkings":
        return ExportPayload(export_draftkings(lineups, rules), "text/csv", f"nexusdfs_draftkings_{stamp}.csv")
    return ExportPayload(export_csv(lineups, rules), "text/csv", f"nexusdfs_lineups_{stamp}.csv")


__all__ = [
    "EXPORT_FORMATS",
    "ExportPayload",
    "export_csv",
    "export_draftkings",
    "export_json",
    "export_lineups",
]
