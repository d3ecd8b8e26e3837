import csv
from io import StringIO
import json

import pytest

from nexusdfs.config import get_rules
from nexusdfs.errors import ExportError
from nexusdfs.models import LineupPlayer, LineupResult
from nexusdfs.pool import calculate_player_usage, diversity_score, stack_distribution
from nexusdfs.pool.export import EXPORT_FORMATS, export_lineups

ROLES = ("TOP", "JNG", "MID", "ADC", "SUP", "TEAM")


def _lineup(lineup_id: str, team: str, captain_slot: int = 2) -> LineupResult:
    players = tuple(
        LineupPlayer(
            player_id=f"{team.lower()}{idx}",
            name=f"{team} {role}",
            team=team,
            position=role,
            salary=5000,
            projection=20.0,
            ownership=10.0,
            is_captain=idx == captain_slot,
        )
        for idx, role in enumerate(ROLES)
    )
    return LineupResult(
        lineup_id=lineup_id,
        captain_id=players[captain_slot].player_id,
        players=players,
        salary=32_500,
        projection=130.0,
        nexus_score=25.0,
        roi=-1.234,
        stack_signature="6",
        stack_type="6",
        avg_ownership=10.0,
        total_ownership=60.0,
        algorithm="monte_carlo",
        formula="canonical",
    )


def test_csv_export_lists_roles_and_metrics():
    payload = export_lineups([_lineup("L001", "A"), _lineup("L002", "B", captain_slot=0)], "CSV")
    rows = list(csv.reader(StringIO(payload.content)))

    assert payload.media_type == "text/csv"
    assert payload.filename.startswith("nexusdfs_lineups_") and payload.filename.endswith(".csv")
    assert payload.content_disposition == f'attachment; filename="{payload.filename}"'
    assert rows[0] == [
        "lineup_id", "CPT", "TOP", "JNG", "MID", "ADC", "SUP", "TEAM",
        "salary", "projection", "nexus_score", "roi", "stack_type", "algorithm",
    ]
    assert rows[1][:3] == ["L001", "A MID", "A TOP"]
    assert rows[1][-6:] == ["32500", "130.00", "25.0", "-1.23", "6", "monte_carlo"]
    assert rows[2][1] == "B TOP"


def test_draftkings_export_orders_captain_first():
    payload = export_lineups([_lineup("L001", "A")], "draftkings", get_rules())
    rows = list(csv.reader(StringIO(payload.content)))

    assert payload.filename.startswith("nexusdfs_draftkings_")
    assert rows[0] == ["CPT", "FLEX", "FLEX", "FLEX", "FLEX", "TEAM"]
    assert rows[1] == ["A MID (a2)", "A TOP (a0)", "A JNG (a1)", "A ADC (a3)", "A SUP (a4)", "A TEAM (a5)"]


def test_json_export_round_trips_fields():
    payload = export_lineups([_lineup("L001", "A")], "json")
    data = json.loads(payload.content)

    assert payload.media_type == "application/json"
    assert data["lineups"][0]["lineup_id"] == "L001"
    assert data["lineups"][0]["players"][2]["is_captain"] is True


def test_export_rejects_unknown_format_and_empty_batch():
    assert "csv" in EXPORT_FORMATS
    with pytest.raises(ExportError, match="Unsupported export format"):
        export_lineups([_lineup("L001", "A")], "xlsx")
    with pytest.raises(ExportError, match="No lineups"):
        export_lineups([], "csv")


def test_draftkings_export_requires_captain():
    lineup = _lineup("L001", "A", captain_slot=-1)
    with pytest.raises(ExportError, match="missing player for slot CPT"):
        export_lineups([lineup], "draftkings")


def test_batch_statistics():
    lineups = [_lineup("L001", "A"), _lineup("L002", "A", captain_slot=0), _lineup("L003", "B")]

    usage = calculate_player_usage(lineups)
    top = usage[0]
    assert top.count == 2
    assert top.exposure == pytest.approx(2 / 3)
    assert sum(item.captain_count for item in usage) == 3

    assert stack_distribution(lineups) == {"6": 3}
    assert 0.0 < diversity_score(lineups) < 1.0
