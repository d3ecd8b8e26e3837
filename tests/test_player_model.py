import pytest
from pydantic import ValidationError

from nexusdfs.models import ContestDescriptor, ContestType, ExposureScope, ExposureSetting, PlayerRecord, Position, StackRecord


def test_player_record_is_frozen():
    record = PlayerRecord(
        player_id="p1",
        name="Test Player",
        team="T1",
        position="mid",
        salary=9000,
        projection=20.5,
    )

    assert record.player_id == "p1"
    assert record.position is Position.MID

    with pytest.raises((TypeError, ValidationError)):
        record.player_id = "p2"  # type: ignore[attr-defined]


def test_player_record_accepts_payload_aliases():
    record = PlayerRecord.model_validate(
        {"id": "p9", "name": "Alias", "team": "T1", "position": "ADC", "salary": 7000, "projectedPoints": 31.5}
    )
    assert record.player_id == "p9"
    assert record.projection == 31.5
    assert record.ownership == 0.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"position": "FLEX"},
        {"salary": -1},
        {"ownership": 120.0},
        {"projection": -3.0},
    ],
)
def test_player_record_rejects_invalid_values(overrides):
    payload = {"player_id": "p1", "name": "Bad", "team": "T1", "position": "TOP", "salary": 5000, "projection": 10.0}
    payload.update(overrides)
    with pytest.raises(ValidationError):
        PlayerRecord.model_validate(payload)


def test_stack_record_normalizes_positions():
    stack = StackRecord.model_validate({"team": "T1", "stackPositions": ["top", "mid"], "stackPlus": 8.5})
    assert stack.stack_positions == [Position.TOP, Position.MID]
    assert stack.stack_plus == 8.5


def test_exposure_setting_scope_aliases_and_bounds():
    setting = ExposureSetting.model_validate({"scope": "per_team", "key": "T1", "min": 20, "max": 80})
    assert setting.scope is ExposureScope.TEAM
    assert setting.active_bounds == 2

    unbounded = ExposureSetting(scope="global", min=0, max=100)
    assert unbounded.active_bounds == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"scope": "team", "min": 10},
        {"scope": "team_stack", "key": "T1", "min": 10},
        {"scope": "position", "key": "FLEX", "max": 50},
        {"scope": "player", "key": "p1", "min": 60, "max": 40},
    ],
)
def test_exposure_setting_rejects_inconsistent_payloads(payload):
    with pytest.raises(ValidationError):
        ExposureSetting.model_validate(payload)


def test_contest_descriptor_defaults_and_normalization():
    assert ContestDescriptor().type is ContestType.GPP
    contest = ContestDescriptor.model_validate({"type": "Double-Up", "field_size": 50})
    assert contest.type is ContestType.DOUBLE_UP
    with pytest.raises(ValidationError):
        ContestDescriptor.model_validate({"type": "satellite"})
