"""Canonical player and team-stack records shared across optimizer layers."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic.config import ConfigDict


class Position(str, Enum):
    TOP = "TOP"
    JNG = "JNG"
    MID = "MID"
    ADC = "ADC"
    SUP = "SUP"
    TEAM = "TEAM"


ROLE_ORDER: tuple[Position, ...] = (
    Position.TOP,
    Position.JNG,
    Position.MID,
    Position.ADC,
    Position.SUP,
    Position.TEAM,
)


def _normalize_position(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


class PlayerRecord(BaseModel):
    """Normalized player payload used by optimizer pipelines."""

    player_id: str = Field(..., min_length=1, validation_alias=AliasChoices("player_id", "id"))
    name: str
    team: str = Field(..., min_length=1)
    position: Position
    salary: int = Field(..., ge=0)
    projection: float = Field(
        ...,
        ge=0.0,
        validation_alias=AliasChoices("projection", "projected_points", "projectedPoints"),
    )
    ownership: float = Field(default=0.0, ge=0.0, le=100.0)
    opponent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("position", mode="before")
    @classmethod
    def _upper_position(cls, value: Any) -> Any:
        return _normalize_position(value)


class StackRecord(BaseModel):
    """Per-team stacking descriptor; ``stack_plus`` rates how well the team stacks."""

    team: str = Field(..., min_length=1)
    stack_positions: List[Position] = Field(
        default_factory=list,
        validation_alias=AliasChoices("stack_positions", "stackPositions"),
    )
    stack_plus: float = Field(
        default=1.0,
        validation_alias=AliasChoices("stack_plus", "stackPlus"),
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("stack_positions", mode="before")
    @classmethod
    def _normalize_positions(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [_normalize_position(item) for item in value]
        return value
