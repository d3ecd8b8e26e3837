"""User-facing exposure settings (percentages of the lineup batch)."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic.config import ConfigDict

from .player import Position


class ExposureScope(str, Enum):
    GLOBAL = "global"
    POSITION = "position"
    TEAM = "team"
    TEAM_STACK = "team_stack"
    PLAYER = "player"


_SCOPE_ALIASES = {
    "per_position": ExposureScope.POSITION.value,
    "per_team": ExposureScope.TEAM.value,
    "per_player": ExposureScope.PLAYER.value,
    "team_stacksize": ExposureScope.TEAM_STACK.value,
    "per_team_stacksize": ExposureScope.TEAM_STACK.value,
    "team_stack_size": ExposureScope.TEAM_STACK.value,
}


class ExposureSetting(BaseModel):
    """A min/max/target bound for one entity, expressed in percent (0..100).

    ``key`` names the position, team or player id the bound applies to and is
    unused for the global scope, which applies to every player individually.
    """

    scope: ExposureScope
    key: Optional[str] = Field(default=None, validation_alias=AliasChoices("key", "id", "team"))
    stack_size: Optional[int] = Field(
        default=None,
        ge=1,
        le=6,
        validation_alias=AliasChoices("stack_size", "stackSize"),
    )
    min: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    max: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    target: Optional[float] = Field(default=None, ge=0.0, le=100.0)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("scope", mode="before")
    @classmethod
    def _normalize_scope(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_").replace("+", "_")
            return _SCOPE_ALIASES.get(normalized, normalized)
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "ExposureSetting":
        if self.scope is not ExposureScope.GLOBAL and not self.key:
            raise ValueError(f"{self.scope.value} exposure requires a key")
        if self.scope is ExposureScope.TEAM_STACK and self.stack_size is None:
            raise ValueError("team_stack exposure requires stack_size")
        if self.scope is ExposureScope.POSITION and self.key is not None:
            try:
                Position(self.key.upper())
            except ValueError as exc:
                raise ValueError(f"Unknown position {self.key!r}") from exc
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min exposure cannot exceed max exposure")
        return self

    @property
    def active_bounds(self) -> int:
        """Number of bounds that actually restrict the batch."""

        count = 0
        if self.min is not None and self.min > 0:
            count += 1
        if self.max is not None and self.max < 100:
            count += 1
        return count
