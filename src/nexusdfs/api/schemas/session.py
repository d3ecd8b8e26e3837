from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class InitializeRequest(BaseModel):
    players: list[dict[str, Any]] = Field(default_factory=list)
    stacks: list[dict[str, Any]] = Field(default_factory=list)
    exposure_settings: list[dict[str, Any]] = Field(default_factory=list)
    contest: dict[str, Any] | None = None
    seed: int | None = None


class InitializeResponse(BaseModel):
    session_id: str
    recommended_strategy: str
    players: int
    teams: list[str]
    constraints: dict[str, Any]


class StrategiesResponse(BaseModel):
    strategies: dict[str, dict[str, Any]]
    stats: dict[str, Any]


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool


class CloseResponse(BaseModel):
    session_id: str
    closed: bool
    dropped_lineups: int
