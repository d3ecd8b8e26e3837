from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, Field


class LineupPlayerResponse(BaseModel):
    player_id: str
    name: str
    team: str
    position: str
    salary: int
    projection: float
    ownership: float
    is_captain: bool


class LineupResponse(BaseModel):
    lineup_id: str
    captain_id: str
    salary: int
    projection: float
    nexus_score: float
    roi: float
    stack_signature: str
    stack_type: str
    avg_ownership: float
    total_ownership: float
    algorithm: str
    formula: str
    label: str | None = None
    players: List[LineupPlayerResponse]


class PlayerUsageResponse(BaseModel):
    player_id: str
    name: str
    team: str
    position: str
    count: int
    captain_count: int
    exposure: float


class GenerateRequest(BaseModel):
    session_id: str
    count: int = 20
    strategy: str = "recommended"
    custom_config: dict[str, Any] | None = None
    save_to_lineups: bool = True
    exposure_settings: list[dict[str, Any]] | None = None
    contest: dict[str, Any] | None = None
    deadline_seconds: float | None = Field(default=None, gt=0)


class GenerateResponse(BaseModel):
    session_id: str
    lineups: List[LineupResponse]
    summary: dict[str, Any]
    recommendations: list[dict[str, str]]
    player_usage: List[PlayerUsageResponse]
    message: str | None = None


class ExportRequest(BaseModel):
    format: str = "csv"
    lineup_ids: list[str] = Field(default_factory=list)
    session_id: str | None = None
