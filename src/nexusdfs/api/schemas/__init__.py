"""Pydantic models for API I/O."""

from .lineup import (
    ExportRequest,
    GenerateRequest,
    GenerateResponse,
    LineupPlayerResponse,
    LineupResponse,
    PlayerUsageResponse,
)
from .session import (
    CancelResponse,
    CloseResponse,
    InitializeRequest,
    InitializeResponse,
    StrategiesResponse,
)

__all__ = [
    "CancelResponse",
    "CloseResponse",
    "ExportRequest",
    "GenerateRequest",
    "GenerateResponse",
    "InitializeRequest",
    "InitializeResponse",
    "LineupPlayerResponse",
    "LineupResponse",
    "PlayerUsageResponse",
    "StrategiesResponse",
]
