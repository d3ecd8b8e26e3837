"""Contest descriptors used for ROI estimation and strategy selection."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


class ContestType(str, Enum):
    CASH = "cash"
    DOUBLE_UP = "double_up"
    GPP = "gpp"
    SINGLE_ENTRY = "single_entry"


class ContestDescriptor(BaseModel):
    type: ContestType = ContestType.GPP
    field_size: int = Field(default=1000, ge=2)
    entry_fee: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(frozen=True)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value
