from .contest import ContestDescriptor, ContestType
from .exposure import ExposureScope, ExposureSetting
from .lineup import Lineup, LineupPlayer, LineupResult
from .player import ROLE_ORDER, PlayerRecord, Position, StackRecord

__all__ = [
    "ContestDescriptor",
    "ContestType",
    "ExposureScope",
    "ExposureSetting",
    "Lineup",
    "LineupPlayer",
    "LineupResult",
    "PlayerRecord",
    "Position",
    "ROLE_ORDER",
    "StackRecord",
]
