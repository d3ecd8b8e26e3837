"""Lineup pool utilities (batch analysis, export, etc.)."""

from .analysis import PlayerUsage, calculate_player_usage, diversity_score, stack_distribution
from .export import EXPORT_FORMATS, ExportPayload, export_lineups

__all__ = [
    "EXPORT_FORMATS",
    "ExportPayload",
    "PlayerUsage",
    "calculate_player_usage",
    "diversity_score",
    "export_lineups",
    "stack_distribution",
]
