"""Configuration helpers for roster rules and optimizer settings."""

from .roster import RosterRules, get_rules, get_rules_by_key
from .settings import OptimizerSettings, load_settings

__all__ = [
    "OptimizerSettings",
    "RosterRules",
    "get_rules",
    "get_rules_by_key",
    "load_settings",
]
