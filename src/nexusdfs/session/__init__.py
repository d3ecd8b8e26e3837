"""Optimizer sessions and their progress streams."""

from .manager import ConstraintAnalysis, Session, SessionManager, SessionState, analyze_constraints
from .progress import ProgressBus, ProgressEvent, ProgressSubscription

__all__ = [
    "ConstraintAnalysis",
    "ProgressBus",
    "ProgressEvent",
    "ProgressSubscription",
    "Session",
    "SessionManager",
    "SessionState",
    "analyze_constraints",
]
