"""Typed failures raised by the optimizer core and surfaced by the API."""

from __future__ import annotations

from uuid import uuid4


class OptimizerError(Exception):
    """Base class for every failure the optimizer reports to callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(OptimizerError):
    """Malformed pool, duplicate ids, unknown enum values or out-of-range numbers."""


class UnknownStrategy(OptimizerError):
    def __init__(self, name: str):
        super().__init__(f"Unknown strategy: {name}")
        self.name = name


class Infeasible(OptimizerError):
    """No lineup can satisfy the roster and salary rules for this pool."""


class ExposureInfeasible(OptimizerError):
    def __init__(self, message: str, entity: str):
        super().__init__(message)
        self.entity = entity


class Cancelled(OptimizerError):
    def __init__(self, message: str = "Generation cancelled", accepted: int = 0):
        super().__init__(message)
        self.accepted = accepted


class InternalError(OptimizerError):
    """Unexpected failure; the correlation id ties the response to the logs."""

    def __init__(self, message: str, correlation_id: str | None = None):
        super().__init__(message)
        self.correlation_id = correlation_id or uuid4().hex


class SessionNotFound(OptimizerError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionBusy(OptimizerError):
    """A generation is already running for the session."""


class ExportError(OptimizerError):
    """Raised when lineups cannot be rendered in the requested export format."""
