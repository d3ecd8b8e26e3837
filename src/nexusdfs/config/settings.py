"""Environment-driven optimizer settings."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os


logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

_SALARY_CAP_ENV = "NEXUSDFS_SALARY_CAP"
_WORKERS_ENV = "NEXUSDFS_WORKERS"
_SEED_ENV = "NEXUSDFS_SEED"
_PROGRESS_BUFFER_ENV = "NEXUSDFS_PROGRESS_BUFFER"
_REPAIR_ATTEMPTS_ENV = "NEXUSDFS_REPAIR_ATTEMPTS"
_BACKFILL_ROUNDS_ENV = "NEXUSDFS_BACKFILL_ROUNDS"
_DEADLINE_ENV = "NEXUSDFS_DEADLINE_SECONDS"

_SALARY_CAP_DEFAULT = 50_000
_PROGRESS_BUFFER_DEFAULT = 128
_REPAIR_ATTEMPTS_DEFAULT = 20
_BACKFILL_ROUNDS_DEFAULT = 2


def _env_float(name: str, default: float, *, clamp_min: float | None = None, clamp_max: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s: %s; using default %.2f", name, raw, default)
        return default
    if clamp_min is not None:
        value = max(clamp_min, value)
    if clamp_max is not None:
        value = min(clamp_max, value)
    return value


def _env_int(name: str, default: int, *, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; using default %d", name, raw, default)
        return default
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; ignoring", name, raw)
        return None


@dataclass(frozen=True)
class OptimizerSettings:
    salary_cap: int = _SALARY_CAP_DEFAULT
    workers: int = 1
    seed: int | None = None
    progress_buffer: int = _PROGRESS_BUFFER_DEFAULT
    repair_attempts: int = _REPAIR_ATTEMPTS_DEFAULT
    backfill_rounds: int = _BACKFILL_ROUNDS_DEFAULT
    deadline_seconds: float | None = None

    @property
    def parallel(self) -> bool:
        return self.workers > 1


def load_settings() -> OptimizerSettings:
    """Read settings from ``NEXUSDFS_*`` environment variables."""

    return OptimizerSettings(
        salary_cap=_env_int(_SALARY_CAP_ENV, _SALARY_CAP_DEFAULT, min_value=1),
        workers=_env_int(_WORKERS_ENV, os.cpu_count() or 1, min_value=1),
        seed=_env_optional_int(_SEED_ENV),
        progress_buffer=_env_int(_PROGRESS_BUFFER_ENV, _PROGRESS_BUFFER_DEFAULT, min_value=8),
        repair_attempts=_env_int(_REPAIR_ATTEMPTS_ENV, _REPAIR_ATTEMPTS_DEFAULT, min_value=1),
        backfill_rounds=_env_int(_BACKFILL_ROUNDS_ENV, _BACKFILL_ROUNDS_DEFAULT, min_value=0),
        deadline_seconds=_env_float(_DEADLINE_ENV, 0.0, clamp_min=0.0) or None,
    )
