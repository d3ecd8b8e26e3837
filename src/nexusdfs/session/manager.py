"""Sessions: an immutable pool plus the mutable generation state around it."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
import logging
import random
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union
from uuid import uuid4

from pydantic import ValidationError

from nexusdfs.config.roster import RosterRules, get_rules
from nexusdfs.config.settings import OptimizerSettings, load_settings
from nexusdfs.errors import (
    InternalError,
    InvalidInput,
    OptimizerError,
    SessionBusy,
    SessionNotFound,
)
from nexusdfs.models.contest import ContestDescriptor, ContestType
from nexusdfs.models.exposure import ExposureScope, ExposureSetting
from nexusdfs.optimizer.context import CancellationToken
from nexusdfs.optimizer.exposure import ExposureBound, compile_bounds, count_active_bounds
from nexusdfs.optimizer.player_pool import PlayerInput, PlayerPool, StackInput, _validation_message
from nexusdfs.optimizer.scoring import DEFAULT_FORMULA, get_formula
from nexusdfs.optimizer.service import BuildOutput, build_lineups
from nexusdfs.optimizer.strategies import StrategyRegistry
from nexusdfs.persistence import LineupStore
from nexusdfs.pool.export import ExportPayload, export_lineups

from .progress import ProgressBus, ProgressSubscription

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

ExposureInput = Union[ExposureSetting, Mapping[str, Any]]
ContestInput = Union[ContestDescriptor, Mapping[str, Any], None]

_CONTEST_COMPLEXITY = {
    ContestType.CASH: 1,
    ContestType.DOUBLE_UP: 1,
    ContestType.GPP: 3,
    ContestType.SINGLE_ENTRY: 5,
}


class SessionState(str, Enum):
    READY = "ready"
    GENERATING = "generating"
    CLOSED = "closed"


def _coerce_exposure(settings: Iterable[ExposureInput]) -> List[ExposureSetting]:
    records: List[ExposureSetting] = []
    for idx, item in enumerate(settings):
        if isinstance(item, ExposureSetting):
            records.append(item)
            continue
        try:
            records.append(ExposureSetting.model_validate(item))
        except ValidationError as exc:
            raise InvalidInput(f"exposure_settings[{idx}] {_validation_message(exc)}") from exc
    return records


def _coerce_contest(contest: ContestInput) -> ContestDescriptor:
    if contest is None:
        return ContestDescriptor()
    if isinstance(contest, ContestDescriptor):
        return contest
    try:
        return ContestDescriptor.model_validate(contest)
    except ValidationError as exc:
        raise InvalidInput(f"contest {_validation_message(exc)}") from exc


@dataclass(frozen=True)
class ConstraintAnalysis:
    constraint_count: int
    complexity_score: float
    has_player_constraints: bool
    has_team_constraints: bool
    has_stack_constraints: bool
    has_position_constraints: bool
    contest_type: str
    field_size: int
    recommended_strategy: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SessionInputs:
    exposure_settings: List[ExposureSetting]
    bounds: List[ExposureBound]
    contest: ContestDescriptor
    analysis: ConstraintAnalysis


def recommend_strategy(constraint_count: int, complexity_score: float, contest: ContestDescriptor) -> str:
    """Preset name suggested to the caller for this session's contest and bounds."""

    if constraint_count > 5 or complexity_score > 15:
        return "constraint_focused"
    if contest.type in (ContestType.CASH, ContestType.DOUBLE_UP):
        return "cash_game"
    if contest.type is ContestType.GPP:
        return "contrarian" if contest.field_size > 5000 else "tournament"
    if contest.field_size < 100:
        return "cash_game"
    if contest.field_size > 10_000:
        return "contrarian"
    return "balanced"


def analyze_constraints(settings: Sequence[ExposureSetting], contest: ContestDescriptor) -> ConstraintAnalysis:
    active = [setting for setting in settings if setting.active_bounds or setting.target is not None]
    players = [s for s in active if s.scope in (ExposureScope.PLAYER, ExposureScope.GLOBAL)]
    teams = [s for s in active if s.scope in (ExposureScope.TEAM, ExposureScope.TEAM_STACK)]
    stacks = [s for s in teams if s.scope is ExposureScope.TEAM_STACK]
    positions = [s for s in active if s.scope is ExposureScope.POSITION]

    score = len(players) * 1.5 + len(teams) * 2 + len(stacks) * 3 + len(positions)
    score += _CONTEST_COMPLEXITY.get(contest.type, 0)
    if contest.field_size > 10_000:
        score += 2
    elif contest.field_size > 1000:
        score += 1

    count = count_active_bounds(settings)
    return ConstraintAnalysis(
        constraint_count=count,
        complexity_score=score,
        has_player_constraints=bool(players),
        has_team_constraints=bool(teams),
        has_stack_constraints=bool(stacks),
        has_position_constraints=bool(positions),
        contest_type=contest.type.value,
        field_size=contest.field_size,
        recommended_strategy=recommend_strategy(count, score, contest),
    )


class Session:
    """Pool, exposure settings and contest for one optimizer session.

    The pool never changes after init. Exposure settings and contest may be
    replaced between generations; at most one generation runs at a time.
    """

    def __init__(
        self,
        session_id: str,
        pool: PlayerPool,
        *,
        rules: RosterRules,
        settings: OptimizerSettings,
        exposure_settings: Sequence[ExposureSetting] = (),
        contest: Optional[ContestDescriptor] = None,
        seed: Optional[int] = None,
    ):
        self.session_id = session_id
        self.pool = pool
        self.rules = rules
        self.settings = settings
        self.progress = ProgressBus(settings.progress_buffer)
        self.formula = DEFAULT_FORMULA
        self.created_at = datetime.now(timezone.utc)
        self.state = SessionState.READY
        self.seed_fixed = seed is not None
        self.seed = seed if seed is not None else random.SystemRandom().randrange(2**31)
        self._lock = threading.Lock()
        self._token: Optional[CancellationToken] = None
        self._lineup_sequence = 0
        self._generations = 0
        self.exposure_settings: List[ExposureSetting] = []
        self.bounds: List[ExposureBound] = []
        self.contest = ContestDescriptor()
        self.analysis = analyze_constraints([], self.contest)
        self.apply_inputs(
            self.prepare_inputs(exposure_settings=exposure_settings, contest=contest or ContestDescriptor())
        )

    def prepare_inputs(
        self,
        *,
        exposure_settings: Optional[Sequence[ExposureSetting]] = None,
        contest: Optional[ContestDescriptor] = None,
    ) -> SessionInputs:
        """Compile replacement inputs without touching the session."""

        if exposure_settings is None:
            settings = list(self.exposure_settings)
            bounds = list(self.bounds)
        else:
            settings = list(exposure_settings)
            bounds = compile_bounds(settings, self.pool)
        contest = self.contest if contest is None else contest
        return SessionInputs(settings, bounds, contest, analyze_constraints(settings, contest))

    def apply_inputs(self, inputs: SessionInputs) -> None:
        self.exposure_settings = list(inputs.exposure_settings)
        self.bounds = list(inputs.bounds)
        self.contest = inputs.contest
        self.analysis = inputs.analysis

    def set_formula(self, name: str) -> None:
        """Switch the scoring formula for lineups generated from now on."""

        get_formula(name)
        if name != self.formula:
            logger.info("Session %s formula %s -> %s", self.session_id, self.formula, name)
        self.formula = name

    def next_lineup_id(self) -> str:
        with self._lock:
            self._lineup_sequence += 1
            return f"{self.session_id[:8]}-L{self._lineup_sequence:03d}"

    def begin_generation(self, deadline_seconds: Optional[float] = None) -> tuple:
        """Claim the session for one generation; returns ``(token, seed)``."""

        with self._lock:
            if self.state is SessionState.CLOSED:
                raise SessionNotFound(self.session_id)
            if self.state is SessionState.GENERATING:
                raise SessionBusy(f"A generation is already running for session {self.session_id}")
            self.state = SessionState.GENERATING
            self._token = CancellationToken(deadline_seconds)
            seed = self.seed + self._generations
            self._generations += 1
            return self._token, seed

    def end_generation(self) -> None:
        with self._lock:
            if self.state is SessionState.GENERATING:
                self.state = SessionState.READY
            self._token = None

    @property
    def generating(self) -> bool:
        return self.state is SessionState.GENERATING

    def cancel(self, reason: str = "cancelled") -> bool:
        with self._lock:
            token = self._token
        if token is None:
            return False
        token.cancel(reason)
        logger.info("Cancellation requested for session %s", self.session_id)
        return True

    def close(self) -> None:
        self.cancel("session closed")
        with self._lock:
            self.state = SessionState.CLOSED
        self.progress.close()

    def describe(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "players": len(self.pool),
            "teams": list(self.pool.teams),
            "formula": self.formula,
            "seed": self.seed if self.seed_fixed else None,
            "contest": self.contest.model_dump(mode="json"),
            "created_at": self.created_at.isoformat(),
            "constraints": self.analysis.as_dict(),
        }


class SessionManager:
    """Owns sessions, the strategy registry and the lineup store."""

    def __init__(
        self,
        settings: Optional[OptimizerSettings] = None,
        registry: Optional[StrategyRegistry] = None,
        store: Optional[LineupStore] = None,
        rules: Optional[RosterRules] = None,
    ):
        self.settings = settings or load_settings()
        self.registry = registry or StrategyRegistry()
        self.store = store or LineupStore()
        self.rules = (rules or get_rules()).with_salary_cap(self.settings.salary_cap)
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def init(
        self,
        players: Iterable[PlayerInput],
        *,
        stacks: Iterable[StackInput] = (),
        exposure_settings: Iterable[ExposureInput] = (),
        contest: ContestInput = None,
        seed: Optional[int] = None,
    ) -> Session:
        pool = PlayerPool.build(players, stacks)
        session = Session(
            uuid4().hex,
            pool,
            rules=self.rules,
            settings=self.settings,
            exposure_settings=_coerce_exposure(exposure_settings),
            contest=_coerce_contest(contest),
            seed=seed if seed is not None else self.settings.seed,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info(
            "Session %s initialized: %s players, %s teams, %s exposure bounds, recommended=%s",
            session.session_id,
            len(pool),
            len(pool.teams),
            session.analysis.constraint_count,
            session.analysis.recommended_strategy,
        )
        return session

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def __len__(self) -> int:
        return len(self._sessions)

    def generate(
        self,
        session_id: str,
        count: int,
        strategy: str = "recommended",
        custom_config: Optional[Mapping[str, Any]] = None,
        *,
        exposure_settings: Optional[Iterable[ExposureInput]] = None,
        contest: ContestInput = None,
        save_to_lineups: bool = True,
        deadline_seconds: Optional[float] = None,
    ) -> BuildOutput:
        """Run one generation for ``session_id``.

        Input problems raise before any work starts, leave the session's
        exposure settings, contest and formula as they were, and leave only
        the ``Initializing`` event on the progress stream. Failures during
        generation end the stream with an ``Error: <reason>`` event.
        """

        session = self.get(session_id)
        deadline = deadline_seconds if deadline_seconds is not None else self.settings.deadline_seconds
        token, seed = session.begin_generation(deadline)
        bus = session.progress
        try:
            bus.begin()
            if count < 1:
                raise InvalidInput("count must be at least 1")
            inputs = session.prepare_inputs(
                exposure_settings=_coerce_exposure(exposure_settings) if exposure_settings is not None else None,
                contest=_coerce_contest(contest) if contest is not None else None,
            )
            resolved = self.registry.resolve(
                strategy,
                contest=inputs.contest,
                constraint_count=inputs.analysis.constraint_count,
                custom_config=custom_config,
            )
            formula = resolved.formula or session.formula
            get_formula(formula)
            session.pool.check_feasible(session.rules)
        except OptimizerError:
            session.end_generation()
            raise

        session.apply_inputs(inputs)
        session.set_formula(formula)

        try:
            output = build_lineups(
                session.pool,
                rules=session.rules,
                settings=self.settings,
                strategy=resolved,
                count=count,
                bounds=session.bounds,
                contest=session.contest,
                token=token,
                seed=seed,
                formula=session.formula,
                next_lineup_id=session.next_lineup_id,
                workers=1 if session.seed_fixed else self.settings.workers,
                constraint_count=session.analysis.constraint_count,
                progress=bus.publish,
            )
        except OptimizerError as exc:
            logger.warning("Generation failed for session %s: %s", session_id, exc.message)
            bus.fail(exc.message)
            raise
        except Exception as exc:
            error = InternalError("Unexpected optimizer failure")
            logger.exception("Internal error %s in session %s", error.correlation_id, session_id)
            bus.fail(f"{error.message} ({error.correlation_id})")
            raise error from exc
        finally:
            session.end_generation()

        self.registry.record_usage(
            resolved.name,
            [lineup.nexus_score for lineup in output.lineups],
            [lineup.roi for lineup in output.lineups],
        )
        if save_to_lineups:
            self.store.save(session_id, output.lineups)
        bus.complete()
        return output

    def subscribe_progress(self, session_id: str) -> ProgressSubscription:
        return self.get(session_id).progress.subscribe()

    def cancel(self, session_id: str) -> bool:
        return self.get(session_id).cancel()

    def close(self, session_id: str) -> int:
        """Close the session and drop its stored lineups."""

        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        session.close()
        dropped = self.store.drop_session(session_id)
        logger.info("Session %s closed (%s stored lineups dropped)", session_id, dropped)
        return dropped

    def list_strategies(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        if session_id is not None:
            session = self.get(session_id)
            contest = session.contest
            complexity = session.analysis.complexity_score
        else:
            contest = ContestDescriptor()
            complexity = 0.0
        strategies = self.registry.describe(contest, complexity)
        stats = {
            "sessions": len(self._sessions),
            "stored_lineups": len(self.store),
            "total_runs": sum(item["performance"]["usage"] for item in strategies.values()),
        }
        return {"strategies": strategies, "stats": stats}

    def export(self, lineup_ids: Sequence[str], fmt: str, session_id: Optional[str] = None) -> ExportPayload:
        if session_id is not None:
            self.get(session_id)
        lineups = self.store.get_many(lineup_ids, session_id)
        return export_lineups(lineups, fmt, self.rules)


__all__ = [
    "ConstraintAnalysis",
    "Session",
    "SessionManager",
    "SessionState",
    "analyze_constraints",
    "recommend_strategy",
]
