"""REST API for the nexusdfs optimizer."""

from __future__ import annotations

from dataclasses import asdict
import json
import logging
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response, StreamingResponse

from nexusdfs import __version__
from nexusdfs.api.schemas import (
    CancelResponse,
    CloseResponse,
    ExportRequest,
    GenerateRequest,
    GenerateResponse,
    InitializeRequest,
    InitializeResponse,
    LineupPlayerResponse,
    LineupResponse,
    PlayerUsageResponse,
    StrategiesResponse,
)
from nexusdfs.errors import (
    Cancelled,
    ExportError,
    ExposureInfeasible,
    Infeasible,
    InternalError,
    InvalidInput,
    OptimizerError,
    SessionBusy,
    SessionNotFound,
    UnknownStrategy,
)
from nexusdfs.models.lineup import LineupResult
from nexusdfs.optimizer.scoring import DEFAULT_FORMULA, FORMULA_DESCRIPTIONS
from nexusdfs.optimizer.service import BuildOutput
from nexusdfs.optimizer.strategies import (
    ALGORITHMS,
    AnnealingConfig,
    GeneticConfig,
    MonteCarloConfig,
)
from nexusdfs.persistence import LineupNotFound
from nexusdfs.pool.export import EXPORT_FORMATS
from nexusdfs.session import SessionManager
from nexusdfs.session.progress import ProgressEvent

logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

PROGRESS_POLL_SECONDS = 0.5

_STATUS_CODES: list[tuple[type, int]] = [
    (SessionNotFound, 404),
    (SessionBusy, 409),
    (Cancelled, 409),
    (ExposureInfeasible, 422),
    (Infeasible, 422),
    (InvalidInput, 400),
    (UnknownStrategy, 400),
    (ExportError, 400),
    (InternalError, 500),
]

_ALGORITHM_DESCRIPTIONS = {
    "monte_carlo": (
        "Monte Carlo",
        "Stack-seeded weighted random sampling with ownership leverage",
        MonteCarloConfig,
    ),
    "genetic": (
        "Genetic Algorithm",
        "Tournament selection, uniform crossover and per-slot mutation over Monte Carlo seeds",
        GeneticConfig,
    ),
    "simulated_annealing": (
        "Simulated Annealing",
        "Metropolis refinement of Monte Carlo lineups with geometric cooling",
        AnnealingConfig,
    ),
}


def sse_event(payload: dict) -> bytes:
    return f"event: progress\ndata: {json.dumps(payload)}\n\n".encode("utf-8")


def _http_error(exc: OptimizerError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            break
    else:
        status_code = 500
    detail: dict[str, Any] = {"error": type(exc).__name__, "message": exc.message}
    if isinstance(exc, ExposureInfeasible):
        detail["entity"] = exc.entity
    if isinstance(exc, Cancelled):
        detail["accepted"] = exc.accepted
    if isinstance(exc, InternalError):
        detail["correlation_id"] = exc.correlation_id
    return HTTPException(status_code=status_code, detail=detail)


def _lineup_response(lineup: LineupResult) -> LineupResponse:
    return LineupResponse(
        lineup_id=lineup.lineup_id,
        captain_id=lineup.captain_id,
        salary=lineup.salary,
        projection=lineup.projection,
        nexus_score=lineup.nexus_score,
        roi=lineup.roi,
        stack_signature=lineup.stack_signature,
        stack_type=lineup.stack_type,
        avg_ownership=lineup.avg_ownership,
        total_ownership=lineup.total_ownership,
        algorithm=lineup.algorithm,
        formula=lineup.formula,
        label=lineup.label,
        players=[LineupPlayerResponse(**asdict(player)) for player in lineup.players],
    )


def _generate_response(session_id: str, output: BuildOutput) -> GenerateResponse:
    return GenerateResponse(
        session_id=session_id,
        lineups=[_lineup_response(lineup) for lineup in output.lineups],
        summary=output.summary,
        recommendations=output.recommendations,
        player_usage=[PlayerUsageResponse(**asdict(usage)) for usage in output.player_usage],
        message=output.message,
    )


def create_app(manager: SessionManager | None = None) -> FastAPI:
    app = FastAPI(title="nexusdfs optimizer", version=__version__)
    sessions = manager or SessionManager()
    app.state.sessions = sessions

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/optimizer/initialize", response_model=InitializeResponse)
    async def initialize(request: InitializeRequest) -> InitializeResponse:
        try:
            session = sessions.init(
                request.players,
                stacks=request.stacks,
                exposure_settings=request.exposure_settings,
                contest=request.contest,
                seed=request.seed,
            )
        except OptimizerError as exc:
            logger.info("Initialize rejected: %s", exc.message)
            raise _http_error(exc) from exc
        return InitializeResponse(
            session_id=session.session_id,
            recommended_strategy=session.analysis.recommended_strategy,
            players=len(session.pool),
            teams=list(session.pool.teams),
            constraints=session.analysis.as_dict(),
        )

    @app.get("/optimizer/strategies", response_model=StrategiesResponse)
    async def strategies(session_id: str | None = Query(None)) -> StrategiesResponse:
        try:
            payload = sessions.list_strategies(session_id)
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return StrategiesResponse(**payload)

    @app.get("/optimizer/algorithms")
    async def algorithms() -> dict[str, Any]:
        return {
            "algorithms": [
                {
                    "key": key,
                    "name": _ALGORITHM_DESCRIPTIONS[key][0],
                    "description": _ALGORITHM_DESCRIPTIONS[key][1],
                    "defaults": _ALGORITHM_DESCRIPTIONS[key][2]().model_dump(mode="json"),
                }
                for key in ALGORITHMS
            ],
            "formulas": FORMULA_DESCRIPTIONS,
            "default_formula": DEFAULT_FORMULA,
        }

    @app.get("/optimizer/constraints")
    async def constraints(session_id: str = Query(...)) -> dict[str, Any]:
        try:
            session = sessions.get(session_id)
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return {
            "session_id": session_id,
            "analysis": session.analysis.as_dict(),
            "bounds": [bound.label for bound in session.bounds],
            "exposure_settings": [setting.model_dump(mode="json") for setting in session.exposure_settings],
        }

    @app.get("/optimizer/progress/{session_id}")
    async def progress(session_id: str) -> StreamingResponse:
        try:
            subscription = sessions.subscribe_progress(session_id)
        except OptimizerError as exc:
            raise _http_error(exc) from exc

        async def gen() -> AsyncIterator[bytes]:
            try:
                yield b":hb\n\n"
                while True:
                    events: list[ProgressEvent] = await run_in_threadpool(
                        subscription.next_batch, PROGRESS_POLL_SECONDS
                    )
                    for event in events:
                        yield sse_event(event.to_payload())
                        if event.terminal:
                            return
                    if not events:
                        if subscription.closed:
                            return
                        yield b":hb\n\n"
            finally:
                subscription.close()

        return StreamingResponse(gen(), media_type="text/event-stream", headers=SSE_HEADERS)

    @app.post("/lineups/generate-hybrid", response_model=GenerateResponse)
    async def generate_hybrid(request: GenerateRequest) -> GenerateResponse:
        try:
            output = await run_in_threadpool(
                sessions.generate,
                request.session_id,
                request.count,
                request.strategy,
                request.custom_config,
                exposure_settings=request.exposure_settings,
                contest=request.contest,
                save_to_lineups=request.save_to_lineups,
                deadline_seconds=request.deadline_seconds,
            )
        except InternalError as exc:
            logger.error("Generation failed with correlation id %s", exc.correlation_id)
            raise _http_error(exc) from exc
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return _generate_response(request.session_id, output)

    @app.post("/lineups/export")
    async def export_lineups(request: ExportRequest) -> Response:
        if not request.lineup_ids:
            raise HTTPException(status_code=400, detail="lineup_ids must not be empty")
        if request.format.lower() not in EXPORT_FORMATS:
            raise _http_error(ExportError(f"Unsupported export format: {request.format}"))
        try:
            payload = sessions.export(request.lineup_ids, request.format, request.session_id)
        except LineupNotFound as exc:
            raise HTTPException(
                status_code=404,
                detail={"error": "LineupNotFound", "lineup_ids": exc.lineup_ids},
            ) from exc
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return Response(
            content=payload.content,
            media_type=payload.media_type,
            headers={"Content-Disposition": payload.content_disposition},
        )

    @app.post("/optimizer/cancel/{session_id}", response_model=CancelResponse)
    async def cancel(session_id: str) -> CancelResponse:
        try:
            cancelled = sessions.cancel(session_id)
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return CancelResponse(session_id=session_id, cancelled=cancelled)

    @app.delete("/optimizer/sessions/{session_id}", response_model=CloseResponse)
    async def close_session(session_id: str) -> CloseResponse:
        try:
            dropped = sessions.close(session_id)
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return CloseResponse(session_id=session_id, closed=True, dropped_lineups=dropped)

    return app


__all__ = ["create_app", "sse_event"]
