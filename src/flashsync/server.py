import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from flashsync.application.config import AppConfig, resolve_config
from flashsync.application.factory import Runtime, build_runtime
from flashsync.consts import VERSION
from flashsync.domain.errors import InvalidQualityError, InvalidReviewOutcomeError, StorageError
from flashsync.domain.models import ReviewOutcome
from flashsync.domain.ports import RemoteStore, TimerFactory

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("flashsync.server")


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    sync_state: str
    online: bool


class ConnectivityRequest(BaseModel):
    online: bool


class ReviewRequest(BaseModel):
    learner_id: str = Field(min_length=1)
    card_id: str = Field(min_length=1)
    correct: bool
    elapsed_ms: int = Field(default=0, ge=0)


class DrainReportResponse(BaseModel):
    ran: bool
    trigger: str | None = None
    applied: list[int] = []
    dead_lettered: list[int] = []
    failed_id: int | None = None
    error: str | None = None
    ok: bool = True


def _report_response(report) -> DrainReportResponse:
    if report is None:
        return DrainReportResponse(ran=False)
    return DrainReportResponse(
        ran=True,
        trigger=report.trigger,
        applied=report.applied,
        dead_lettered=report.dead_lettered,
        failed_id=report.failed_id,
        error=report.error,
        ok=report.ok,
    )


def _runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def create_app(
    config: AppConfig | None = None,
    remote: RemoteStore | None = None,
    timer_factory: TimerFactory | None = None,
) -> FastAPI:
    """
    Build the HTTP app. The runtime (database, queue, coordinator) is opened in
    the lifespan and the sync timer runs for as long as the server does.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"flashsync server v{VERSION} starting up...")
        runtime = build_runtime(config or resolve_config(), remote=remote, timer_factory=timer_factory)
        app.state.runtime = runtime
        app.state.start_time = time.time()
        runtime.coordinator.start()
        yield
        # Shutdown
        logger.info("flashsync server shutting down...")
        await runtime.close()

    app = FastAPI(
        title="flashsync Server",
        description="Review scheduling and offline-first sync.",
        version=VERSION,
        lifespan=lifespan,
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """
        Simple health check to verify server is reachable.
        """
        rt = _runtime(request)
        return HealthResponse(
            status="ok",
            version=VERSION,
            uptime_seconds=time.time() - request.app.state.start_time,
            sync_state=rt.coordinator.state.value,
            online=rt.coordinator.online,
        )

    @app.get("/version")
    async def get_version():
        return {"version": VERSION}

    @app.post("/connectivity", response_model=DrainReportResponse)
    async def connectivity(req: ConnectivityRequest, request: Request):
        """Host signal that the network went up or down."""
        report = await _runtime(request).coordinator.on_connectivity(req.online)
        return _report_response(report)

    @app.post("/sync", response_model=DrainReportResponse)
    async def trigger_sync(request: Request):
        """
        Trigger a drain pass now.
        """
        report = await _runtime(request).coordinator.sync_now()
        return _report_response(report)

    @app.post("/reviews")
    async def record_review(req: ReviewRequest, request: Request) -> dict[str, Any]:
        outcome = ReviewOutcome(card_id=req.card_id, correct=req.correct, elapsed_ms=req.elapsed_ms)
        try:
            state = await _runtime(request).reviews.record_review(req.learner_id, outcome)
        except (InvalidQualityError, InvalidReviewOutcomeError) as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        except StorageError as e:
            logger.error(f"Review not saved: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
        return {
            "card_id": state.card_id,
            "ease": state.ease,
            "interval_days": state.interval_days,
            "repetitions": state.repetitions,
            "last_quality": state.last_quality,
            "next_review_at": state.next_review_at.isoformat(),
        }

    @app.get("/queue")
    async def list_queue(request: Request):
        try:
            actions = await _runtime(request).queue.list_all()
        except StorageError as e:
            logger.error(f"Queue unavailable: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
        return [
            {
                "id": a.id,
                "kind": a.kind,
                "enqueued_at": a.enqueued_at.isoformat(),
                "attempts": a.attempts,
                "last_error": a.last_error,
            }
            for a in actions
        ]

    @app.get("/queue/dead-letters")
    async def list_dead_letters(request: Request):
        try:
            letters = await _runtime(request).queue.list_dead_letters()
        except StorageError as e:
            logger.error(f"Dead-letter store unavailable: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
        return [
            {
                "id": d.action.id,
                "kind": d.action.kind,
                "payload": d.action.payload,
                "reason": d.reason,
                "dead_lettered_at": d.dead_lettered_at.isoformat(),
            }
            for d in letters
        ]

    @app.get("/learners/{learner_id}/stats")
    async def learner_stats(learner_id: str, request: Request):
        stats_service = _runtime(request).stats
        try:
            stats = await stats_service.get_learning_stats(learner_id)
            session = await stats_service.get_session_estimate(learner_id)
        except StorageError as e:
            logger.error(f"Stats unavailable for learner={learner_id}: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
        return {"stats": asdict(stats), "session": asdict(session)}

    return app


app = create_app()
