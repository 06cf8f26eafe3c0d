"""
FastAPI application for Race Edge
Ledger-logging endpoint plus prediction, recovery and reset operations
"""

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional
import logging

from race_edge import __version__
from race_edge.core.records import EventRecord
from race_edge.exceptions import (
    StorageCorruptionError,
    StorageQuotaError,
    ValidationError,
)
from race_edge.models import get_db, init_db
from race_edge.services.bucket_stats import (
    best_performing_bucket,
    trust_weights,
    worst_performing_bucket,
)
from race_edge.services.performance import (
    calculate_confidence_stats,
    calculate_summary,
    recent_accuracy,
)
from race_edge.services.race_tracker import RaceTracker
from race_edge.services.remote_mirror import get_remote_client
from race_edge.services.storage import SqlKeyValueStore
from race_edge.schemas import (
    BettingHistoryResponse,
    EventCreate,
    EventResponse,
    PredictRequest,
    PredictionResponse,
    RebuildResponse,
    RoiResponse,
    SessionResetResponse,
    UndoResponse,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

_tracker: Optional[RaceTracker] = None


def get_tracker() -> RaceTracker:
    """Process-wide tracker over the SQL store (overridden in tests)."""
    global _tracker
    if _tracker is None:
        _tracker = RaceTracker(SqlKeyValueStore(), remote=get_remote_client())
    return _tracker


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Race Edge %s", __version__)
    init_db()
    yield
    logger.info("Shutting down Race Edge")


app = FastAPI(
    title="Race Edge",
    description="Adaptive odds-bucket model for six-contender wagering events",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Race Edge",
        "version": __version__,
        "status": "operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected"}
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"
    return health


# ============================================================================
# PREDICTIONS
# ============================================================================

@app.post("/api/predictions", response_model=PredictionResponse)
async def create_prediction(
    payload: PredictRequest,
    tracker: RaceTracker = Depends(get_tracker),
):
    """Predict, recommend and size for six odds.  Nothing is stored."""
    proposal = tracker.propose(payload.odds, payload.strategy_mode)
    prediction = proposal.prediction
    rec = proposal.recommendation
    breakdown = None
    if rec.index is not None:
        breakdown = prediction.signal_breakdown(rec.index).to_dict()

    return PredictionResponse(
        odds=list(prediction.odds),
        buckets=list(prediction.buckets),
        implied_probabilities=list(prediction.implied_probabilities),
        adjusted_probabilities=list(prediction.adjusted_probabilities),
        value_edges=list(prediction.value_edges),
        strategy_mode=proposal.mode.value,
        skip=rec.skip,
        recommended_contender=rec.index,
        reason=rec.reason,
        confidence_level=proposal.confidence.value,
        recommended_stake=proposal.recommended_stake,
        signal_breakdown=breakdown,
    )


# ============================================================================
# LEDGER
# ============================================================================

@app.post("/api/events", response_model=EventResponse)
async def log_event(
    payload: EventCreate,
    tracker: RaceTracker = Depends(get_tracker),
):
    """Predict against current state, settle against the result and append."""
    proposal = tracker.propose(payload.odds, payload.strategy_mode)
    record = tracker.resolve(
        proposal,
        payload.actual_first,
        payload.actual_second,
        payload.actual_third,
        stake=payload.stake,
    )
    stored = tracker.log_event(record)
    return stored.to_dict()


@app.get("/api/ledger", response_model=List[EventResponse])
async def get_history(tracker: RaceTracker = Depends(get_tracker)):
    """Every ledger record, oldest first."""
    return [r.to_dict() for r in tracker.ledger.all()]


@app.post("/api/ledger", response_model=EventResponse)
async def append_record(
    payload: EventResponse,
    tracker: RaceTracker = Depends(get_tracker),
):
    """Append an already-settled record (mirror target for another instance)."""
    try:
        record = EventRecord.from_dict(payload.model_dump())
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Malformed event record: {exc}") from exc
    stored = tracker.log_event(record)
    return stored.to_dict()


@app.delete("/api/events/last", response_model=UndoResponse)
async def undo_last_event(tracker: RaceTracker = Depends(get_tracker)):
    """Remove the most recent event (operator mis-entry correction)."""
    if not tracker.undo_last():
        raise HTTPException(status_code=409, detail="Ledger is empty; nothing to undo")
    return UndoResponse(undone=True, ledger_size=len(tracker.ledger))


# ============================================================================
# DERIVED STATE
# ============================================================================

@app.get("/api/history", response_model=BettingHistoryResponse)
async def get_betting_history(tracker: RaceTracker = Depends(get_tracker)):
    return tracker.betting_history().to_dict()


@app.get("/api/history/session", response_model=BettingHistoryResponse)
async def get_session_history(tracker: RaceTracker = Depends(get_tracker)):
    """Totals since the last soft reset."""
    return tracker.session_history().to_dict()


@app.get("/api/roi", response_model=RoiResponse)
async def get_roi(tracker: RaceTracker = Depends(get_tracker)):
    history = tracker.betting_history()
    return RoiResponse(roi=history.cumulative_roi, total_races=history.total_races)


@app.get("/api/trust-weights")
async def get_trust_weights(tracker: RaceTracker = Depends(get_tracker)) -> Dict[str, float]:
    """Realised win rate / average implied probability per bucket."""
    return trust_weights(tracker.bucket_stats())


@app.get("/api/buckets")
async def get_buckets(tracker: RaceTracker = Depends(get_tracker)):
    table = tracker.bucket_stats()
    return {
        "buckets": table.to_dict(),
        "best_bucket": best_performing_bucket(table),
        "worst_bucket": worst_performing_bucket(table),
    }


@app.get("/api/model-state")
async def get_model_state(tracker: RaceTracker = Depends(get_tracker)):
    return tracker.model_state().to_dict()


@app.get("/api/summary")
async def get_summary(tracker: RaceTracker = Depends(get_tracker)):
    """Overall history, rolling windows, confidence segments and recent accuracy."""
    records = tracker.ledger.all()
    summary = calculate_summary(records)
    summary["confidence_stats"] = calculate_confidence_stats(records)
    summary["recent_accuracy"] = round(recent_accuracy(records), 4)
    return summary


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/rebuild", response_model=RebuildResponse)
async def rebuild_all(tracker: RaceTracker = Depends(get_tracker)):
    """Recompute every derived structure from the ledger."""
    derived = tracker.rebuild_all()
    return RebuildResponse(
        message="Rebuild complete",
        events=derived.events,
        cumulative_roi=derived.betting_history.cumulative_roi,
    )


@app.post("/admin/reset/session", response_model=SessionResetResponse)
async def reset_session(tracker: RaceTracker = Depends(get_tracker)):
    """Start a new betting session; learning data is kept."""
    start = tracker.soft_reset()
    return SessionResetResponse(message="New session started", start_index=start)


@app.post("/admin/reset/full")
async def reset_everything(tracker: RaceTracker = Depends(get_tracker)):
    """Delete the ledger and every derived structure."""
    tracker.full_reset()
    return {"message": "All data deleted"}


@app.get("/api/export")
async def export_all(tracker: RaceTracker = Depends(get_tracker)):
    return tracker.export()


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc: ValidationError):
    logger.info("Rejected request: %s", exc)
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "field": exc.field},
    )


@app.exception_handler(StorageQuotaError)
async def quota_error_handler(request, exc: StorageQuotaError):
    logger.error("Storage full writing %s: %s", exc.key, exc)
    return JSONResponse(
        status_code=507,
        content={"detail": str(exc), "key": exc.key},
    )


@app.exception_handler(StorageCorruptionError)
async def corruption_error_handler(request, exc: StorageCorruptionError):
    logger.critical("Unrecoverable storage corruption in %s", exc.key)
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "key": exc.key},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
