"""Tests for the FastAPI layer (main.py) using TestClient."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from race_edge.main import app, get_tracker
from race_edge.models import get_db
from race_edge.services.race_tracker import RaceTracker
from race_edge.services.storage import MemoryKeyValueStore

FIELD = [2, 3, 4, 5, 8, 15]


def _event(first=0, second=1, third=2, mode="safe", **extra):
    return {
        "odds": FIELD,
        "strategy_mode": mode,
        "actual_first": first,
        "actual_second": second,
        "actual_third": third,
        **extra,
    }


@pytest.fixture
def client(tracker):
    app.dependency_overrides[get_tracker] = lambda: tracker
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------

def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "operational"


def test_health_with_database(client):
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    TestSession = sessionmaker(bind=engine)

    def _db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _db
    response = client.get("/health")
    assert response.json() == {"status": "healthy", "database": "connected"}


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

def test_prediction_on_empty_ledger(client):
    response = client.post("/api/predictions", json={"odds": FIELD, "strategy_mode": "value"})
    assert response.status_code == 200
    body = response.json()
    assert body["adjusted_probabilities"] == body["implied_probabilities"]
    assert sum(body["adjusted_probabilities"]) == pytest.approx(1.0)
    assert body["confidence_level"] == "low"
    assert body["skip"] is True
    assert body["recommended_stake"] == 0
    assert body["buckets"] == ["1-2", "3-5", "3-5", "3-5", "6-10", "11-30"]


def test_safe_prediction_includes_breakdown(client):
    body = client.post("/api/predictions", json={"odds": FIELD, "strategy_mode": "safe"}).json()
    assert body["recommended_contender"] == 0
    assert body["signal_breakdown"]["contender_index"] == 0


@pytest.mark.parametrize("payload", [
    {"odds": FIELD[:5]},
    {"odds": [2, 3, 4, 5, 8, 0]},
    {"odds": FIELD, "strategy_mode": "reckless"},
])
def test_prediction_validation(client, payload):
    assert client.post("/api/predictions", json=payload).status_code == 422


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

def test_log_event_and_read_back(client):
    response = client.post("/api/events", json=_event(stake=1000))
    assert response.status_code == 200
    stored = response.json()
    assert stored["profit_loss"] == pytest.approx(2000.0)
    assert stored["created_at"] is not None

    ledger = client.get("/api/ledger").json()
    assert len(ledger) == 1
    history = client.get("/api/history").json()
    assert history["total_races"] == 1
    assert history["total_profit"] == pytest.approx(2000.0)
    assert client.get("/api/roi").json()["roi"] == pytest.approx(200.0)


def test_log_event_rejects_duplicate_positions(client):
    response = client.post("/api/events", json=_event(first=0, second=0, third=2))
    assert response.status_code == 422
    assert client.get("/api/ledger").json() == []


def test_log_event_rejects_stake_on_skip(client):
    response = client.post("/api/events", json=_event(mode="value", stake=1000))
    assert response.status_code == 422
    assert response.json()["field"] == "stake"


def test_append_precomputed_record(client, make_record):
    record = make_record(created_at="2026-02-01T10:00:00+00:00")
    response = client.post("/api/ledger", json=record.to_dict())
    assert response.status_code == 200
    assert response.json()["created_at"] == "2026-02-01T10:00:00+00:00"
    assert len(client.get("/api/ledger").json()) == 1


def test_undo_empty_ledger_conflict(client):
    assert client.delete("/api/events/last").status_code == 409


def test_undo_last(client):
    client.post("/api/events", json=_event())
    response = client.delete("/api/events/last")
    assert response.status_code == 200
    assert response.json() == {"undone": True, "ledger_size": 0}


# ---------------------------------------------------------------------------
# Derived state
# ---------------------------------------------------------------------------

def test_trust_weights_and_buckets(client):
    weights = client.get("/api/trust-weights").json()
    assert set(weights) == {"1-2", "3-5", "6-10", "11-30"}
    buckets = client.get("/api/buckets").json()
    assert buckets["best_bucket"] == "N/A"


def test_model_state_and_summary(client):
    client.post("/api/events", json=_event(stake=1000))
    state = client.get("/api/model-state").json()
    assert state["total_events_processed"] == 1
    summary = client.get("/api/summary").json()
    assert summary["overall"]["total_races"] == 1
    assert summary["recent_accuracy"] == 100.0
    assert summary["confidence_stats"]["low"]["total_races"] == 1


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

def test_rebuild_endpoint(client):
    client.post("/api/events", json=_event(stake=1000))
    response = client.post("/admin/rebuild")
    assert response.status_code == 200
    assert response.json()["events"] == 1


def test_session_and_full_reset(client):
    client.post("/api/events", json=_event())
    assert client.post("/admin/reset/session").json()["start_index"] == 1
    assert client.get("/api/history/session").json()["total_races"] == 0

    assert client.post("/admin/reset/full").status_code == 200
    assert client.get("/api/ledger").json() == []


def test_export(client):
    client.post("/api/events", json=_event())
    exported = client.get("/api/export").json()
    assert len(exported["ledger"]) == 1
    assert exported["session"] == {"start_index": 0}


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

def test_quota_error_maps_to_507():
    tracker = RaceTracker(MemoryKeyValueStore(quota_bytes=50))
    app.dependency_overrides[get_tracker] = lambda: tracker
    try:
        response = TestClient(app).post("/api/events", json=_event())
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 507


def test_corrupted_ledger_maps_to_500(client, store):
    store.set("ledger", "{broken")
    response = client.get("/api/ledger")
    assert response.status_code == 500
    assert response.json()["key"] == "ledger"
