"""
API endpoint tests
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api.dependencies import RunTracker, get_harvest_runner, get_run_tracker, get_scheduler
from api.main import app, serve
from core.config import settings
from core.exceptions import ConfigurationError
from ingestion.scheduler import HarvestScheduler
from models.base import HarvestStatus, PipelineName
from schemas.api import RunSummary


def run_summary(status=HarvestStatus.COMPLETED, written=10):
    now = datetime.now(timezone.utc)
    return RunSummary(
        run_id="3f1c",
        pipeline=PipelineName.CATALOG,
        status=status,
        calls_made=101,
        call_budget=500,
        records_written=written,
        started_at=now,
        finished_at=now,
    )


class FakeRunner:
    """Stands in for run_harvest; records the options it was called with"""

    def __init__(self, summary=None, has_more=False, error=None):
        self.summary = summary or run_summary()
        self.has_more = has_more
        self.error = error
        self.calls = []

    async def __call__(self, options):
        self.calls.append(options)
        if self.error:
            raise self.error
        controller = SimpleNamespace(has_more=self.has_more, groups_processed=["Surging Sparks", "Stellar Crown"])
        return self.summary, controller


@pytest.fixture
def tracker():
    return RunTracker()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def client(tracker, runner):
    """Create test client with dependency overrides"""
    scheduler = HarvestScheduler(category_ids=[])
    app.dependency_overrides[get_run_tracker] = lambda: tracker
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_harvest_runner] = lambda: runner

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_root_banner(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["endpoints"]["sync"] == "/sync/tcgcsv"


def test_health_without_runs(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["scheduler_running"] is False
    assert data["last_run"] is None
    assert "store_backend" in data


def test_request_context_headers(client):
    response = client.get("/health")
    assert response.headers["X-Request-ID"]
    assert int(response.headers["X-API-Latency-ms"]) >= 0

    echoed = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert echoed.headers["X-Request-ID"] == "req-123"


def test_sync_batch_window(client, runner):
    runner.has_more = True
    response = client.post("/sync/tcgcsv", params={"category_id": 85, "batch": 2})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["category_id"] == 85
    assert data["batch"] == 2
    assert data["has_more"] is True
    assert data["next_batch"] == 3
    assert data["groups_processed"] == ["Surging Sparks", "Stellar Crown"]
    assert data["summary"]["status"] == "completed"

    options = runner.calls[0]
    assert options.pipeline == PipelineName.CATALOG
    assert options.category_id == 85
    assert options.skip_sets == 100
    assert options.sets == 50
    assert options.group_id is None


def test_sync_last_batch(client, runner):
    data = client.post("/sync/tcgcsv", params={"batch": 0}).json()
    assert data["has_more"] is False
    assert data["next_batch"] is None
    assert runner.calls[0].category_id == 3


def test_sync_single_group(client, runner):
    response = client.post("/sync/tcgcsv", params={"category_id": 3, "group_id": 23821})
    assert response.status_code == 200
    assert runner.calls[0].group_id == 23821


def test_sync_rejects_negative_batch(client, runner):
    response = client.post("/sync/tcgcsv", params={"batch": -1})
    assert response.status_code == 422
    assert runner.calls == []


def test_sync_configuration_error_is_503(client, runner):
    runner.error = ConfigurationError("SUPABASE_URL and SUPABASE_KEY are required for the postgrest store")
    response = client.post("/sync/tcgcsv")

    assert response.status_code == 503
    assert "SUPABASE_URL" in response.json()["detail"]


def test_health_reports_last_run(client, runner):
    runner.summary = run_summary(status=HarvestStatus.FAILED, written=0)
    sync = client.post("/sync/tcgcsv").json()
    assert sync["success"] is False

    data = client.get("/health").json()
    assert data["status"] == "degraded"
    assert data["last_run"]["status"] == "failed"
    assert data["last_run"]["calls_made"] == 101


def test_serve_runs_uvicorn_on_configured_address():
    with patch("uvicorn.run") as run:
        serve()

    run.assert_called_once_with(app, host=settings.API_HOST, port=settings.API_PORT)
