import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app, mask_secrets
from core.config import Settings
from schemas.config import SourcesFile
from storage.jobs import InMemoryJobStore
from tests.test_api_adapter import BASE_URL, TOKEN_URL, JobTechServer, jobtech_ad


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        results_dir=str(tmp_path / "results"),
        snapshots_dir=str(tmp_path / "snapshots"),
        notifications_dir=str(tmp_path / "notifications"),
        jobs_path=str(tmp_path / "jobs.json"),
        timezone="UTC",
    )


@pytest.fixture
def sources():
    return SourcesFile.model_validate(
        {
            "sources": [
                {
                    "id": "jobtech",
                    "name": "JobTech",
                    "kind": "api",
                    "rate_limit_per_minute": 0,
                    "schedule": {"frequency": "hourly"},
                    "api": {
                        "base_url": BASE_URL,
                        "page_size": 10,
                        "request_delay_ms": 0,
                        "oauth": {
                            "token_url": TOKEN_URL,
                            "client_id": "client",
                            "client_secret": "hunter2",
                        },
                    },
                }
            ]
        }
    )


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def client(settings, sources, job_store):
    server = JobTechServer([jobtech_ad("1"), jobtech_ad("2")])
    app = create_app(
        settings, sources, job_store=job_store, transport=httpx.MockTransport(server)
    )
    with TestClient(app) as client:
        yield client


def test_health_lists_scheduled_sources(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "scheduled_sources": ["jobtech"]}


def test_sources_mask_secrets(client):
    resp = client.get("/sources")
    oauth = resp.json()[0]["api"]["oauth"]
    assert oauth["client_secret"] == "***"
    assert oauth["client_id"] == "client"


def test_collect_single_source_and_read_results(client, job_store):
    resp = client.post("/collections/jobtech")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert body["jobs_stored"] == 2
    assert len(job_store) == 2

    results = client.get("/collections/jobtech/results").json()
    assert len(results) == 1
    assert results[0]["jobs_collected"] == 2


def test_collect_all(client):
    body = client.post("/collections").json()
    assert [r["source_id"] for r in body["results"]] == ["jobtech"]
    assert body["errors"] == []


def test_unknown_source_is_404(client):
    assert client.post("/collections/nope").status_code == 404
    assert client.get("/collections/nope/results").status_code == 404
    assert client.put("/sources/nope/schedule", json={"cron": "0 * * * *"}).status_code == 404


def test_schedule_update(client):
    resp = client.put("/sources/jobtech/schedule", json={"cron": "*/15 * * * *"})
    assert resp.status_code == 200

    sources = client.get("/sources").json()
    assert sources[0]["schedule"]["cron"] == "*/15 * * * *"


def test_invalid_cron_is_400(client):
    resp = client.put("/sources/jobtech/schedule", json={"cron": "every day"})
    assert resp.status_code == 400


def test_mask_secrets_leaves_empty_values():
    data = {"a": [{"client_secret": None}, {"client_secret": "x"}]}
    assert mask_secrets(data) == {"a": [{"client_secret": None}, {"client_secret": "***"}]}
