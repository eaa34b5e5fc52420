"""API tests with FastAPI's TestClient (crawler and report generation faked)."""

import json

import pytest
from fastapi.testclient import TestClient

import crawler
import jobs
import main
import report_service
from conftest import FILLER_KO, make_page

MEDICAL_KO = "임플란트 치료 상담과 부작용 안내. " + FILLER_KO

BODY = {"url": "https://clinic.example/", "hospitalName": "서울미소치과", "keywords": "임플란트, 교정"}


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def hospital_site(monkeypatch):
    pages = [make_page(body_text=MEDICAL_KO) for _ in range(5)]
    monkeypatch.setattr(crawler, "crawl_site", lambda url, max_pages=10, session=None: pages)
    monkeypatch.setattr(
        report_service,
        "generate_report",
        lambda score, pages, hospital_name, address, keywords, locale: {
            "report": report_service.fallback_report(locale),
            "meta": {"status": "missing_key", "message": "ANTHROPIC_API_KEY is not set"},
        },
    )
    return pages


def _events(response) -> list[dict]:
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestAnalyzeStream:
    def test_streams_progress_then_result(self, client, hospital_site):
        response = client.post("/analyze", json=BODY)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        events = _events(response)
        progress = [e["value"] for e in events if e["type"] == "progress"]
        assert progress == [10, 40, 50, 70, 90]
        final = events[-1]
        assert final["type"] == "complete"
        result = final["result"]
        assert result["pagesAnalyzed"] == 5
        assert result["siteClassification"]["level"] == "yes"
        assert result["aiMeta"]["status"] == "missing_key"
        assert result["score"]["total"] == sum(result["score"]["categories"].values())

    def test_empty_crawl_reports_error_event(self, client, monkeypatch):
        monkeypatch.setattr(crawler, "crawl_site", lambda url, max_pages=10, session=None: [])
        events = _events(client.post("/analyze", json=BODY))
        assert events[0] == {"type": "progress", "value": 10, "step": "Crawling"}
        assert events[-1] == {"type": "error", "message": "No pages found"}

    def test_unexpected_failure_reports_error_event(self, client, monkeypatch):
        def _boom(url, max_pages=10, session=None):
            raise RuntimeError("")

        monkeypatch.setattr(crawler, "crawl_site", _boom)
        events = _events(client.post("/analyze", json=BODY))
        assert events[-1] == {"type": "error", "message": "Analysis failed"}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"url": ""},
            {"url": "clinic.example"},
            {"hospitalName": "   "},
            {"locale": "en"},
        ],
    )
    def test_invalid_bodies_are_rejected(self, client, overrides):
        response = client.post("/analyze", json={**BODY, **overrides})
        assert response.status_code == 422


class TestJobs:
    def test_job_runs_to_completion(self, client, hospital_site):
        response = client.post("/jobs", json={**BODY, "locale": "ja"})
        assert response.status_code == 200
        job_id = response.json()["id"]

        # background tasks finish before TestClient returns
        status = client.get("/status", params={"id": job_id})
        assert status.status_code == 200
        job = status.json()
        assert job["status"] == "completed"
        assert job["progress"] == 100
        assert job["error"] is None
        assert job["result"]["pagesAnalyzed"] == 5

    def test_failed_job_keeps_error(self, client, monkeypatch):
        monkeypatch.setattr(crawler, "crawl_site", lambda url, max_pages=10, session=None: [])
        job_id = client.post("/jobs", json=BODY).json()["id"]
        job = client.get("/status", params={"id": job_id}).json()
        assert job["status"] == "failed"
        assert job["error"] == "No pages found"
        assert job["result"] is None

    def test_status_requires_id(self, client):
        response = client.get("/status")
        assert response.status_code == 400
        assert response.json() == {"detail": "Missing ID"}

    def test_status_unknown_job(self, client):
        response = client.get("/status", params={"id": "nope"})
        assert response.status_code == 404
        assert response.json() == {"detail": "Job not found"}

    def test_pending_job_snapshot(self, client):
        job_id = jobs.create_job()
        job = client.get("/status", params={"id": job_id}).json()
        assert job["status"] == "pending"
        assert job["progress"] == 0
