"""Tests for the HTTP API using FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from speaker_extractor.api import ActiveRun, create_app
from speaker_extractor.config import Settings
from speaker_extractor.extractors.firecrawl import ScrapeResponse
from speaker_extractor.jobs import CancellationToken
from speaker_extractor.models import Job, SessionRecord, SpeakerAppearance, StrategyResult
from speaker_extractor.pipeline import ExtractionRunner

START = "https://devconf.example.com/"
SPEAKERS = "https://devconf.example.com/speakers"


@pytest.fixture
def scrape_client(scrape_client_factory):
    """Builds a fake Firecrawl client that maps one speaker page."""
    def build(**kwargs):
        return scrape_client_factory(
            links=[START, SPEAKERS],
            responses={SPEAKERS: [ScrapeResponse(structured_json={"speakers": [
                {"name": "Ada Lovelace", "organization": "Analytical Engines"},
                {"name": "Grace Hopper", "organization": "Navy", "role": "keynote"},
            ]})]},
            **kwargs,
        )

    return build


@pytest.fixture
def make_client(scrape_client):
    def build(store, runner=None, settings=None):
        app = create_app(
            store=store,
            runner=runner if runner is not None else ExtractionRunner(store, scrape_client()),
            settings=settings or Settings(),
        )
        return TestClient(app), app

    return build


class TestHealthAndEvents:
    """Tests for health and event endpoints."""

    def test_healthz(self, make_client, store):
        client, _ = make_client(store)
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_create_and_list_events(self, make_client, store):
        client, _ = make_client(store)
        response = client.post("/events", json={"name": "DevConf", "url": "devconf.example.com"})
        assert response.status_code == 201
        created = response.json()
        assert created["url"] == "https://devconf.example.com/"
        assert created["latestJob"] is None

        listed = client.get("/events").json()
        assert [e["id"] for e in listed] == [created["id"]]

    @pytest.mark.parametrize("body", [{}, {"name": "DevConf"}, {"name": "  ", "url": "devconf.example.com"}])
    def test_create_event_requires_name_and_url(self, make_client, store, body):
        client, _ = make_client(store)
        response = client.post("/events", json=body)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_unknown_event(self, make_client, store):
        client, _ = make_client(store)
        assert client.get("/events/nope").status_code == 404


class TestExtractionEndpoint:
    """Tests for POST /extraction/map."""

    def test_success(self, make_client, store, event):
        client, app = make_client(store)
        response = client.post("/extraction/map", json={"eventId": event.id, "startUrl": START})

        assert response.status_code == 200
        body = response.json()
        assert body["eventId"] == event.id
        assert body["targetedSessionUrlsCount"] == 1
        assert body["uniqueSpeakersFound"] == 2
        assert app.state.active_runs == {}

        job = client.get(f"/jobs/{body['jobId']}").json()
        assert job["status"] == "complete"
        assert job["processedUrls"] == [SPEAKERS]

        detail = client.get(f"/events/{event.id}").json()
        assert detail["latestJob"]["id"] == body["jobId"]
        assert {s["name"] for s in detail["speakers"]} == {"Ada Lovelace", "Grace Hopper"}
        roles = {s["name"]: s["role"] for s in detail["sessions"][0]["speakers"]}
        assert roles["Grace Hopper"] == "keynote"

    @pytest.mark.parametrize("body", [{}, {"eventId": "x"}, {"startUrl": START}, {"eventId": " ", "startUrl": START}])
    def test_missing_input(self, make_client, store, body):
        client, _ = make_client(store)
        response = client.post("/extraction/map", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "eventId and startUrl are required."

    def test_unknown_event(self, make_client, store):
        client, _ = make_client(store)
        response = client.post("/extraction/map", json={"eventId": "nope", "startUrl": START})
        assert response.status_code == 404

    def test_mapping_failure(self, make_client, scrape_client, store, event, map_failure):
        runner = ExtractionRunner(store, scrape_client(map_error=map_failure))
        client, _ = make_client(store, runner=runner)
        response = client.post("/extraction/map", json={"eventId": event.id, "startUrl": START})

        assert response.status_code == 502
        body = response.json()
        assert "503" in body["error"]
        assert client.get(f"/jobs/{body['jobId']}").json()["status"] == "failed"

    def test_run_already_active(self, make_client, store, event):
        client, app = make_client(store)
        app.state.active_runs[event.id] = ActiveRun(event_id=event.id, token=CancellationToken(), job_id="j-1")
        response = client.post("/extraction/map", json={"eventId": event.id, "startUrl": START})
        assert response.status_code == 409
        assert response.json()["jobId"] == "j-1"

    def test_cancelled_run(self, make_client, scrape_client, store, event):
        class CancellingStrategy:
            name = "cancelling"

            def score(self, classification):
                return 10

            async def run(self, classification, token, log):
                token.cancel()
                return StrategyResult(
                    sessions=[SessionRecord(title="Speaker Directory", url=classification.url)],
                    appearances=[SpeakerAppearance(name="Ada", session_url=classification.url)],
                    stop_reason="single_pass",
                )

        runner = ExtractionRunner(store, scrape_client(), strategies=[CancellingStrategy()])
        client, _ = make_client(store, runner=runner)
        response = client.post("/extraction/map", json={"eventId": event.id, "startUrl": START})

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "cancelled"
        job = client.get(f"/jobs/{body['jobId']}").json()
        assert job["status"] == "failed"
        assert job["error"] == "cancelled"

    def test_missing_api_key(self, store, event):
        app = create_app(store=store, settings=Settings(firecrawl_api_key=None))
        response = TestClient(app).post("/extraction/map", json={"eventId": event.id, "startUrl": START})
        assert response.status_code == 500
        assert "FIRECRAWL_API_KEY" in response.json()["error"]


class TestJobEndpoints:
    """Tests for job polling and cancellation."""

    def test_unknown_job(self, make_client, store):
        client, _ = make_client(store)
        assert client.get("/jobs/nope").status_code == 404
        assert client.post("/extraction/jobs/nope/cancel").status_code == 404

    def test_cancel_running_job(self, make_client, store, event):
        client, app = make_client(store)
        job = store.create_job(Job(event_id=event.id))
        token = CancellationToken()
        app.state.active_runs[event.id] = ActiveRun(event_id=event.id, token=token, job_id=job.id)

        response = client.post(f"/extraction/jobs/{job.id}/cancel")
        assert response.status_code == 200
        assert response.json() == {"jobId": job.id, "cancelRequested": True}
        assert token.cancelled

    def test_cancel_finished_job(self, make_client, store, event):
        client, _ = make_client(store)
        job = store.create_job(Job(event_id=event.id))
        response = client.post(f"/extraction/jobs/{job.id}/cancel")
        assert response.status_code == 409
