"""HTTP API: trigger extractions, cancel them, poll jobs, manage events.

Run with ``speaker-extractor serve`` (uvicorn). The extraction call is
long-running and answers only once the run is over; progress is observed by
polling ``GET /jobs/{job_id}`` from another request.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from speaker_extractor.config import Settings, get_settings
from speaker_extractor.errors import (
    EventNotFound,
    ExtractionCancelled,
    ExtractionSetupError,
    MappingError,
)
from speaker_extractor.extractors.browser import make_playwright_factory
from speaker_extractor.extractors.firecrawl import FirecrawlClient
from speaker_extractor.extractors.urls import normalize_website_url
from speaker_extractor.jobs import CANCELLED_ERROR, CancellationToken
from speaker_extractor.models import Event, Job
from speaker_extractor.pipeline import ExtractionRunner
from speaker_extractor.storage import JsonStore, PersistenceGateway

logger = logging.getLogger(__name__)


class ExtractionRequest(BaseModel):
    eventId: Optional[str] = None
    startUrl: Optional[str] = None


class EventCreateRequest(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None


@dataclass
class ActiveRun:
    event_id: str
    token: CancellationToken
    job_id: Optional[str] = None


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def job_view(job: Optional[Job]) -> Optional[dict[str, Any]]:
    if job is None:
        return None
    counters = job.counters
    return {
        "id": job.id,
        "eventId": job.event_id,
        "status": job.status.value,
        "counters": {
            "totalUrlsMapped": counters.total_urls_mapped,
            "urlsDiscovered": counters.urls_discovered,
            "pagesProcessed": counters.pages_processed,
            "sessionsFound": counters.sessions_found,
            "speakerAppearancesFound": counters.speaker_appearances_found,
            "uniqueSpeakersFound": counters.unique_speakers_found,
        },
        "logLines": list(job.log_lines),
        "mappedUrls": list(job.mapped_urls),
        "filteredUrls": list(job.filtered_urls),
        "processedUrls": list(job.processed_urls),
        "error": job.error,
        "createdAt": job.created_at,
        "updatedAt": job.updated_at,
    }


def event_view(store: PersistenceGateway, event: Event, detail: bool = False) -> dict[str, Any]:
    """Event with its latest job; ``detail`` adds sessions and speakers."""
    view: dict[str, Any] = {
        "id": event.id,
        "name": event.name,
        "url": event.start_url,
        "domain": event.domain,
        "createdAt": event.created_at,
        "latestJob": job_view(store.latest_job_for_event(event.id)),
    }
    if not detail:
        return view

    speakers = store.list_speakers(event.id)
    speaker_rows = {}
    for speaker in speakers:
        org = store.get_organization(speaker.organization_id) if speaker.organization_id else None
        speaker_rows[speaker.id] = {
            "id": speaker.id,
            "name": speaker.canonical_name,
            "organization": org.name if org else None,
            "title": speaker.title,
            "profileUrl": speaker.profile_url,
        }

    sessions = store.list_sessions(event.id)
    links = store.list_session_speaker_links([s.id for s in sessions])
    by_session: dict[str, list[dict[str, Any]]] = {}
    for link in links:
        row = speaker_rows.get(link.speaker_id)
        if row:
            by_session.setdefault(link.session_id, []).append({**row, "role": link.role})

    view["sessions"] = [
        {"id": s.id, "title": s.title, "url": s.url, "speakers": by_session.get(s.id, [])}
        for s in sessions
    ]
    view["speakers"] = list(speaker_rows.values())
    return view


def default_runner_factory(store: PersistenceGateway, settings: Settings) -> ExtractionRunner:
    """Firecrawl client from settings, plus the browser probe when enabled."""
    client = FirecrawlClient(settings.require_firecrawl_key(), settings.firecrawl_base_url)
    browser_factory = (
        make_playwright_factory(headless=settings.headless)
        if settings.network_probe_enabled
        else None
    )
    return ExtractionRunner(
        store,
        client,
        browser_factory=browser_factory,
        max_pages=settings.max_pages,
    )


def create_app(
    store: Optional[PersistenceGateway] = None,
    runner: Optional[ExtractionRunner] = None,
    settings: Optional[Settings] = None,
    runner_factory: Callable[[PersistenceGateway, Settings], ExtractionRunner] = default_runner_factory,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            active_runner = app.state.runner
            if active_runner is not None and hasattr(active_runner.client, "aclose"):
                await active_runner.client.aclose()

    app = FastAPI(title="Speaker Extractor", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store if store is not None else JsonStore(settings.store_dir)
    app.state.runner = runner
    # event_id -> run in flight; one run per event at a time
    app.state.active_runs = {}

    def get_runner() -> ExtractionRunner:
        if app.state.runner is None:
            app.state.runner = runner_factory(app.state.store, app.state.settings)
        return app.state.runner

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        started_at = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started_at) * 1000.0
        logger.info(
            "http request method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/extraction/map")
    async def run_extraction(payload: ExtractionRequest):
        event_id = (payload.eventId or "").strip()
        start_url = (payload.startUrl or "").strip()
        if not event_id or not start_url:
            return error_response(400, "eventId and startUrl are required.")

        active_runs: dict[str, ActiveRun] = app.state.active_runs
        if event_id in active_runs:
            return error_response(
                409,
                "An extraction is already running for this event.",
                jobId=active_runs[event_id].job_id,
            )

        try:
            active_runner = get_runner()
        except ValueError as e:
            return error_response(500, str(e))

        active = ActiveRun(event_id=event_id, token=CancellationToken())
        active_runs[event_id] = active

        def remember_job(job_id: str) -> None:
            active.job_id = job_id

        try:
            summary = await active_runner.run(event_id, start_url, active.token, on_job=remember_job)
        except EventNotFound as e:
            return error_response(404, str(e))
        except ExtractionSetupError as e:
            return error_response(400, str(e))
        except ExtractionCancelled:
            return error_response(409, CANCELLED_ERROR, jobId=active.job_id)
        except MappingError as e:
            return error_response(502, str(e), jobId=active.job_id)
        except Exception as e:
            logger.exception("extraction failed event_id=%s", event_id)
            return error_response(500, str(e) or "Unknown extraction error.", jobId=active.job_id)
        finally:
            active_runs.pop(event_id, None)

        return summary.model_dump(by_alias=True)

    @app.post("/extraction/jobs/{job_id}/cancel")
    async def cancel_extraction(job_id: str):
        job = app.state.store.get_job(job_id)
        if job is None:
            return error_response(404, "job not found")

        for active in app.state.active_runs.values():
            if active.job_id == job_id:
                active.token.cancel("cancel requested via API")
                return {"jobId": job_id, "cancelRequested": True}

        return error_response(409, "job is not running", status=job.status.value)

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: str):
        job = app.state.store.get_job(job_id)
        if job is None:
            return error_response(404, "job not found")
        return job_view(job)

    @app.post("/events", status_code=201)
    async def create_event(payload: EventCreateRequest):
        name = (payload.name or "").strip()
        url = normalize_website_url(payload.url)
        if not name or not url:
            return error_response(400, "name and a valid url are required.")
        event = app.state.store.create_event(name, url)
        return event_view(app.state.store, event)

    @app.get("/events")
    async def list_events():
        store = app.state.store
        return [event_view(store, event) for event in store.list_events()]

    @app.get("/events/{event_id}")
    async def get_event(event_id: str):
        store = app.state.store
        event = store.get_event(event_id)
        if event is None:
            return error_response(404, "event not found")
        return event_view(store, event, detail=True)

    return app
