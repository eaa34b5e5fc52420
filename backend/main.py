"""Clinic readiness API – FastAPI app."""

import json
import logging
import queue
import threading
from typing import Iterator

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

import config
from jobs import create_job, get_job, prune_jobs, update_job
from pipeline import AnalysisError, AnalysisRequest, run_analysis
from schemas import AnalyzeRequest, JobCreatedResponse, JobResponse

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Clinic Readiness API",
    description="AI search readiness scoring for hospital and clinic websites",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup() -> None:
    config.configure_logging()


def _to_request(body: AnalyzeRequest) -> AnalysisRequest:
    return AnalysisRequest(
        url=body.url,
        hospital_name=body.hospital_name,
        address=body.address,
        keywords=tuple(body.keywords),
        locale=body.locale,
    )


def _failure_message(exc: Exception) -> str:
    return str(exc) or "Analysis failed"


def _event_stream(request: AnalysisRequest) -> Iterator[str]:
    """Run the analysis in a worker thread and yield its events as JSON lines."""
    events: queue.Queue = queue.Queue()

    def worker() -> None:
        try:
            result = run_analysis(request, events.put)
            events.put({"type": "complete", "result": result})
        except AnalysisError as e:
            logger.warning("Analysis of %s failed: %s", request.url, e)
            events.put({"type": "error", "message": _failure_message(e)})
        except Exception as e:
            logger.exception("Stream error for %s", request.url)
            events.put({"type": "error", "message": _failure_message(e)})
        finally:
            events.put(None)

    threading.Thread(target=worker, daemon=True).start()
    while True:
        event = events.get()
        if event is None:
            break
        yield json.dumps(event, ensure_ascii=False) + "\n"


@app.post("/analyze")
def analyze(body: AnalyzeRequest) -> StreamingResponse:
    """
    Pipeline: crawl -> classify -> score -> AI report, streamed as NDJSON events.
    """
    return StreamingResponse(_event_stream(_to_request(body)), media_type="text/plain; charset=utf-8")


def _run_job(job_id: str, request: AnalysisRequest) -> None:
    update_job(job_id, status="processing")

    def on_event(event: dict) -> None:
        if event.get("type") == "progress":
            update_job(job_id, progress=int(event["value"]))

    try:
        result = run_analysis(request, on_event)
    except Exception as e:
        if isinstance(e, AnalysisError):
            logger.warning("Job %s failed: %s", job_id, e)
        else:
            logger.exception("Job %s failed", job_id)
        update_job(job_id, status="failed", error=_failure_message(e))
        return
    update_job(job_id, status="completed", progress=100, result=result)


@app.post("/jobs", response_model=JobCreatedResponse)
def start_job(body: AnalyzeRequest, background_tasks: BackgroundTasks) -> JobCreatedResponse:
    """Start an analysis in the background; poll GET /status for the result."""
    prune_jobs(config.JOB_TTL_SECONDS)
    job_id = create_job()
    background_tasks.add_task(_run_job, job_id, _to_request(body))
    return JobCreatedResponse(id=job_id)


@app.get("/status", response_model=JobResponse)
def job_status(id: str | None = None) -> JobResponse:
    """Return the current state of a background analysis job."""
    if not id:
        raise HTTPException(status_code=400, detail="Missing ID")
    job = get_job(id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse(**job)


@app.get("/health")
def health() -> dict:
    """Health check for deployment."""
    return {"status": "ok"}
