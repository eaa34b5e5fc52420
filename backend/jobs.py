"""In-memory analysis job store.

Jobs live for the lifetime of the process only.

Job fields:
- id (12 hex chars)
- status (pending | processing | completed | failed)
- progress (0-100)
- result (set on completion)
- error (set on failure)
- createdAt (epoch milliseconds)
"""

import copy
import threading
import time
import uuid

JOB_STATUSES = ("pending", "processing", "completed", "failed")
FINISHED_STATUSES = ("completed", "failed")

_lock = threading.Lock()
_jobs: dict[str, dict] = {}


def create_job() -> str:
    """Register a new pending job and return its id."""
    job_id = uuid.uuid4().hex[:12]
    with _lock:
        _jobs[job_id] = {
            "id": job_id,
            "status": "pending",
            "progress": 0,
            "createdAt": int(time.time() * 1000),
        }
    return job_id


def update_job(job_id: str, **updates: object) -> None:
    """Merge `updates` into a job. Unknown ids are ignored."""
    status = updates.get("status")
    if status is not None and status not in JOB_STATUSES:
        raise ValueError(f"Unknown job status: {status}")
    with _lock:
        job = _jobs.get(job_id)
        if job is not None:
            job.update(updates)


def get_job(job_id: str) -> dict | None:
    """Return a snapshot of the job, or None."""
    with _lock:
        job = _jobs.get(job_id)
        return copy.deepcopy(job) if job is not None else None


def prune_jobs(max_age_seconds: float) -> int:
    """Drop finished jobs older than `max_age_seconds`. Returns the count removed."""
    cutoff = int((time.time() - max_age_seconds) * 1000)
    with _lock:
        stale = [
            job_id
            for job_id, job in _jobs.items()
            if job["status"] in FINISHED_STATUSES and job["createdAt"] < cutoff
        ]
        for job_id in stale:
            del _jobs[job_id]
    return len(stale)


def clear_jobs() -> None:
    with _lock:
        _jobs.clear()
