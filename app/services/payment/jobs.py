"""Poll job management.

Lets an operator submit a poll cycle as a background task and follow its
progress.  Jobs live in an in-memory dict, so they are per-process and
lost on restart.
"""

from __future__ import annotations

import uuid

from fastapi import BackgroundTasks

from app.core.logging import get_logger
from app.services.payment.poller import ReconciliationPoller
from app.services.payment.store import utcnow

logger = get_logger(__name__)

_jobs: dict[str, dict] = {}


def submit_poll_job(
    poller: ReconciliationPoller,
    background_tasks: BackgroundTasks,
) -> str:
    """Queue one ``run_once`` cycle and return its job id immediately."""
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {
        "job_id": job_id,
        "status": "pending",
        "submitted_at": utcnow().isoformat(),
        "finished_at": None,
        "summary": None,
        "error": None,
    }
    background_tasks.add_task(_run_job, job_id, poller)
    return job_id


def _run_job(job_id: str, poller: ReconciliationPoller) -> None:
    """Background task wrapper around one poll cycle."""
    _jobs[job_id]["status"] = "running"
    try:
        summary = poller.run_once()
        _jobs[job_id]["status"] = "completed"
        _jobs[job_id]["summary"] = summary.to_dict()
    except Exception as e:
        logger.error("Poll job %s failed: %s", job_id, e)
        _jobs[job_id]["status"] = "failed"
        _jobs[job_id]["error"] = str(e)
    finally:
        _jobs[job_id]["finished_at"] = utcnow().isoformat()


def get_job_status(job_id: str) -> dict | None:
    """Look up a job by ID.  Returns None if not found."""
    return _jobs.get(job_id)


def list_jobs() -> list[dict]:
    """All tracked jobs, newest first."""
    return list(reversed(_jobs.values()))
