"""Reconciliation poll endpoints.

Run the status poller once (synchronously or as a background job) and
track submitted jobs.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from app.api.deps import get_poller
from app.core.logging import get_logger
from app.services.payment import jobs
from app.services.payment.poller import ReconciliationPoller

logger = get_logger(__name__)

router = APIRouter()


@router.post("/poll")
def run_poll(
    poller: ReconciliationPoller = Depends(get_poller),
) -> dict:
    """Poll every stale pending transaction now and return the counters."""
    logger.info("Manual poll cycle requested")
    summary = poller.run_once()
    return summary.to_dict()


@router.post("/poll-async")
def run_poll_async(
    background_tasks: BackgroundTasks,
    poller: ReconciliationPoller = Depends(get_poller),
):
    """Submit a poll cycle as a background job.

    Returns immediately with a job_id that can be polled via GET /jobs/{id}.
    """
    job_id = jobs.submit_poll_job(poller, background_tasks)
    return {
        "job_id": job_id,
        "status": "pending",
        "message": "Poll job submitted",
    }


@router.get("/jobs")
def list_poll_jobs():
    """List all tracked poll jobs."""
    return jobs.list_jobs()


@router.get("/jobs/{job_id}")
def get_poll_job(job_id: str):
    """Check the status of a background poll job."""
    job = jobs.get_job_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
