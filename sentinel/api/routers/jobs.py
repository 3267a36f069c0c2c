"""
Jobs router.

CRUD over the job registry, following the same rules as the scheduler:
- upsert appends the id if new, replaces the spec and resets state
- list omits jobs whose spec does not resolve
- deleting an unknown id is a no-op
"""

import logging
from typing import List, Union

from fastapi import APIRouter, HTTPException

from sentinel.scheduler import registry
from sentinel.scheduler.entities import JobSpec, JobView
from sentinel.scheduler.errors import DecodeError, InvalidJobError, StoreError

from ..schemas.jobs import (
    JobOkResponse,
    JobUpsertRequest,
    JobViewResponse,
    LegacyJobUpsertRequest,
)
from .._state import get_store


logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(view: JobView) -> JobViewResponse:
    return JobViewResponse(**view.to_dict())


@router.get("", response_model=List[JobViewResponse])
async def list_jobs():
    """List registered jobs with their resolved spec and state."""
    try:
        views = registry.list_jobs(get_store())
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to list jobs: {e}")
    return [_to_response(v) for v in views]


@router.get("/{job_id}", response_model=JobViewResponse)
async def get_job(job_id: str):
    """Get one job."""
    try:
        view = registry.get_job(get_store(), job_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to read job: {e}")
    if view is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _to_response(view)


@router.post("", response_model=JobOkResponse)
async def upsert_job(request: Union[JobUpsertRequest, LegacyJobUpsertRequest]):
    """
    Create or replace a job.

    Accepts {"id", "spec"} or the legacy {"id", "cmd", "period_ms"}.
    Replacing a job resets its state.
    """
    store = get_store()

    try:
        if isinstance(request, JobUpsertRequest):
            spec = JobSpec.from_dict(request.spec)
            registry.upsert_job(store, request.id, spec)
        else:
            registry.upsert_legacy_job(store, request.id, request.cmd, request.period_ms)
    except (DecodeError, InvalidJobError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to upsert job: {e}")

    return JobOkResponse(ok=True, id=request.id)


@router.delete("/{job_id}", response_model=JobOkResponse)
async def delete_job(job_id: str):
    """Delete a job and its spec/state. Unknown ids are a no-op."""
    try:
        existed = registry.delete_job(get_store(), job_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete job: {e}")
    return JobOkResponse(ok=True, id=job_id, existed=existed)
