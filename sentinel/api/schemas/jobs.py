"""
Job registry schemas.

Request/response models for /jobs. A job is upserted either with a
current-format spec or with the legacy {cmd, period_ms} shape.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, Field


class JobUpsertRequest(BaseModel):
    """Create or replace a job with a current-format spec."""

    id: str = Field(..., min_length=1, description="Job identifier")
    spec: dict[str, Any] = Field(
        ...,
        description="Job spec: {period_ms, action: {type, ...}}",
        json_schema_extra={"examples": [{"period_ms": 1000, "action": {"type": "noop"}}]},
    )


class LegacyJobUpsertRequest(BaseModel):
    """Create or replace a job with the legacy {cmd, period_ms} shape."""

    id: str = Field(..., min_length=1, description="Job identifier")
    cmd: str = Field(..., description="Legacy command (only 'noop' is meaningful)")
    period_ms: int = Field(..., ge=0, le=2**64 - 1, description="Period in milliseconds")


class JobStateResponse(BaseModel):
    """Run history of a job."""

    last_run_ms: int = Field(default=0, description="Last run timestamp (ms since epoch)")
    runs: int = Field(default=0, description="Successful runs")
    failures: int = Field(default=0, description="Consecutive failures")
    backoff_ms: int = Field(default=0, description="Active backoff, 0 when none")


class JobViewResponse(BaseModel):
    """A registered job with its resolved spec and state."""

    id: str
    spec: dict[str, Any]
    state: JobStateResponse


class JobOkResponse(BaseModel):
    """Acknowledgement for mutating job operations."""

    ok: bool = True
    id: Optional[str] = None
    existed: Optional[bool] = None


JobListResponse = List[JobViewResponse]
