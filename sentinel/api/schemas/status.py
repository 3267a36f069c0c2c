"""
Status schemas.
"""

from typing import Optional
from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    """Response for GET /status."""

    heartbeat_count: int = Field(..., description="Persisted heartbeat counter")
    uptime_ms: int = Field(..., description="Milliseconds since startup")
    scheduler_running: Optional[bool] = Field(default=None, description="Tick loop active (daemon only)")
    in_flight: Optional[int] = Field(default=None, description="Executions currently running")
    max_concurrency: Optional[int] = Field(default=None, description="Concurrency permits")
