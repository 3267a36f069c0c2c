"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .jobs import (
    JobUpsertRequest,
    LegacyJobUpsertRequest,
    JobStateResponse,
    JobViewResponse,
    JobOkResponse,
)
from .kv import KvPutRequest, KvGetResponse, KvDeleteResponse
from .status import StatusResponse

__all__ = [
    "JobUpsertRequest",
    "LegacyJobUpsertRequest",
    "JobStateResponse",
    "JobViewResponse",
    "JobOkResponse",
    "KvPutRequest",
    "KvGetResponse",
    "KvDeleteResponse",
    "StatusResponse",
]
