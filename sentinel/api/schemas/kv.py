"""
Raw key schemas.

Decode vocabulary: raw | utf8 | string | u32 | u64.
"""

from typing import Any
from pydantic import BaseModel, Field


class KvPutRequest(BaseModel):
    """Body for PUT /kv/{key}."""

    decode: str = Field(..., description="Decode mode: raw | utf8 | string | u32 | u64")
    value: Any = Field(default=None, description="Value, typed by decode")


class KvGetResponse(BaseModel):
    key: str
    value: Any


class KvDeleteResponse(BaseModel):
    deleted: bool
