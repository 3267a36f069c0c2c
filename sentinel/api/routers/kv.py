"""
Raw key router.

GET/PUT/DELETE on arbitrary keys with the raw|utf8|string|u32|u64 decode
vocabulary shared with kv_put actions.
"""

from fastapi import APIRouter, HTTPException, Query

from sentinel.scheduler import registry
from sentinel.scheduler.entities import DecodeMode
from sentinel.scheduler.errors import DecodeError, ExecutionError, StoreError

from ..schemas.kv import KvDeleteResponse, KvGetResponse, KvPutRequest
from .._state import get_store


router = APIRouter()


@router.get("/{key:path}", response_model=KvGetResponse)
async def kv_get(key: str, decode: str = Query(default=DecodeMode.RAW.value)):
    """Read a key. 404 when absent, 400 when it cannot be decoded as requested."""
    try:
        value = registry.kv_get(get_store(), key, decode)
    except (DecodeError, ExecutionError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if value is None:
        raise HTTPException(status_code=404, detail="nil")
    return KvGetResponse(key=key, value=value)


@router.put("/{key:path}", status_code=201)
async def kv_put(key: str, body: KvPutRequest):
    """Write a key. 400 on type mismatch, out-of-range value or unknown decode."""
    try:
        registry.kv_put(get_store(), key, body.decode, body.value)
    except (ExecutionError, DecodeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"ok": True}


@router.delete("/{key:path}", response_model=KvDeleteResponse)
async def kv_delete(key: str):
    """Delete a key."""
    try:
        existed = registry.kv_delete(get_store(), key)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return KvDeleteResponse(deleted=existed)
