"""
FastAPI application entry point.

Local-only HTTP front-end mirroring the CLI operations over the same
store the scheduler uses.

Standalone:
    uvicorn sentinel.api.main:app --host 127.0.0.1 --port 8787

Inside the daemon (`sentinel run --http`) the CLI registers the shared
store and service first and serves the app from a background thread.
"""

import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI

from sentinel import __version__
from sentinel.infra.config import SentinelConfig
from sentinel.scheduler.errors import DecodeError, StoreError
from sentinel.scheduler.persistence import HEARTBEAT_KEY, U64, open_default

from ._state import get_service, get_store, init_store, is_initialized, uptime_ms
from .dependencies.auth import verify_api_key
from .routers import jobs, kv
from .schemas.status import StatusResponse


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Opens the store from the environment unless one was registered
    already (daemon mode, tests).
    """
    if not is_initialized():
        config = SentinelConfig.from_env()
        init_store(open_default(config.data_dir))
        logger.info(f"API using store at {config.data_dir}")

    yield


tags_metadata = [
    {
        "name": "jobs",
        "description": "Job registry - list, upsert (resets state) and delete periodic jobs",
    },
    {
        "name": "kv",
        "description": "Raw key access with raw/utf8/string/u32/u64 decoding",
    },
]

app = FastAPI(
    title="Sentinel Job Runner API",
    lifespan=lifespan,
    description="""
## Sentinel Job Runner API

Local-only API over the sentinel key-value store.

### Authentication
When `API_AUTH_ENABLED=true`, `/jobs` and `/kv` require an `X-API-Key`
header matching the `API_KEY` environment variable.

### Usage
```bash
curl -X POST http://127.0.0.1:8787/jobs \\
  -H "Content-Type: application/json" \\
  -d '{"id": "tick", "spec": {"period_ms": 1000, "action": {"type": "noop"}}}'
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)


# Health check - NO authentication (operational endpoints)
@app.get("/health")
async def health_check():
    """Health check endpoint. Not authenticated."""
    return {"status": "ok", "version": __version__}


@app.get("/status", response_model=StatusResponse, response_model_exclude_none=True)
async def status():
    """
    Heartbeat counter and uptime.

    Includes scheduler fields when running inside the daemon.
    Not authenticated (operational endpoint).
    """
    service = get_service()
    if service is not None:
        return StatusResponse(**service.get_status())

    try:
        count = get_store().get_t(HEARTBEAT_KEY, U64) or 0
    except (DecodeError, StoreError):
        count = 0
    return StatusResponse(heartbeat_count=count, uptime_ms=uptime_ms())


app.include_router(
    jobs.router, prefix="/jobs", tags=["jobs"], dependencies=[Depends(verify_api_key)]
)
app.include_router(
    kv.router, prefix="/kv", tags=["kv"], dependencies=[Depends(verify_api_key)]
)


def start_http_server(
    host: str,
    port: int,
    shutdown: threading.Event,
    log_level: str = "info",
) -> threading.Thread:
    """
    Serve the app from a background thread until shutdown is set.

    Returns:
        The server thread (join it after setting shutdown)
    """
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level=log_level.lower(),
            log_config=None,  # uvicorn loggers already share the sentinel handlers
        )
    )

    def _watch_shutdown() -> None:
        shutdown.wait()
        server.should_exit = True

    threading.Thread(target=_watch_shutdown, name="sentinel-http-shutdown", daemon=True).start()

    thread = threading.Thread(target=server.run, name="sentinel-http", daemon=True)
    thread.start()
    logger.info(f"web http listening on http://{host}:{port}")
    return thread


if __name__ == "__main__":
    config = SentinelConfig.from_env()
    uvicorn.run(app, host=config.http_host, port=config.http_port)
