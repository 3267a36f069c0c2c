"""
API Key authentication dependency.

Guards the /jobs and /kv routers. Controlled by API_AUTH_ENABLED; when
enabled, requests must carry an X-API-Key header equal to API_KEY.
Settings are read per request, so a daemon picks up a rotated key from
its environment without re-importing this module.
"""

import hmac
import logging
import os
from typing import Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from sentinel.infra.config import _get_env_bool

logger = logging.getLogger(__name__)

# Header definition
api_key_header = APIKeyHeader(
    name="X-API-Key",
    auto_error=False,  # missing header is only an error when auth is enabled
    description="API key for /jobs and /kv (required when API_AUTH_ENABLED=true)",
)


def auth_enabled() -> bool:
    return _get_env_bool("API_AUTH_ENABLED", False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_api_key(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
) -> Optional[str]:
    """
    Verify the X-API-Key header.

    Returns:
        The accepted key, or None when auth is disabled

    Raises:
        HTTPException: 401 if auth is enabled and the key is missing,
            wrong, or no API_KEY is configured
    """
    if not auth_enabled():
        return None

    if not api_key:
        raise _unauthorized("Missing API key. Provide X-API-Key header.")

    expected = os.getenv("API_KEY", "")
    if not expected:
        logger.error("API_AUTH_ENABLED=true but API_KEY is empty; rejecting request")
        raise _unauthorized("Invalid API key")

    if not hmac.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(f"Rejected API key for {request.method} {request.url.path}")
        raise _unauthorized("Invalid API key")

    return api_key
