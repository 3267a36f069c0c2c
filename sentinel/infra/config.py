"""
Configuration for sentinel.

Values come from environment variables, optionally loaded from a .env
file via python-dotenv.

Environment Variables:
- SENTINEL_LOG_LEVEL: Log level (fallback: LOG_LEVEL, default: INFO)
- SENTINEL_DATA_DIR: Key-value store directory (default: data/kv)
- SENTINEL_LOG_DIR: Log file directory (default: logs)
- SENTINEL_TICK_MS: Scheduler tick interval (default: 1000)
- SENTINEL_MAX_CONCURRENCY: Maximum simultaneous executions (default: CPU count)
- SENTINEL_MAX_BACKOFF_MS: Backoff ceiling (default: 60000)
- SENTINEL_HEARTBEAT_MS: Heartbeat period, 0 disables (default: 5000)
- SENTINEL_HTTP_HOST / SENTINEL_HTTP_PORT: HTTP bind address (default: 127.0.0.1:8787)
- API_AUTH_ENABLED / API_KEY: Optional X-API-Key authentication
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# =============================================================================
# Environment Variable Helpers
# =============================================================================

def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    val = os.getenv(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    elif val in ("false", "0", "no", "off"):
        return False
    return default


def _get_env_int(key: str, default: int, minimum: int = 0) -> int:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            parsed = int(val)
        except ValueError:
            logger.warning(f"[Config] Invalid integer for {key}: {val}, using default: {default}")
            return default
        if parsed < minimum:
            logger.warning(f"[Config] {key}={parsed} below minimum {minimum}, using default: {default}")
            return default
        return parsed
    return default


def _get_env_path(key: str, default: Path) -> Path:
    val = os.getenv(key)
    return Path(val).expanduser() if val else default


# =============================================================================
# Base Paths
# =============================================================================

def get_project_root() -> Path:
    """
    Get the project root directory.

    File is at sentinel/infra/config.py, so project root is 3 parents up.
    """
    return Path(__file__).parent.parent.parent.resolve()


def get_default_data_dir() -> Path:
    return get_project_root() / "data" / "kv"


def get_default_log_dir() -> Path:
    return get_project_root() / "logs"


# =============================================================================
# Config
# =============================================================================

@dataclass
class SentinelConfig:
    """Process configuration."""

    log_level: str = "INFO"
    data_dir: Path = field(default_factory=get_default_data_dir)
    log_dir: Path = field(default_factory=get_default_log_dir)
    tick_ms: int = 1000
    max_concurrency: int = field(default_factory=lambda: os.cpu_count() or 1)
    max_backoff_ms: int = 60_000
    heartbeat_ms: int = 5000
    http_host: str = "127.0.0.1"
    http_port: int = 8787
    api_auth_enabled: bool = False
    api_key: str = ""

    @classmethod
    def from_env(cls, dotenv_path: Optional[str | Path] = None) -> "SentinelConfig":
        """
        Build a config from the environment.

        Args:
            dotenv_path: Optional .env file; default lookup when None
        """
        load_dotenv(dotenv_path)

        defaults = cls()
        return cls(
            log_level=os.getenv("SENTINEL_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO")).upper(),
            data_dir=_get_env_path("SENTINEL_DATA_DIR", defaults.data_dir),
            log_dir=_get_env_path("SENTINEL_LOG_DIR", defaults.log_dir),
            tick_ms=_get_env_int("SENTINEL_TICK_MS", defaults.tick_ms, minimum=1),
            max_concurrency=_get_env_int(
                "SENTINEL_MAX_CONCURRENCY", defaults.max_concurrency, minimum=1
            ),
            max_backoff_ms=_get_env_int("SENTINEL_MAX_BACKOFF_MS", defaults.max_backoff_ms),
            heartbeat_ms=_get_env_int("SENTINEL_HEARTBEAT_MS", defaults.heartbeat_ms),
            http_host=os.getenv("SENTINEL_HTTP_HOST", defaults.http_host),
            http_port=_get_env_int("SENTINEL_HTTP_PORT", defaults.http_port, minimum=1),
            api_auth_enabled=_get_env_bool("API_AUTH_ENABLED", False),
            api_key=os.getenv("API_KEY", ""),
        )
