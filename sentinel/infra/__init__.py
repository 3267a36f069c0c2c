"""
Infrastructure module - configuration and logging.
"""

from .config import SentinelConfig, get_project_root
from .logging_config import setup_logging

__all__ = [
    "SentinelConfig",
    "get_project_root",
    "setup_logging",
]
