"""
API Routers package.
"""

from . import jobs, kv

__all__ = ["jobs", "kv"]
