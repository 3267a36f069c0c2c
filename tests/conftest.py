"""
Pytest configuration and shared fixtures.
"""

import logging
import os
import pytest


@pytest.fixture(autouse=True, scope="function")
def reset_auth_env():
    """
    Run every test with API_AUTH_ENABLED=false unless it sets otherwise.
    """
    original_auth_enabled = os.environ.get("API_AUTH_ENABLED")
    original_api_key = os.environ.get("API_KEY")

    os.environ["API_AUTH_ENABLED"] = "false"

    yield

    if original_auth_enabled is not None:
        os.environ["API_AUTH_ENABLED"] = original_auth_enabled
    elif "API_AUTH_ENABLED" in os.environ:
        del os.environ["API_AUTH_ENABLED"]

    if original_api_key is not None:
        os.environ["API_KEY"] = original_api_key
    elif "API_KEY" in os.environ:
        del os.environ["API_KEY"]


@pytest.fixture(autouse=True)
def reset_api_state():
    """Forget any store registered with the API between tests."""
    from sentinel.api._state import reset_state

    reset_state()
    yield
    reset_state()


@pytest.fixture(autouse=True)
def reset_sentinel_logger():
    """Undo setup_logging() so caplog sees records from every test."""
    yield
    for name in ("sentinel", "uvicorn"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
