"""Pytest configuration and fixtures.

Provides environment isolation, a deterministic scheduler per test, and
marker-driven opt-outs. Fixtures here are autouse unless noted.
"""

from __future__ import annotations

import logging
import os

import pytest

from pledge.config import load_settings
from pledge.scheduler import QueueScheduler, scheduler_scope

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    monkeypatch.setattr("pledge.config.load_dotenv", lambda *_args, **_kwargs: False)


@pytest.fixture(autouse=True)
def isolate_pledge_env(request, monkeypatch):
    """Clear PLEDGE_* variables and the settings cache around each test.

    Opt-out: @pytest.mark.allow_env_pollution
    """
    if not request.node.get_closest_marker("allow_env_pollution"):
        for key in list(os.environ.keys()):
            if key.startswith("PLEDGE_"):
                monkeypatch.delenv(key, raising=False)
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


# =============================================================================
# Scheduling
# =============================================================================


@pytest.fixture
def queue():
    """A fresh QueueScheduler installed as the ambient default.

    Nothing dispatches until the test calls ``queue.run_until_idle()``.
    """
    scheduler = QueueScheduler(max_steps=10_000)
    with scheduler_scope(scheduler):
        yield scheduler


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_asyncio():
    """Keep asyncio debug chatter out of captured logs."""
    logging.getLogger("asyncio").setLevel(logging.WARNING)
