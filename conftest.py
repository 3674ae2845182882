"""Repo-wide test fixtures.

Snapshots and restores PROMPTTEAMS_* environment variables between tests
so a test that exports configuration cannot leak it into the next one.
"""

from __future__ import annotations

import os

import pytest

_ENV_VARS = [
    "PROMPTTEAMS_CONFIG",
    "PROMPTTEAMS_ENV",
    "PROMPTTEAMS_LOG_FORMAT",
    "PROMPTTEAMS_LOG_LEVEL",
    "PROMPTTEAMS_STORE_PATH",
    "PROMPTTEAMS_CONFLICT_MAX_ATTEMPTS",
    "PROMPTTEAMS_CONFLICT_BACKOFF_BASE",
    "PROMPTTEAMS_RETRY_ATTEMPTS",
    "PROMPTTEAMS_RETRY_BACKOFF_BASE",
    "PROMPTTEAMS_INVITE_LINK_BASE",
    "PROMPTTEAMS_MAILER_ENDPOINT",
    "PROMPTTEAMS_MAILER_API_KEY",
    "PROMPTTEAMS_MAILER_TIMEOUT_S",
    "PROMPTTEAMS_MAILER_RETRIES",
]


@pytest.fixture(autouse=True)
def _restore_env():
    """Clear configuration env vars for each test and restore them after."""
    snapshot = {}
    for var in _ENV_VARS:
        val = os.environ.pop(var, None)
        if val is not None:
            snapshot[var] = val

    yield

    for var in _ENV_VARS:
        if var in snapshot:
            os.environ[var] = snapshot[var]
        else:
            os.environ.pop(var, None)
