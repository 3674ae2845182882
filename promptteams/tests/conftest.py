"""Shared fixtures for Prompt Teams tests.

Every test gets its own in-memory store and a NullMailer, so nothing leaks
between tests and no network is touched.
"""

from __future__ import annotations

import logging

import pytest

from promptteams.core.identity import StaticIdentityProvider
from promptteams.core.log_setup import ROOT_LOGGER
from promptteams.core.mailer import NullMailer
from promptteams.core.service import PromptTeams
from promptteams.core.settings import load_settings
from promptteams.core.store.memory import InMemoryDocumentStore


@pytest.fixture
def settings():
    return load_settings(conflict_backoff_base=0.0, retry_backoff_base=0.0)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def mailer():
    return NullMailer()


@pytest.fixture
def pt(store, settings, mailer):
    return PromptTeams(store, StaticIdentityProvider(), settings=settings, mailer=mailer)


@pytest.fixture(autouse=True)
def _drop_log_handlers():
    """configure_logging installs a stream handler; drop it so later tests never write to a closed stream."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
