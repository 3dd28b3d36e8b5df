"""Shared fixtures for chat-log stats tests."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from helpers import make_sample_rows


@pytest.fixture()
def sample_rows():
    """Return the standard sample of chat_logs rows."""
    return make_sample_rows()


@pytest.fixture()
def fetch_mock(sample_rows):
    """Patch the Supabase fetch used by app.py to return *sample_rows*."""
    with patch("app.fetch_chat_logs", return_value=sample_rows) as mock_fetch:
        yield mock_fetch


@pytest.fixture()
def client(fetch_mock):
    """TestClient for app.py with a mocked chat-log source.

    Resets the module-level row cache between tests.
    """
    import app as app_module

    with patch.object(
        app_module,
        "_cache",
        {"rows": None, "fetched_at": 0.0, "started": 0, "generation": 0},
    ):
        with TestClient(app_module.app) as tc:
            yield tc
