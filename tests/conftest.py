"""Pytest configuration and fixtures."""

import logging
import os
import tempfile

import pytest

# server.api_server configures file logging at import time
os.environ.setdefault("ROOT_DIR", tempfile.mkdtemp(prefix="canvas-coach-tests-"))

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.document import DocumentHandle, ExtractedDocument, ExtractionOutcome

TEST_ENV = {
    "APP_API_KEY": "test-api-key",
    "DMS_ENGINE": "dropbox",
    "DMS_DROPBOX_BASE_URL": "https://api.dropbox.test",
    "DMS_DROPBOX_CONTENT_URL": "https://content.dropbox.test",
    "DMS_DROPBOX_APP_KEY": "test-app-key",
    "DMS_DROPBOX_APP_SECRET": "test-app-secret",
    "DMS_DROPBOX_REDIRECT_URI": "http://localhost:3000/dropbox-callback",
    "DMS_RETRY_BACKOFF_MS": "0",
    "LLM_ENGINE": "gemini",
    "LLM_GEMINI_BASE_URL": "https://gemini.test",
    "LLM_GEMINI_API_KEY": "test-gemini-key",
    "LLM_RETRY_BACKOFF_MS": "0",
}


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables and drop tuning overrides from the host."""
    for key in list(os.environ):
        if key.startswith(("COACH_", "DMS_", "LLM_")):
            monkeypatch.delenv(key, raising=False)
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("canvas_coach.tests")))


@pytest.fixture
def make_handle():
    def _make(name: str, path: str | None = None, size: int = 0) -> DocumentHandle:
        return DocumentHandle(id=f"id:{name}", display_name=name, locator_path=path or f"/canvas/{name.lower()}", size_bytes=size)
    return _make


@pytest.fixture
def make_document(make_handle):
    def _make(name: str, text: str) -> ExtractedDocument:
        return ExtractedDocument(handle=make_handle(name, size=len(text)), text=text, outcome=ExtractionOutcome.SUCCESS)
    return _make
