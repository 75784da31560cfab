"""
Sentry Notify Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
import pytest

from sentry_notify.engine.context import RenderContext
from sentry_notify.engine.execution import ExecutionRecord, execution_variables

DSN = "https://abc123@o1.ingest.sentry.io/42"
STORE_URL = "https://o1.ingest.sentry.io/api/42/store/"


class RequestSink:
    """
    In-memory HTTP endpoint for httpx.MockTransport.
    Records every request and answers with a configurable status and body.
    """

    def __init__(self, status_code: int = 200, body: bytes = b'{"id":"ok"}'):
        self.status_code = status_code
        self.body = body
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def json_bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep a developer's SENTRY_NOTIFY_DSN out of the tests."""
    monkeypatch.delenv("SENTRY_NOTIFY_DSN", raising=False)


@pytest.fixture
def sink():
    return RequestSink()


@pytest.fixture
def dsn() -> str:
    return DSN


@pytest.fixture
def store_url() -> str:
    return STORE_URL


@pytest.fixture
def failed_execution() -> ExecutionRecord:
    """A failed execution whose second task failed."""
    return ExecutionRecord(
        id="5wm2x4Uqs5DYCMTRh1Ws6O",
        namespace="prod.billing",
        flowId="main-flow-that-fails",
        state="FAILED",
        startDate=datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc),
        endDate=datetime(2026, 10, 1, 12, 1, 2, 500000, tzinfo=timezone.utc),
        taskRuns=[
            {"id": "tr1", "taskId": "start", "state": "SUCCESS"},
            {"id": "tr2", "taskId": "failed", "state": "FAILED"},
        ],
    )


@pytest.fixture
def execution_context(failed_execution) -> RenderContext:
    """Render context as the orchestrator would provide it for *failed_execution*."""
    return RenderContext({"execution": execution_variables(failed_execution)})


@pytest.fixture
def templates_dir(tmp_path):
    """A directory for ad-hoc templates, used as a renderer search path."""
    d = tmp_path / "templates"
    d.mkdir()
    return d


@pytest.fixture
def make_sink():
    """Factory for sinks answering with a specific status or body."""
    return RequestSink
