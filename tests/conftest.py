"""
Pytest configuration and fixtures for the quotes function tests.

Network: see tests/helpers.py for the recording MockTransport.

Spans: the process-wide provider is built with an InMemorySpanExporter and
shut down after each test, so every test sees only its own spans.
"""

from types import SimpleNamespace
from typing import Any, Callable, Dict

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from quote_relay.config import Settings
from quote_relay.observability import wrapper
from quote_relay.observability.telemetry import (
    TelemetryConfig,
    init_telemetry,
    shutdown_telemetry,
)
from tests.helpers import QUOTES_URL, TARGET_URL, RecordingTransport, Route


@pytest.fixture(autouse=True)
def reset_process_state(monkeypatch):
    """Fresh provider and cold-start flag for every test."""
    shutdown_telemetry()
    monkeypatch.setattr(wrapper, "_cold_start", True)
    yield
    shutdown_telemetry()


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def telemetry(span_exporter):
    """(tracer, provider) exporting into span_exporter."""
    return init_telemetry(
        "quotes-function-test",
        TelemetryConfig(exporter=span_exporter, scheduled_delay_millis=60000),
    )


@pytest.fixture
def tracer(telemetry):
    return telemetry[0]


@pytest.fixture
def provider(telemetry):
    return telemetry[1]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        quotes_url=QUOTES_URL,
        target_url=TARGET_URL,
        span_exporter="console",
    )


@pytest.fixture
def quote_payload() -> Dict[str, Any]:
    return {"id": 1, "quote": "Q", "author": "A"}


@pytest.fixture
def make_transport() -> Callable[..., RecordingTransport]:
    def factory(fetch: Route = None, save: Route = None) -> RecordingTransport:
        routes = {}
        if fetch is not None:
            routes[("GET", QUOTES_URL)] = fetch
        if save is not None:
            routes[("POST", TARGET_URL)] = save
        return RecordingTransport(routes)
    return factory


@pytest.fixture
def lambda_context() -> SimpleNamespace:
    return SimpleNamespace(
        function_name="quotes-function",
        aws_request_id="req-123",
        invoked_function_arn="arn:aws:lambda:eu-west-1:123456789012:function:quotes-function",
        get_remaining_time_in_millis=lambda: 29000,
    )


@pytest.fixture
def scheduled_event() -> Dict[str, Any]:
    return {
        "version": "0",
        "id": "evt-42",
        "detail-type": "Scheduled Event",
        "source": "aws.events",
        "detail": {},
    }
