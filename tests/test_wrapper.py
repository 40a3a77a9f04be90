"""
Tests for traced_handler(): one root span and exactly one flush per invocation.
"""

import logging
from unittest.mock import MagicMock

import pytest
from opentelemetry.trace import SpanKind, Status, StatusCode

from quote_relay.models import HandlerResult
from quote_relay.observability.wrapper import traced_handler


def spy_on(provider):
    """Wrap a real provider so force_flush calls can be counted."""
    return MagicMock(wraps=provider)


async def invoke(tracer, provider, fn, **kwargs):
    return await traced_handler(tracer=tracer, provider=provider, name="quotes-handler", fn=fn, **kwargs)


@pytest.mark.asyncio
async def test_success_sets_ok_and_flushes_once(tracer, provider, span_exporter,
                                                scheduled_event, lambda_context):
    expected = HandlerResult.json(200, {"message": "ok"})
    seen = []

    async def business(span):
        seen.append(span)
        return expected

    spy = spy_on(provider)
    result = await invoke(tracer, spy, business, event=scheduled_event, context=lambda_context)

    assert result is expected
    assert spy.force_flush.call_count == 1

    spans = span_exporter.get_finished_spans()
    assert len(spans) == 1
    root = spans[0]
    assert root.name == "quotes-handler"
    assert root.kind is SpanKind.SERVER
    assert root.parent is None
    assert root.status.status_code is StatusCode.OK
    assert root.attributes["http.status_code"] == 200
    assert root.attributes["faas.trigger"] == "timer"
    assert root.attributes["faas.invocation_id"] == "req-123"
    assert seen[0].get_span_context().span_id == root.context.span_id


@pytest.mark.asyncio
async def test_business_status_is_not_overwritten(tracer, provider, span_exporter):
    async def business(span):
        span.set_status(Status(StatusCode.ERROR, "sink rejected quote"))
        return HandlerResult.json(200, {})

    await invoke(tracer, provider, business)

    root = span_exporter.get_finished_spans()[0]
    assert root.status.status_code is StatusCode.ERROR
    assert root.status.description == "sink rejected quote"


@pytest.mark.asyncio
async def test_server_error_result_marks_span_error(tracer, provider, span_exporter):
    async def business(span):
        return HandlerResult.json(503, {"message": "down"})

    result = await invoke(tracer, provider, business)

    assert result.status_code == 503
    root = span_exporter.get_finished_spans()[0]
    assert root.status.status_code is StatusCode.ERROR
    assert root.status.description == "HTTP 503 response"


@pytest.mark.asyncio
async def test_uncaught_exception_is_recorded_flushed_and_reraised(tracer, provider, span_exporter):
    async def business(span):
        raise RuntimeError("boom")

    spy = spy_on(provider)
    with pytest.raises(RuntimeError, match="boom"):
        await invoke(tracer, spy, business)

    assert spy.force_flush.call_count == 1

    spans = span_exporter.get_finished_spans()
    assert len(spans) == 1
    root = spans[0]
    assert root.status.status_code is StatusCode.ERROR
    assert root.status.description == "boom"
    assert [e.name for e in root.events] == ["exception"]
    assert root.events[0].attributes["exception.type"] == "RuntimeError"


@pytest.mark.asyncio
async def test_flush_failure_does_not_mask_result(tracer, provider):
    broken = MagicMock(wraps=provider)
    broken.force_flush.side_effect = RuntimeError("exporter exploded")

    async def business(span):
        return HandlerResult.json(200, {"message": "ok"})

    result = await invoke(tracer, broken, business)

    assert result.status_code == 200
    assert broken.force_flush.call_count == 1


@pytest.mark.asyncio
async def test_flush_failure_does_not_mask_business_exception(tracer, provider):
    broken = MagicMock(wraps=provider)
    broken.force_flush.side_effect = RuntimeError("exporter exploded")

    async def business(span):
        raise ValueError("real failure")

    with pytest.raises(ValueError, match="real failure"):
        await invoke(tracer, broken, business)


@pytest.mark.asyncio
async def test_cold_start_only_on_first_invocation(tracer, provider, span_exporter):
    async def business(span):
        return HandlerResult.json(200, {})

    await invoke(tracer, provider, business)
    await invoke(tracer, provider, business)

    first, second = span_exporter.get_finished_spans()
    assert first.attributes["faas.coldstart"] is True
    assert second.attributes["faas.coldstart"] is False


@pytest.mark.asyncio
async def test_caller_attributes_override_derived_ones(tracer, provider, span_exporter):
    async def business(span):
        return HandlerResult.json(200, {})

    await invoke(tracer, provider, business, event={"httpMethod": "GET"},
                 attributes={"faas.trigger": "timer", "team": "quotes"})

    root = span_exporter.get_finished_spans()[0]
    assert root.attributes["faas.trigger"] == "timer"
    assert root.attributes["team"] == "quotes"


@pytest.mark.asyncio
async def test_each_invocation_gets_its_own_root_span(tracer, provider, span_exporter):
    async def business(span):
        return HandlerResult.json(200, {})

    await invoke(tracer, provider, business)
    await invoke(tracer, provider, business)

    first, second = span_exporter.get_finished_spans()
    assert first.context.trace_id != second.context.trace_id
    assert first.parent is None and second.parent is None


@pytest.mark.asyncio
async def test_malformed_result_is_recorded_on_root_span(tracer, provider, span_exporter):
    async def business(span):
        return None

    spy = spy_on(provider)
    with pytest.raises(AttributeError):
        await invoke(tracer, spy, business)

    assert spy.force_flush.call_count == 1
    root = span_exporter.get_finished_spans()[0]
    assert root.status.status_code is StatusCode.ERROR
    assert [e.name for e in root.events] == ["exception"]
    assert root.events[0].attributes["exception.type"] == "AttributeError"


@pytest.mark.asyncio
async def test_finish_log_carries_deadline_and_lifecycle(tracer, provider, caplog,
                                                         scheduled_event, lambda_context):
    async def business(span):
        return HandlerResult.json(200, {})

    with caplog.at_level(logging.DEBUG, logger="quote_relay.observability.wrapper"):
        await invoke(tracer, provider, business, event=scheduled_event, context=lambda_context)

    [finished] = [r for r in caplog.records if r.getMessage() == "Invocation finished: quotes-handler"]
    assert finished.invocation_id == "req-123"
    assert finished.remaining_time_ms == 29000
    assert finished.states == ["not_started", "span_active", "succeeded", "flushed", "done"]
