"""
Traced Invocation Wrapper

One root span per invocation, as a reusable policy:

    traced_handler(tracer=..., provider=..., name="quotes-handler",
                   event=event, context=context, fn=business_function)

HOW IT WORKS:
1. Builds an InvocationRecord from the Lambda event/context
2. Starts a SERVER span carrying the faas.* trigger attributes
3. Runs fn(span) with that span as the current span
4. Mirrors the outcome onto the span and ends it
5. Flushes the provider - ALWAYS, on every exit path

The wrapper never inspects failure content. Business functions are expected
to turn their own failures into a 5xx result; an exception that escapes
anyway is recorded, flushed and re-raised, never swallowed.

Variants (different names, triggers, attributes) are configuration of this
one function, not separate wrapper types.
"""

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import SpanKind, Status, StatusCode

from ..invocation import InvocationRecord, InvocationState
from ..models import HandlerResult
from .telemetry import flush_telemetry

logger = logging.getLogger(__name__)

BusinessFunction = Callable[[trace.Span], Awaitable[HandlerResult]]

# First invocation in this process pays the cold start
_cold_start = True


def _status_code(span: trace.Span) -> StatusCode:
    status = getattr(span, "status", None)
    return status.status_code if status is not None else StatusCode.UNSET


def mirror_result(span: trace.Span, result: HandlerResult) -> None:
    """
    Mirror the business result onto the root span.

    A status the business function already set is left alone; otherwise
    5xx results become ERROR and everything else OK.
    """
    span.set_attribute("http.status_code", result.status_code)
    if _status_code(span) is not StatusCode.UNSET:
        return
    if result.is_server_error:
        span.set_status(Status(StatusCode.ERROR, f"HTTP {result.status_code} response"))
    else:
        span.set_status(Status(StatusCode.OK))


async def traced_handler(
    *,
    tracer: trace.Tracer,
    provider: TracerProvider,
    name: str,
    fn: BusinessFunction,
    event: Any = None,
    context: Any = None,
    kind: SpanKind = SpanKind.SERVER,
    attributes: Optional[Mapping[str, Any]] = None,
    flush_timeout_millis: int = 5000,
) -> HandlerResult:
    """
    Run one invocation inside a root span and flush telemetry afterwards.

    Args:
        tracer: Tracer from init_telemetry()
        provider: Provider from init_telemetry(); flushed exactly once
        name: Root span name
        fn: Business function receiving the root span
        event: Lambda event (only trigger metadata is read)
        context: Lambda context (only request id / ARN / deadline are read)
        kind: Span kind, SERVER for invocation roots
        attributes: Extra attributes; they override the derived trigger attributes
        flush_timeout_millis: Upper bound for the final flush

    Returns:
        The business function's result, unchanged

    Raises:
        Whatever fn raises, after the span is ended and telemetry flushed
    """
    global _cold_start
    cold_start, _cold_start = _cold_start, False

    record = InvocationRecord.from_lambda(event, context, cold_start=cold_start)
    span_attributes = {**record.span_attributes(), **(attributes or {})}

    try:
        record.advance(InvocationState.SPAN_ACTIVE)
        with tracer.start_as_current_span(
            name,
            kind=kind,
            attributes=span_attributes,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                result = await fn(span)
                mirror_result(span, result)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e) or type(e).__name__))
                logger.error(f"✗ Uncaught exception in {name}: {e}",
                             extra={"invocation_id": record.invocation_id})
                raise

            record.result = result
            record.advance(InvocationState.SUCCEEDED)
    finally:
        if record.state is InvocationState.SPAN_ACTIVE:
            record.advance(InvocationState.FAILED)
        await flush_telemetry(provider, flush_timeout_millis)
        record.advance(InvocationState.FLUSHED)
        record.advance(InvocationState.DONE)
        logger.debug(
            f"Invocation finished: {name}",
            extra={"invocation_id": record.invocation_id, "trigger": record.trigger,
                   "cold_start": record.cold_start,
                   "remaining_time_ms": record.remaining_time_ms,
                   "states": [s.value for s in record.history] + [record.state.value]},
        )

    return result
