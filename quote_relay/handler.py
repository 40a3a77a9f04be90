"""
Quotes Lambda Function

On every scheduled invocation this function:
1. Fetches a random quote from the upstream API (child span: get_random_quote)
2. Validates it against the Quote shape
3. POSTs it to the configured sink (child span: save_quote)
4. Returns a proxy-style result {statusCode, body, headers}

All of it runs inside one root span opened by traced_handler(), which also
flushes the span pipeline before the result goes back to the runtime.

ERROR POLICY:
process_quote() is the single place where internal failures (configuration,
transport, validation) become the external 500 envelope. handler() does the
same for a failed cold start. Callers never see an unhandled exception from
this module.

Deployment: handler = "quote_relay.handler.handler"
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, Optional

import httpx
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import Status, StatusCode

from .clients.quotes import get_random_quote, save_quote
from .config import Settings, get_settings
from .errors import error_kind
from .models import HandlerResult
from .observability.logging_config import setup_logging
from .observability.telemetry import TelemetryConfig, init_telemetry
from .observability.wrapper import traced_handler

logger = logging.getLogger(__name__)

ROOT_SPAN_NAME = "quotes-handler"


# ============================================================================
# Business function
# ============================================================================

async def process_quote(
    span: trace.Span,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
    tracer: trace.Tracer,
) -> HandlerResult:
    """
    Fetch one quote and forward it to the sink.

    The sink URL is checked BEFORE any network call, so a misconfigured
    function fails fast without touching the upstream API.

    Args:
        span: Root span of this invocation (parent of both client spans)
        settings: Function settings
        client: Shared HTTP client
        tracer: Tracer for the child spans

    Returns:
        200 with {message, quote, savedResponse}, or 500 with {message, error}
    """
    try:
        target_url = settings.require_target_url()

        quote = await get_random_quote(client, tracer, span, settings.quotes_url)
        span.add_event("Quote Fetched", {"quote_id": quote.id, "quote_author": quote.author})

        saved_response = await save_quote(client, tracer, span, target_url, quote)
        span.add_event("Quote Saved Successfully", {"quote_id": quote.id})

        logger.info(f"✓ Quote {quote.id} processed")
        return HandlerResult.json(200, {
            "message": "Quote processed successfully",
            "quote": quote.to_dict(),
            "savedResponse": saved_response,
        })

    except Exception as e:
        message = str(e) or type(e).__name__
        span.record_exception(e)
        span.set_status(Status(StatusCode.ERROR, message))
        span.set_attribute("error.type", error_kind(e))

        logger.error(f"✗ Error processing quote: {message}", extra={"error_type": error_kind(e)})
        return HandlerResult.json(500, {
            "message": "Error processing quote",
            "error": message,
        })


async def run_invocation(
    event: Any,
    context: Any,
    *,
    settings: Settings,
    tracer: trace.Tracer,
    provider: TracerProvider,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HandlerResult:
    """
    Run one traced invocation with a fresh HTTP client.

    Args:
        event: Lambda event
        context: Lambda context
        settings: Function settings
        tracer: Tracer from init_telemetry()
        provider: Provider from init_telemetry()
        transport: Optional httpx transport (proxies, local stubs)
    """
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, transport=transport) as client:
        return await traced_handler(
            tracer=tracer,
            provider=provider,
            name=ROOT_SPAN_NAME,
            event=event,
            context=context,
            attributes={"faas.trigger": "timer"},
            fn=partial(process_quote, settings=settings, client=client, tracer=tracer),
            flush_timeout_millis=settings.telemetry_flush_timeout_ms,
        )


# ============================================================================
# LAMBDA INITIALIZATION (COLD START)
# ============================================================================
# Settings, logging and the span pipeline are built on the first invocation
# and reused by every warm invocation of the same execution environment.
# ============================================================================

@dataclass(frozen=True)
class Runtime:
    settings: Settings
    tracer: trace.Tracer
    provider: TracerProvider
    transport: Optional[httpx.AsyncBaseTransport] = None


_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    """Build (once) and return the process-wide runtime."""
    global _runtime
    if _runtime is None:
        settings = get_settings()
        setup_logging(level=settings.log_level, service_name=settings.otel_service_name)
        tracer, provider = init_telemetry(
            settings.otel_service_name,
            TelemetryConfig.from_settings(settings),
        )
        _runtime = Runtime(settings=settings, tracer=tracer, provider=provider)
    return _runtime


def handler(event: Any, context: Any) -> Dict[str, Any]:
    """
    AWS Lambda entrypoint.

    A failed cold start (invalid settings, broken exporter) has no span
    pipeline to report into, so it is logged and answered with the same 500
    envelope as any other failure. The runtime stays unbuilt and the next
    invocation tries again.
    """
    try:
        runtime = get_runtime()
    except Exception as e:
        message = str(e) or type(e).__name__
        logger.exception(f"✗ Function initialization failed: {message}",
                         extra={"error_type": "initialization"})
        return HandlerResult.json(500, {
            "message": "Error processing quote",
            "error": message,
        }).to_dict()

    result = asyncio.run(run_invocation(
        event,
        context,
        settings=runtime.settings,
        tracer=runtime.tracer,
        provider=runtime.provider,
        transport=runtime.transport,
    ))
    return result.to_dict()

