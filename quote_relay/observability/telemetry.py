"""
OpenTelemetry Provider Setup

This module owns the span pipeline for the lifetime of the Lambda execution
environment:

    Tracer → Span → BatchSpanProcessor (in-memory queue) → SpanExporter

The environment survives between invocations (warm starts), so the provider
is built ONCE per process at cold start and reused afterwards.

CRITICAL: The flush
-------------------
BatchSpanProcessor exports in a background thread on a timer. Lambda freezes
the process as soon as the handler returns, so spans still sitting in the
queue are exported "later" - which may mean minutes later on the next warm
invocation, or never if the environment is destroyed.

Every invocation must therefore end with flush_telemetry(). A flush that
fails or times out is logged, never raised: losing telemetry is bad, but
masking the invocation's real result is worse.

FAILURE MODE:
If Lambda kills the process mid-flush, the spans of that invocation are lost.
That is accepted; there is nothing left in-process to retry with.
"""

import asyncio
import logging
import os
import sys
import threading
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    SERVICE_VERSION,
    Resource,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)

from .. import __version__
from ..config import Settings

logger = logging.getLogger(__name__)

TRACER_NAME = "quote_relay"


# ============================================================================
# Span pipeline configuration
# ============================================================================

@dataclass(frozen=True)
class TelemetryConfig:
    """
    Named options for the span pipeline. Read-only once the provider exists.

    exporter is either the name of a built-in exporter ("console" writes one
    JSON span per line to stdout, "otlp" posts OTLP/HTTP to the collector
    configured via OTEL_EXPORTER_OTLP_*) or a ready SpanExporter instance.
    """
    exporter: Union[str, SpanExporter] = "console"
    service_version: str = __version__
    environment: str = "development"
    max_queue_size: int = 2048
    scheduled_delay_millis: int = 1000
    max_export_batch_size: int = 512
    export_timeout_millis: int = 30000
    flush_timeout_millis: int = 5000

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelemetryConfig":
        return cls(
            exporter=settings.span_exporter,
            service_version=settings.service_version,
            environment=settings.environment,
            max_queue_size=settings.lambda_span_processor_queue_size,
            scheduled_delay_millis=settings.otel_bsp_schedule_delay,
            max_export_batch_size=settings.otel_bsp_max_export_batch_size,
            flush_timeout_millis=settings.telemetry_flush_timeout_ms,
        )


def _one_span_per_line(span) -> str:
    # CloudWatch splits log events on newlines
    return span.to_json(indent=None) + os.linesep


def create_exporter(exporter: Union[str, SpanExporter]) -> SpanExporter:
    """
    Resolve the configured exporter.

    Args:
        exporter: "console", "otlp", or a SpanExporter instance

    Returns:
        SpanExporter to hand to the batch processor

    Raises:
        ValueError: For an unknown exporter name
    """
    if isinstance(exporter, SpanExporter):
        return exporter
    if exporter == "console":
        return ConsoleSpanExporter(out=sys.stdout, formatter=_one_span_per_line)
    if exporter == "otlp":
        return OTLPSpanExporter()
    raise ValueError(f"Unsupported span exporter: {exporter!r}")


# ============================================================================
# Service Resource Attributes
# ============================================================================
# These labels appear on EVERY span from this function.
# The faas.* / cloud.* values come from the Lambda runtime environment and are
# simply absent when running locally.
# ============================================================================

def create_resource(
    service_name: str,
    service_version: str = __version__,
    environment: str = "development",
) -> Resource:
    """
    Creates an OpenTelemetry Resource with service metadata.

    Args:
        service_name: Unique identifier for this function (e.g., "quotes-function")
        service_version: Semantic version
        environment: Deployment environment (development, staging, production)

    Returns:
        OpenTelemetry Resource object
    """
    attributes = {
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
        DEPLOYMENT_ENVIRONMENT: environment,
        "cloud.provider": "aws",
        "cloud.platform": "aws_lambda",
        "cloud.region": os.getenv("AWS_REGION"),
        "faas.name": os.getenv("AWS_LAMBDA_FUNCTION_NAME"),
        "faas.version": os.getenv("AWS_LAMBDA_FUNCTION_VERSION"),
    }
    # Resource.create also merges OTEL_RESOURCE_ATTRIBUTES
    return Resource.create({k: v for k, v in attributes.items() if v is not None})


# ============================================================================
# Process-wide provider
# ============================================================================
# CRITICAL: One provider per process.
# Two providers means two BatchSpanProcessors, two background threads and two
# exporters racing each other - and flushing one of them leaves the other's
# queue behind. A repeated init returns the existing instance instead.
# ============================================================================

@dataclass(frozen=True)
class _Telemetry:
    service_name: str
    config: TelemetryConfig
    tracer: trace.Tracer
    provider: TracerProvider


_lock = threading.Lock()
_telemetry: Optional[_Telemetry] = None
_global_provider_registered = False


def init_telemetry(
    service_name: str,
    config: Optional[TelemetryConfig] = None,
) -> Tuple[trace.Tracer, TracerProvider]:
    """
    Initializes the tracer and provider for this process.

    Call at cold start (module import or first invocation). Later calls
    return the instance built by the first one; if they ask for a different
    service name or configuration, the request is ignored with a warning.

    Args:
        service_name: Service identifier
        config: Span pipeline options (defaults apply when omitted)

    Returns:
        (tracer, provider) tuple
    """
    global _telemetry, _global_provider_registered

    config = config or TelemetryConfig()

    with _lock:
        if _telemetry is not None:
            if (_telemetry.service_name, _telemetry.config) != (service_name, config):
                logger.warning(
                    f"⚠ Telemetry already initialized for {_telemetry.service_name}; "
                    f"ignoring re-initialization request for {service_name}"
                )
            return _telemetry.tracer, _telemetry.provider

        provider = TracerProvider(
            resource=create_resource(service_name, config.service_version, config.environment)
        )
        provider.add_span_processor(
            BatchSpanProcessor(
                create_exporter(config.exporter),
                max_queue_size=config.max_queue_size,
                schedule_delay_millis=config.scheduled_delay_millis,
                max_export_batch_size=config.max_export_batch_size,
                export_timeout_millis=config.export_timeout_millis,
            )
        )

        # The OTel API only accepts the global provider once per process
        if not _global_provider_registered:
            trace.set_tracer_provider(provider)
            _global_provider_registered = True

        tracer = provider.get_tracer(TRACER_NAME, __version__)
        _telemetry = _Telemetry(
            service_name=service_name,
            config=config,
            tracer=tracer,
            provider=provider,
        )

    logger.info(f"✓ Tracing initialized: {service_name} (queue={config.max_queue_size}, "
                f"delay={config.scheduled_delay_millis}ms, batch={config.max_export_batch_size})")
    return tracer, provider


async def flush_telemetry(provider: TracerProvider, timeout_millis: int = 5000) -> bool:
    """
    Force every buffered span to be exported before returning.

    force_flush() blocks, so it runs in a worker thread and the event loop
    awaits it.

    Args:
        provider: Provider whose processors should be flushed
        timeout_millis: Upper bound for the flush

    Returns:
        True if every processor flushed in time, False otherwise
    """
    try:
        flushed = await asyncio.to_thread(provider.force_flush, timeout_millis)
    except Exception as e:
        logger.warning(f"⚠ Telemetry flush failed: {e}. Spans for this invocation may be lost.",
                       exc_info=True)
        return False

    if not flushed:
        logger.warning(f"⚠ Telemetry flush did not complete within {timeout_millis}ms")
        return False
    return True


def shutdown_telemetry() -> None:
    """
    Flush and shut down the process-wide provider, then forget it.

    The next init_telemetry() call builds a fresh pipeline.
    """
    global _telemetry

    with _lock:
        telemetry, _telemetry = _telemetry, None

    if telemetry is not None:
        telemetry.provider.shutdown()
        logger.info(f"Tracing shut down for {telemetry.service_name}")


# ============================================================================
# HELPER: Get current trace context
# ============================================================================

def get_trace_context() -> dict:
    """
    Extract current trace ID and span ID for correlation.

    Example:
        logger.error("Sink rejected quote", extra=get_trace_context())

    Returns:
        Dict with trace_id and span_id (or empty if no active trace)
    """
    span = trace.get_current_span()
    ctx = span.get_span_context()

    if ctx.is_valid:
        return {
            "trace_id": format(ctx.trace_id, "032x"),
            "span_id": format(ctx.span_id, "016x"),
        }
    return {}
