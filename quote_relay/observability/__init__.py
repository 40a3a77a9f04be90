"""
Observability Package

Everything the function needs to be traced end to end:
1. TRACES: OpenTelemetry provider with a batch span processor (telemetry.py)
2. INVOCATION SPANS: root span + guaranteed flush per invocation (wrapper.py)
3. LOGS: structured JSON logs correlated with the active span (logging_config.py)

CRITICAL DESIGN DECISION:
The exporter is pluggable (stdout lines for a log forwarder, or OTLP/HTTP
straight to a collector). Everything above the exporter only relies on
force_flush() completing before the invocation returns.
"""

from .logging_config import setup_logging
from .telemetry import (
    TelemetryConfig,
    flush_telemetry,
    get_trace_context,
    init_telemetry,
    shutdown_telemetry,
)
from .wrapper import traced_handler

__all__ = [
    "TelemetryConfig",
    "flush_telemetry",
    "get_trace_context",
    "init_telemetry",
    "setup_logging",
    "shutdown_telemetry",
    "traced_handler",
]
