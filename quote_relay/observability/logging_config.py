"""
Structured Logging Configuration

Lambda ships stdout to CloudWatch Logs line by line, so every log record is
written as ONE JSON object per line:

    {"timestamp": "...", "level": "INFO", "logger": "quote_relay.handler",
     "msg": "Quote processed", "trace_id": "4bf9...", "span_id": "00f0..."}

The trace_id/span_id pair links each log line to the span that was active
when it was written, so a failed invocation can be opened straight from its
log line.

FAILURE MODE:
Warm invocations re-run module-level setup code paths. setup_logging()
replaces existing root handlers instead of adding another one, otherwise
every line would be printed once per warm start.
"""

import logging
import sys
from typing import Any, Dict

from opentelemetry import trace
from pythonjsonlogger.json import JsonFormatter


class CorrelationJsonFormatter(JsonFormatter):
    """
    JSON formatter that injects trace_id and span_id into every log.

    Output: {"msg": "Quote saved", "quote_id": 7, "trace_id": "abc...", ...}
    """

    SENSITIVE_KEYS = ("authorization", "api_key", "token", "password", "secret")

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        """
        Inject custom fields into every log record.

        Args:
            log_record: The dict that will be serialized to JSON
            record: Python LogRecord object
            message_dict: Extra fields from logger.info("msg", extra={...})
        """
        super().add_fields(log_record, record, message_dict)

        # Add trace context (if exists)
        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            log_record['trace_id'] = format(ctx.trace_id, '032x')
            log_record['span_id'] = format(ctx.span_id, '016x')

        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['timestamp'] = self.formatTime(record, self.datefmt)

        self.scrub_sensitive_data(log_record)

    def scrub_sensitive_data(self, log_record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Mask credential-like fields (OTLP auth headers, sink tokens).

        Strings longer than 4 characters keep their last 4; anything else is
        fully redacted.
        """
        for key in self.SENSITIVE_KEYS:
            if key in log_record:
                if isinstance(log_record[key], str) and len(log_record[key]) > 4:
                    log_record[key] = f"***{log_record[key][-4:]}"
                else:
                    log_record[key] = "***REDACTED***"

        return log_record


def setup_logging(level: str = "INFO", service_name: str = "unknown") -> None:
    """
    Configure structured JSON logging for the function.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Service name to include in the startup log
    """
    # stdout so CloudWatch collects it
    handler = logging.StreamHandler(sys.stdout)

    formatter = CorrelationJsonFormatter(
        fmt='%(timestamp)s %(level)s %(logger)s %(message)s',
        rename_fields={'message': 'msg'},
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # The Lambda runtime pre-installs its own handler; replace it (and ours from a previous call)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    root_logger.info(f"Structured logging initialized for {service_name}")

