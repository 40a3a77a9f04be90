"""
Instrumented HTTP calls for the quote pipeline.

Two calls, one pattern:
- get_random_quote(): GET the upstream quote source, validate the Quote shape
- save_quote(): POST the quote to the sink, return its JSON response

Each call:
- opens its own CLIENT span as a child of the span it is given
- makes exactly ONE network attempt (retries are the caller's concern)
- treats any non-2xx status as a failure that reports the status code
- on failure records the exception on its own span, marks it ERROR,
  ends it and re-raises; it never downgrades to a partial success
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

import httpx
from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from ..errors import QuoteValidationError, TransportError
from ..models import JSON_HEADERS, Quote, parse_quote

logger = logging.getLogger(__name__)


@contextmanager
def client_span(
    tracer: trace.Tracer,
    name: str,
    parent: trace.Span,
    attributes: Optional[Mapping[str, Any]] = None,
) -> Iterator[trace.Span]:
    """
    Scoped CLIENT span: created as a child of ``parent``, ended on every exit path.

    The parent is passed explicitly rather than read from ambient context.
    """
    with tracer.start_as_current_span(
        name,
        context=trace.set_span_in_context(parent),
        kind=SpanKind.CLIENT,
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e) or type(e).__name__))
            raise


async def _send(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    try:
        return await client.request(method, url, **kwargs)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportError(f"{method} {url} failed: {e}", original_error=e) from e


def _check_status(span: trace.Span, response: httpx.Response) -> None:
    span.set_attribute("http.status_code", response.status_code)
    if not response.is_success:
        raise TransportError(
            f"HTTP error! status: {response.status_code}",
            status_code=response.status_code,
        )


async def get_random_quote(
    client: httpx.AsyncClient,
    tracer: trace.Tracer,
    parent: trace.Span,
    url: str,
) -> Quote:
    """
    Fetch a random quote and validate its structure.

    Args:
        client: Shared HTTP client
        tracer: Tracer used for the child span
        parent: Span the call is nested under
        url: Quote source URL

    Returns:
        A validated Quote

    Raises:
        TransportError: Network failure or non-success status
        QuoteValidationError: Body is not JSON or does not match the Quote shape
    """
    with client_span(tracer, "get_random_quote", parent,
                     {"http.method": "GET", "http.url": url}) as span:
        response = await _send(client, "GET", url)
        _check_status(span, response)

        try:
            data = response.json()
        except ValueError as e:
            raise QuoteValidationError(["response body is not valid JSON"], original_error=e) from e

        quote = parse_quote(data)
        logger.debug(f"Fetched quote {quote.id} by {quote.author}")
        return quote


async def save_quote(
    client: httpx.AsyncClient,
    tracer: trace.Tracer,
    parent: trace.Span,
    url: str,
    quote: Quote,
) -> Any:
    """
    POST a quote to the sink.

    Returns:
        The sink's decoded JSON response (shape unspecified)

    Raises:
        TransportError: Network failure, non-success status, or non-JSON response
    """
    attributes = {
        "http.method": "POST",
        "http.url": url,
        "quote.id": quote.id,
        "quote.author": quote.author,
    }
    with client_span(tracer, "save_quote", parent, attributes) as span:
        response = await _send(client, "POST", url, headers=JSON_HEADERS, json=quote.to_dict())
        _check_status(span, response)

        try:
            saved = response.json()
        except ValueError as e:
            raise TransportError(
                f"Sink returned a non-JSON response (status: {response.status_code})",
                status_code=response.status_code,
                original_error=e,
            ) from e

        logger.debug(f"Saved quote {quote.id} to {url}")
        return saved
