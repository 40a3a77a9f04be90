"""
Data models for the quote pipeline.

The Quote shape is checked by an explicit structural function instead of a
schema library: the check returns a discriminated result (QuoteValid or
QuoteInvalid) and parse_quote() turns the failure branch into an exception.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple, Union

from .errors import QuoteValidationError

JSON_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class Quote:
    """A quote as returned by the upstream API."""
    id: int
    quote: str
    author: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "quote": self.quote, "author": self.author}


@dataclass(frozen=True)
class QuoteValid:
    quote: Quote
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class QuoteInvalid:
    problems: Tuple[str, ...]
    ok: bool = field(default=False, init=False)


QuoteCheck = Union[QuoteValid, QuoteInvalid]

# field name -> (accepted type, label used in problem messages)
_QUOTE_FIELDS = (
    ("id", int, "an integer"),
    ("quote", str, "a string"),
    ("author", str, "a string"),
)


def _has_type(value: Any, expected: type) -> bool:
    # bool is an int subclass but never a valid id
    if expected is int and isinstance(value, bool):
        return False
    return isinstance(value, expected)


def validate_quote(data: Any) -> QuoteCheck:
    """
    Check that ``data`` has the Quote shape.

    Unknown fields are ignored. A Quote instance is always valid, so
    re-validating an already validated value never fails.

    Args:
        data: Decoded JSON payload (or an existing Quote)

    Returns:
        QuoteValid with the parsed quote, or QuoteInvalid listing every problem
    """
    if isinstance(data, Quote):
        return QuoteValid(quote=data)

    if not isinstance(data, Mapping):
        return QuoteInvalid(problems=(f"expected a JSON object, got {type(data).__name__}",))

    problems: List[str] = []
    for name, expected, label in _QUOTE_FIELDS:
        if name not in data:
            problems.append(f"missing field '{name}'")
        elif not _has_type(data[name], expected):
            problems.append(
                f"field '{name}' must be {label}, got {type(data[name]).__name__}"
            )

    if problems:
        return QuoteInvalid(problems=tuple(problems))
    return QuoteValid(quote=Quote(id=data["id"], quote=data["quote"], author=data["author"]))


def parse_quote(data: Any) -> Quote:
    """Validate ``data`` and return the Quote, raising QuoteValidationError on mismatch."""
    result = validate_quote(data)
    if isinstance(result, QuoteInvalid):
        raise QuoteValidationError(result.problems)
    return result.quote


@dataclass
class HandlerResult:
    """
    Structured result of one invocation.

    Rendered in the API Gateway proxy format that Lambda expects:
    ``{"statusCode": ..., "body": "<json>", "headers": {...}}``.
    """
    status_code: int
    body: str
    headers: Dict[str, str] = field(default_factory=lambda: dict(JSON_HEADERS))

    @classmethod
    def json(cls, status_code: int, payload: Mapping[str, Any]) -> "HandlerResult":
        return cls(status_code=status_code, body=json.dumps(payload))

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "body": self.body,
            "headers": dict(self.headers),
        }
