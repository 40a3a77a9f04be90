"""
Per-invocation record and lifecycle state machine.

    NOT_STARTED → SPAN_ACTIVE → (SUCCEEDED | FAILED) → FLUSHED → DONE

No invocation reaches DONE without passing through FLUSHED, and a record
can enter SPAN_ACTIVE only once, so one record never owns two root spans.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .models import HandlerResult


class InvocationState(str, Enum):
    """Lifecycle states of one invocation."""
    NOT_STARTED = "not_started"
    SPAN_ACTIVE = "span_active"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    FLUSHED = "flushed"
    DONE = "done"


_TRANSITIONS: Dict[InvocationState, FrozenSet[InvocationState]] = {
    InvocationState.NOT_STARTED: frozenset({InvocationState.SPAN_ACTIVE}),
    InvocationState.SPAN_ACTIVE: frozenset({InvocationState.SUCCEEDED, InvocationState.FAILED}),
    InvocationState.SUCCEEDED: frozenset({InvocationState.FLUSHED}),
    InvocationState.FAILED: frozenset({InvocationState.FLUSHED}),
    InvocationState.FLUSHED: frozenset({InvocationState.DONE}),
    InvocationState.DONE: frozenset(),
}


class InvocationStateError(RuntimeError):
    """Raised on an illegal lifecycle transition."""


def detect_trigger(event: Any) -> str:
    """
    Map a Lambda event to an OpenTelemetry ``faas.trigger`` value.

    Only the envelope is inspected (EventBridge schedule, API Gateway,
    SQS/SNS/S3 records); the payload itself is never interpreted.
    """
    if not isinstance(event, Mapping):
        return "other"
    if event.get("source") == "aws.events" or event.get("detail-type") == "Scheduled Event":
        return "timer"
    if "requestContext" in event or "httpMethod" in event:
        return "http"
    records = event.get("Records")
    if isinstance(records, list) and records:
        first = records[0] if isinstance(records[0], Mapping) else {}
        source = first.get("eventSource") or first.get("EventSource") or ""
        if source in ("aws:s3", "aws:dynamodb"):
            return "datasource"
        return "pubsub"
    return "other"


@dataclass
class InvocationRecord:
    """
    Ephemeral record of one invocation.

    Built from the opaque event/context the runtime hands the handler; only
    trigger metadata is read from them.
    """
    trigger: str = "other"
    invocation_id: Optional[str] = None
    event_id: Optional[str] = None
    function_arn: Optional[str] = None
    remaining_time_ms: Optional[int] = None
    cold_start: bool = False
    state: InvocationState = InvocationState.NOT_STARTED
    result: Optional[HandlerResult] = None
    history: list = field(default_factory=list)

    @classmethod
    def from_lambda(cls, event: Any, context: Any, cold_start: bool = False) -> "InvocationRecord":
        remaining = None
        get_remaining = getattr(context, "get_remaining_time_in_millis", None)
        if callable(get_remaining):
            remaining = get_remaining()

        event_id = event.get("id") if isinstance(event, Mapping) else None
        return cls(
            trigger=detect_trigger(event),
            invocation_id=getattr(context, "aws_request_id", None),
            event_id=str(event_id) if event_id is not None else None,
            function_arn=getattr(context, "invoked_function_arn", None),
            remaining_time_ms=remaining,
            cold_start=cold_start,
        )

    def advance(self, new_state: InvocationState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvocationStateError(
                f"Illegal invocation transition {self.state.value} -> {new_state.value}"
            )
        self.history.append(self.state)
        self.state = new_state

    @property
    def account_id(self) -> Optional[str]:
        # arn:aws:lambda:<region>:<account>:function:<name>
        if not self.function_arn:
            return None
        parts = self.function_arn.split(":")
        return parts[4] if len(parts) > 4 and parts[4] else None

    def span_attributes(self) -> Dict[str, Any]:
        """Standard FaaS attributes for the root span."""
        attributes: Dict[str, Any] = {
            "faas.trigger": self.trigger,
            "faas.coldstart": self.cold_start,
        }
        if self.invocation_id:
            attributes["faas.invocation_id"] = self.invocation_id
        if self.event_id:
            attributes["cloudevents.event_id"] = self.event_id
        if self.function_arn:
            attributes["cloud.resource_id"] = self.function_arn
        if self.account_id:
            attributes["cloud.account.id"] = self.account_id
        return attributes
