"""
Structured events emitted at operation state transitions.

Each event is logged with ``extra`` fields and kept by the recorder so
callers and tests can assert on transitions instead of log text.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from bulk_editor.core.logging_config import log_operation_event
from bulk_editor.domain.models import Operation

OPERATION_CREATED = "operation.created"
OPERATION_RUNNING = "operation.running"
OPERATION_START_FAILED = "operation.start_failed"
OPERATION_FINISHED = "operation.finished"
OPERATION_SWEPT = "operation.swept"
UNDO_INITIATED = "operation.undo_initiated"
UNDO_COMPLETED = "operation.undo_completed"


@dataclass(frozen=True)
class OperationEvent:
    """A single state transition of an Operation."""

    name: str
    operation_id: str
    shop: str
    status: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class OperationEventRecorder:
    """
    Collects operation events and forwards them to listeners.

    Args:
        max_events: Number of recent events kept in memory
        listeners: Callables invoked with every event
    """

    def __init__(self, max_events: int = 500, listeners: Optional[List[Callable[[OperationEvent], None]]] = None):
        self._events: Deque[OperationEvent] = deque(maxlen=max_events)
        self._listeners = list(listeners or [])

    def record(self, name: str, operation: Operation, **data: Any) -> OperationEvent:
        """Record an event for ``operation`` in its current state."""
        event = OperationEvent(
            name=name,
            operation_id=operation.id or "",
            shop=operation.shop,
            status=operation.status.value,
            data=data,
        )
        self._events.append(event)

        log_operation_event(
            name,
            event.operation_id,
            event.shop,
            status=event.status,
            operation_type=operation.type.value,
            **data,
        )

        for listener in self._listeners:
            listener(event)

        return event

    @property
    def events(self) -> List[OperationEvent]:
        return list(self._events)

    def names(self, operation_id: Optional[str] = None) -> List[str]:
        """Event names in order, optionally for a single operation."""
        return [event.name for event in self._events if operation_id is None or event.operation_id == operation_id]

    def clear(self) -> None:
        self._events.clear()
