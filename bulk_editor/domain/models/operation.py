"""
Operation domain model.

An Operation is this system's persisted record of one bulk job attempt:
the forward and inverse payloads, the remote job id and the outcome.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .payloads import PricePayload, TagPayload


class OperationStatus(str, Enum):
    """Lifecycle of an Operation: CREATED -> RUNNING -> terminal."""

    CREATED = "CREATED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"

    @classmethod
    def active(cls) -> tuple["OperationStatus", ...]:
        return (cls.CREATED, cls.RUNNING)

    @classmethod
    def terminal(cls) -> tuple["OperationStatus", ...]:
        return (cls.COMPLETED, cls.FAILED, cls.EXPIRED)

    @property
    def is_terminal(self) -> bool:
        return self in OperationStatus.terminal()


class OperationType(str, Enum):
    """Kind of transformation an Operation applies."""

    PRICE_ADJUSTMENT = "PRICE_ADJUSTMENT"
    TAG_UPDATE = "TAG_UPDATE"
    # Reserved; never produced
    STATUS_CHANGE = "STATUS_CHANGE"


class RemoteJobStatus(str, Enum):
    """Status values reported by the remote bulk operation API."""

    CREATED = "CREATED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    CANCELING = "CANCELING"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self not in (RemoteJobStatus.CREATED, RemoteJobStatus.RUNNING, RemoteJobStatus.CANCELING)


class ResultError(BaseModel):
    """One failure entry of a result summary."""

    message: str
    record_id: Optional[str] = None
    variant_id: Optional[str] = None
    field: Optional[str] = None


class BulkOperationResults(BaseModel):
    """Per-record outcome counts parsed from a result file."""

    successful: int = 0
    failed: int = 0
    errors: List[ResultError] = Field(default_factory=list)

    def failure_summary(self, limit: int = 5) -> Optional[str]:
        """Short error message for operations with failed records."""
        if self.failed <= 0:
            return None
        first_errors = "; ".join(error.message for error in self.errors[:limit])
        return f"{self.failed} items failed. First errors: {first_errors}"


@dataclass
class PollResult:
    """
    Snapshot of a remote job's state.

    Attributes:
        id: Remote bulk operation id
        status: Remote status
        error_code: Remote error code, or a locally synthesized one
            (``NOT_FOUND`` or ``POLL_ERROR``)
        object_count: Number of objects processed
        file_size: Result file size in bytes
        url: Result file URL (only for completed jobs)
        partial_data_url: Partial result URL for failed jobs
        created_at: Remote creation time
        completed_at: Remote completion time
    """

    id: str
    status: RemoteJobStatus
    error_code: Optional[str] = None
    object_count: Optional[int] = None
    file_size: Optional[int] = None
    url: Optional[str] = None
    partial_data_url: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "PollResult":
        """Build from a ``BulkOperation`` GraphQL node."""
        object_count = node.get("objectCount")
        file_size = node.get("fileSize")
        return cls(
            id=node["id"],
            status=RemoteJobStatus(node.get("status", "FAILED")),
            error_code=node.get("errorCode"),
            object_count=int(object_count) if object_count is not None else None,
            file_size=int(file_size) if file_size is not None else None,
            url=node.get("url"),
            partial_data_url=node.get("partialDataUrl"),
            created_at=parse_timestamp(node.get("createdAt")),
            completed_at=parse_timestamp(node.get("completedAt")),
        )

    @classmethod
    def synthesized(cls, bulk_operation_id: str, status: RemoteJobStatus, error_code: str) -> "PollResult":
        """Local stand-in for a job the remote side could not report on."""
        return cls(id=bulk_operation_id, status=status, error_code=error_code, completed_at=datetime.now(UTC))


@dataclass
class Operation:
    """
    Domain model of a persisted bulk job attempt.

    ``payload`` and ``inverse_payload`` are immutable once the job is
    submitted; only status, results and undo bookkeeping change later.
    """

    shop: str
    type: OperationType
    payload: Union[PricePayload, TagPayload]
    inverse_payload: Optional[Union[PricePayload, TagPayload]] = None
    status: OperationStatus = OperationStatus.CREATED
    id: Optional[str] = None
    bulk_operation_id: Optional[str] = None
    result_url: Optional[str] = None
    results: Optional[BulkOperationResults] = None
    error_message: Optional[str] = None
    undone: bool = False
    undone_at: Optional[datetime] = None
    undone_by_operation_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def record_count(self) -> int:
        return len(self.payload.records)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
