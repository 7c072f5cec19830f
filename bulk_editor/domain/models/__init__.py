"""
Domain models for bulk catalog edits.

These models represent transformations, previews, persisted payloads
and the Operation record with its lifecycle.
"""

from .operation import (
    BulkOperationResults,
    Operation,
    OperationStatus,
    OperationType,
    PollResult,
    RemoteJobStatus,
    ResultError,
)
from .payloads import PricePayload, TagPayload, build_payloads, dump_payload, load_payload, payload_to_preview
from .preview import PreviewItem, PreviewResult, PreviewVariant
from .transformations import PriceAdjustment, PriceDirection, TagAction, TagUpdate, TransformationSpec

__all__ = [
    "BulkOperationResults",
    "Operation",
    "OperationStatus",
    "OperationType",
    "PollResult",
    "RemoteJobStatus",
    "ResultError",
    "PricePayload",
    "TagPayload",
    "build_payloads",
    "dump_payload",
    "load_payload",
    "payload_to_preview",
    "PreviewItem",
    "PreviewResult",
    "PreviewVariant",
    "PriceAdjustment",
    "PriceDirection",
    "TagAction",
    "TagUpdate",
    "TransformationSpec",
]
