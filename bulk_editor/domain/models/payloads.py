"""
Persisted operation payloads.

Forward and inverse payloads are stored as JSON text with a
``schema_version`` tag and parsed back with validation on read, so a
reader never works with an unchecked dict.
"""

from decimal import Decimal
from typing import Annotated, List, Literal, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter

from .preview import PreviewItem, PreviewResult, PreviewVariant
from .transformations import PriceAdjustment, TagAction, TagUpdate

PAYLOAD_SCHEMA_VERSION = 1


class VariantPriceChange(BaseModel):
    variant_id: str
    title: str = ""
    before: Decimal
    after: Decimal


class PriceRecord(BaseModel):
    record_id: str
    title: str = ""
    variants: List[VariantPriceChange] = Field(default_factory=list)


class TagRecord(BaseModel):
    record_id: str
    title: str = ""
    before: List[str] = Field(default_factory=list)
    after: List[str] = Field(default_factory=list)


class PricePayload(BaseModel):
    """Price adjustment plus per-variant before/after snapshot."""

    schema_version: Literal[1] = PAYLOAD_SCHEMA_VERSION
    kind: Literal["PRICE_ADJUSTMENT"] = "PRICE_ADJUSTMENT"
    adjustment: PriceAdjustment
    records: List[PriceRecord] = Field(default_factory=list)


class TagPayload(BaseModel):
    """Tag update plus per-product before/after snapshot."""

    schema_version: Literal[1] = PAYLOAD_SCHEMA_VERSION
    kind: Literal["TAG_UPDATE"] = "TAG_UPDATE"
    update: TagUpdate
    records: List[TagRecord] = Field(default_factory=list)


OperationPayload = Annotated[Union[PricePayload, TagPayload], Field(discriminator="kind")]

payload_adapter: TypeAdapter = TypeAdapter(OperationPayload)


def dump_payload(payload: Union[PricePayload, TagPayload]) -> str:
    """Serialize a payload to JSON text for storage."""
    return payload.model_dump_json()


def load_payload(raw: str | bytes | None) -> Union[PricePayload, TagPayload, None]:
    """Parse stored JSON text back into a validated payload."""
    if raw is None:
        return None
    return payload_adapter.validate_json(raw)


def build_payloads(preview: PreviewResult) -> Tuple[Union[PricePayload, TagPayload], Union[PricePayload, TagPayload]]:
    """
    Build forward and inverse payloads from the same preview snapshot.

    The inverse swaps before/after for every record; for prices the
    direction is flipped, for tags the inverse replaces each product's
    tags with exactly the tags it had before.
    """
    match preview.spec:
        case PriceAdjustment() as adjustment:
            forward_records = [
                PriceRecord(
                    record_id=item.record_id,
                    title=item.title,
                    variants=[
                        VariantPriceChange(
                            variant_id=variant.variant_id,
                            title=variant.title,
                            before=variant.before,
                            after=variant.after,
                        )
                        for variant in item.variants
                    ],
                )
                for item in preview.items
            ]
            inverse_records = [
                PriceRecord(
                    record_id=record.record_id,
                    title=record.title,
                    variants=[
                        VariantPriceChange(
                            variant_id=variant.variant_id,
                            title=variant.title,
                            before=variant.after,
                            after=variant.before,
                        )
                        for variant in record.variants
                    ],
                )
                for record in forward_records
            ]
            return (
                PricePayload(adjustment=adjustment, records=forward_records),
                PricePayload(adjustment=adjustment.inverse(), records=inverse_records),
            )

        case TagUpdate() as update:
            forward_records = [
                TagRecord(
                    record_id=item.record_id,
                    title=item.title,
                    before=list(item.tags_before),
                    after=list(item.tags_after if item.tags_after is not None else update.apply(item.tags_before)),
                )
                for item in preview.items
            ]
            inverse_records = [
                TagRecord(record_id=record.record_id, title=record.title, before=record.after, after=record.before)
                for record in forward_records
            ]
            return (
                TagPayload(update=update, records=forward_records),
                TagPayload(update=TagUpdate(action=TagAction.REPLACE, tags=[]), records=inverse_records),
            )

    raise TypeError(f"Unsupported transformation: {type(preview.spec).__name__}")


def payload_to_preview(payload: Union[PricePayload, TagPayload]) -> PreviewResult:
    """
    Rebuild a preview from a stored payload without touching the catalog.

    Used by undo: the stored snapshot is trusted even if live data has
    changed since the original job ran.
    """
    match payload:
        case PricePayload():
            return PreviewResult(
                spec=payload.adjustment,
                items=[
                    PreviewItem(
                        record_id=record.record_id,
                        title=record.title,
                        variants=[
                            PreviewVariant(
                                variant_id=variant.variant_id,
                                title=variant.title,
                                before=variant.before,
                                after=variant.after,
                            )
                            for variant in record.variants
                        ],
                    )
                    for record in payload.records
                ],
            )

        case TagPayload():
            return PreviewResult(
                spec=payload.update,
                items=[
                    PreviewItem(
                        record_id=record.record_id,
                        title=record.title,
                        tags_before=list(record.before),
                        tags_after=list(record.after),
                    )
                    for record in payload.records
                ],
            )

    raise TypeError(f"Unsupported payload: {type(payload).__name__}")
