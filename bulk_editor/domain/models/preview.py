"""
In-memory preview of a transformation.

A preview is recomputed from live catalog data on every request and is
never persisted. Undo rebuilds one from a stored inverse payload.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from .transformations import TransformationSpec


class PreviewVariant(BaseModel):
    """Before/after price of a single variant."""

    variant_id: str
    title: str = ""
    before: Decimal
    after: Decimal


class PreviewItem(BaseModel):
    """
    Before/after state of one product.

    Price previews fill ``variants``; tag previews fill ``tags_after``.
    """

    record_id: str
    title: str = ""
    status: str = ""
    tags_before: List[str] = Field(default_factory=list)
    tags_after: Optional[List[str]] = None
    variants: List[PreviewVariant] = Field(default_factory=list)


class PreviewResult(BaseModel):
    """Transformation plus the ordered list of affected products."""

    spec: TransformationSpec
    items: List[PreviewItem] = Field(default_factory=list)
    currency_code: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def variant_count(self) -> int:
        return sum(len(item.variants) for item in self.items)
