"""
Transformation specs applied by a bulk job.

A transformation is a tagged union discriminated by ``kind``. Adding a new
kind means adding one model here plus one match arm in each of: preview
computation, job-line serialization, inverse computation and undo
reconstruction.
"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

MAX_PERCENTAGE = Decimal("1000")


class PriceDirection(str, Enum):
    """Direction of a percentage price adjustment."""

    INCREASE = "increase"
    DECREASE = "decrease"

    def flipped(self) -> "PriceDirection":
        return PriceDirection.DECREASE if self is PriceDirection.INCREASE else PriceDirection.INCREASE


class TagAction(str, Enum):
    """How a tag update combines with the tags a product already has."""

    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"


class PriceAdjustment(BaseModel):
    """
    Percentage adjustment applied to every variant price of a product.

    Range checks (0 < percentage <= 1000) are enforced by the preview
    builder so they surface as field-level validation errors.
    """

    kind: Literal["PRICE_ADJUSTMENT"] = "PRICE_ADJUSTMENT"
    direction: PriceDirection = Field(..., description="increase or decrease")
    percentage: Decimal = Field(..., description="Percentage to apply, 0 < p <= 1000")

    def multiplier(self) -> Decimal:
        """Factor ``1 +/- p/100``, floored at zero."""
        delta = self.percentage / Decimal("100")
        base = Decimal("1") + delta if self.direction is PriceDirection.INCREASE else Decimal("1") - delta
        return max(base, Decimal("0"))

    def inverse(self) -> "PriceAdjustment":
        """Same percentage in the opposite direction."""
        return PriceAdjustment(direction=self.direction.flipped(), percentage=self.percentage)


class TagUpdate(BaseModel):
    """Tag mutation applied to every selected product."""

    kind: Literal["TAG_UPDATE"] = "TAG_UPDATE"
    action: TagAction = Field(..., description="add, remove or replace")
    tags: List[str] = Field(default_factory=list, description="Distinct, trimmed tags")

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v):
        """Quita espacios, descarta vacíos y elimina duplicados exactos preservando el orden."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        seen = []
        for tag in v:
            tag = str(tag).strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    def apply(self, existing: List[str]) -> List[str]:
        """
        Compute the tags a product ends up with.

        add keeps existing order then appends new tags; remove is
        case-sensitive; replace returns exactly the given tags.
        """
        if self.action is TagAction.ADD:
            return list(existing) + [tag for tag in self.tags if tag not in existing]
        if self.action is TagAction.REMOVE:
            return [tag for tag in existing if tag not in self.tags]
        return list(self.tags)


TransformationSpec = Annotated[Union[PriceAdjustment, TagUpdate], Field(discriminator="kind")]

transformation_adapter: TypeAdapter = TypeAdapter(TransformationSpec)


def parse_transformation(data) -> Union[PriceAdjustment, TagUpdate]:
    """Validate a raw dict into the matching transformation model."""
    return transformation_adapter.validate_python(data)
