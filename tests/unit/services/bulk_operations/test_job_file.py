"""Tests para el archivo JSONL de variables del job."""

import json
from decimal import Decimal

from bulk_editor.db.queries import PRODUCT_UPDATE_TAGS_MUTATION, PRODUCT_VARIANTS_BULK_UPDATE_MUTATION
from bulk_editor.domain.models import (
    PreviewItem,
    PreviewResult,
    PreviewVariant,
    PriceAdjustment,
    PriceDirection,
    TagAction,
    TagUpdate,
)
from bulk_editor.services.bulk_operations.job_file import build_job_file, build_job_lines, mutation_for


class TestJobFile:
    """Tests para build_job_lines / build_job_file."""

    def test_price_line_contains_variants_with_new_price(self):
        """Debe generar una línea por producto con precios de dos decimales."""
        preview = PreviewResult(
            spec=PriceAdjustment(direction=PriceDirection.INCREASE, percentage=Decimal("10")),
            items=[
                PreviewItem(
                    record_id="gid://shopify/Product/1",
                    variants=[
                        PreviewVariant(variant_id="gid://shopify/ProductVariant/10", before=Decimal("20"), after=Decimal("22")),
                    ],
                )
            ],
        )

        assert build_job_lines(preview) == [
            {
                "productId": "gid://shopify/Product/1",
                "variants": [{"id": "gid://shopify/ProductVariant/10", "price": "22.00"}],
            }
        ]
        assert mutation_for(preview.spec) == PRODUCT_VARIANTS_BULK_UPDATE_MUTATION

    def test_tag_line_contains_final_tags(self):
        """Debe enviar la lista final completa de tags."""
        preview = PreviewResult(
            spec=TagUpdate(action=TagAction.ADD, tags=["new"]),
            items=[PreviewItem(record_id="gid://shopify/Product/2", tags_before=["sale"], tags_after=["sale", "new"])],
        )

        assert build_job_lines(preview) == [{"input": {"id": "gid://shopify/Product/2", "tags": ["sale", "new"]}}]
        assert mutation_for(preview.spec) == PRODUCT_UPDATE_TAGS_MUTATION

    def test_file_is_one_json_object_per_line(self):
        """Debe serializar como JSONL UTF-8 terminado en salto de línea."""
        preview = PreviewResult(
            spec=TagUpdate(action=TagAction.REPLACE, tags=["rebajas ñ"]),
            items=[
                PreviewItem(record_id="gid://shopify/Product/1", tags_after=["rebajas ñ"]),
                PreviewItem(record_id="gid://shopify/Product/2", tags_after=["rebajas ñ"]),
            ],
        )

        content = build_job_file(preview)
        lines = content.decode("utf-8").splitlines()

        assert content.endswith(b"\n")
        assert len(lines) == 2
        assert json.loads(lines[1]) == {"input": {"id": "gid://shopify/Product/2", "tags": ["rebajas ñ"]}}
        assert "ñ" in lines[0]
