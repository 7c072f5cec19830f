"""
Constructor de previews de transformaciones.

Este módulo valida la solicitud del usuario, obtiene el estado actual
de los productos y calcula los valores antes/después en memoria.
Nunca modifica nada en Shopify.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from bulk_editor.core.config import Settings, get_settings
from bulk_editor.domain.models import PreviewItem, PreviewResult, PreviewVariant, PriceAdjustment, TagUpdate
from bulk_editor.domain.models.transformations import MAX_PERCENTAGE
from bulk_editor.domain.value_objects import Money
from bulk_editor.services.bulk_operations.interfaces import ICatalogClient
from bulk_editor.utils.error_handler import ValidationException

logger = logging.getLogger(__name__)

NO_RECORDS_MESSAGE = "Select at least one product to preview changes."
NON_POSITIVE_PERCENTAGE_MESSAGE = "Enter a percentage greater than zero."
PERCENTAGE_TOO_LARGE_MESSAGE = "Percentage is too large."
NO_TAGS_MESSAGE = "Enter at least one tag."
NO_VARIANTS_MESSAGE = "Selected products do not have variants to update."
NO_TAG_CHANGES_MESSAGE = "Selected products already match the requested tags."


def normalize_record_ids(record_ids: Optional[List[str]]) -> List[str]:
    """Quita vacíos y duplicados preservando el orden."""
    seen: List[str] = []
    for record_id in record_ids or []:
        record_id = (record_id or "").strip()
        if record_id and record_id not in seen:
            seen.append(record_id)
    return seen


class PreviewBuilder:
    """
    Calcula previews de ajustes de precio y de tags.

    El despacho por tipo de transformación es un ``match`` exhaustivo;
    agregar un tipo nuevo requiere un brazo nuevo aquí.
    """

    def __init__(self, client: ICatalogClient, settings: Optional[Settings] = None):
        """
        Inicializa el constructor.

        Args:
            client: Cliente del catálogo (lectura por ids)
            settings: Configuración (usa la global si no se pasa)
        """
        self.client = client
        self.settings = settings or get_settings()

    def validate(self, spec: PriceAdjustment | TagUpdate, record_ids: Optional[List[str]]) -> List[str]:
        """
        Valida la solicitud antes de cualquier llamada remota.

        Args:
            spec: Transformación solicitada
            record_ids: IDs de productos seleccionados

        Returns:
            List[str]: IDs normalizados

        Raises:
            ValidationException: Con el campo que falló
        """
        ids = normalize_record_ids(record_ids)
        if not ids:
            raise ValidationException(NO_RECORDS_MESSAGE, field="record_ids", invalid_value=record_ids)

        max_records = self.settings.MAX_RECORDS_PER_JOB
        if len(ids) > max_records:
            raise ValidationException(
                f"Select at most {max_records} products per operation.",
                field="record_ids",
                invalid_value=len(ids),
            )

        match spec:
            case PriceAdjustment():
                if spec.percentage.is_nan() or spec.percentage <= 0:
                    raise ValidationException(
                        NON_POSITIVE_PERCENTAGE_MESSAGE, field="percentage", invalid_value=spec.percentage
                    )
                if spec.percentage > MAX_PERCENTAGE:
                    raise ValidationException(
                        PERCENTAGE_TOO_LARGE_MESSAGE, field="percentage", invalid_value=spec.percentage
                    )
            case TagUpdate():
                if not spec.tags:
                    raise ValidationException(NO_TAGS_MESSAGE, field="tags", invalid_value=spec.tags)
            case _:
                raise ValidationException(
                    f"Unsupported transformation: {type(spec).__name__}", field="kind", invalid_value=spec
                )

        return ids

    async def build(self, spec: PriceAdjustment | TagUpdate, record_ids: Optional[List[str]]) -> PreviewResult:
        """
        Valida y calcula el preview de una transformación.

        Args:
            spec: Transformación solicitada
            record_ids: IDs de productos seleccionados

        Returns:
            PreviewResult: Productos afectados en el orden solicitado

        Raises:
            ValidationException: Si la solicitud es inválida o nada cambiaría
        """
        ids = self.validate(spec, record_ids)
        products, currency_code = await self.client.get_products_by_ids(ids)

        match spec:
            case PriceAdjustment():
                items = self._price_items(spec, products, currency_code)
                empty_message = NO_VARIANTS_MESSAGE
            case TagUpdate():
                items = self._tag_items(spec, products)
                empty_message = NO_TAG_CHANGES_MESSAGE

        if not items:
            raise ValidationException(empty_message, field="record_ids", invalid_value=ids)

        preview = PreviewResult(spec=spec, items=items, currency_code=currency_code)
        logger.info(
            f"Preview built: {spec.kind} for {len(items)}/{len(ids)} products ({preview.variant_count} variants)"
        )
        return preview

    def _price_items(
        self, adjustment: PriceAdjustment, products: List[Dict[str, Any]], currency_code: str
    ) -> List[PreviewItem]:
        multiplier = adjustment.multiplier()
        items = []
        for product in products:
            variants = []
            for variant in product.get("variants", []):
                before = Money(amount=Decimal(str(variant["price"])))
                variants.append(
                    PreviewVariant(
                        variant_id=variant["id"],
                        title=variant.get("title", ""),
                        before=before.amount,
                        after=before.scale(multiplier).amount,
                    )
                )
            if not variants:
                continue
            items.append(
                PreviewItem(
                    record_id=product["id"],
                    title=product.get("title", ""),
                    status=product.get("status", ""),
                    tags_before=list(product.get("tags", [])),
                    variants=variants,
                )
            )
        return items

    def _tag_items(self, update: TagUpdate, products: List[Dict[str, Any]]) -> List[PreviewItem]:
        items = []
        for product in products:
            tags_before = list(product.get("tags", []))
            tags_after = update.apply(tags_before)
            if tags_after == tags_before:
                continue
            items.append(
                PreviewItem(
                    record_id=product["id"],
                    title=product.get("title", ""),
                    status=product.get("status", ""),
                    tags_before=tags_before,
                    tags_after=tags_after,
                )
            )
        return items
