"""
Serialización del archivo JSONL de un job bulk.

Cada línea contiene exactamente las variables de la mutation para un
producto: sus variantes con el precio nuevo, o su lista final de tags.
"""

import json
from typing import Any, Dict, List

from bulk_editor.db.queries import PRODUCT_UPDATE_TAGS_MUTATION, PRODUCT_VARIANTS_BULK_UPDATE_MUTATION
from bulk_editor.domain.models import PreviewResult, PriceAdjustment, TagUpdate


def mutation_for(spec: PriceAdjustment | TagUpdate) -> str:
    """
    Obtiene la mutation que Shopify ejecuta por cada línea.

    Args:
        spec: Transformación del job

    Returns:
        str: Mutation GraphQL
    """
    match spec:
        case PriceAdjustment():
            return PRODUCT_VARIANTS_BULK_UPDATE_MUTATION
        case TagUpdate():
            return PRODUCT_UPDATE_TAGS_MUTATION
    raise TypeError(f"Unsupported transformation: {type(spec).__name__}")


def build_job_lines(preview: PreviewResult) -> List[Dict[str, Any]]:
    """
    Construye las variables de cada línea a partir del preview.

    Args:
        preview: Preview con los valores "después"

    Returns:
        List[Dict]: Una entrada por producto afectado
    """
    match preview.spec:
        case PriceAdjustment():
            return [
                {
                    "productId": item.record_id,
                    "variants": [{"id": variant.variant_id, "price": f"{variant.after:.2f}"} for variant in item.variants],
                }
                for item in preview.items
            ]
        case TagUpdate() as update:
            return [
                {
                    "input": {
                        "id": item.record_id,
                        "tags": list(item.tags_after if item.tags_after is not None else update.apply(item.tags_before)),
                    }
                }
                for item in preview.items
            ]
    raise TypeError(f"Unsupported transformation: {type(preview.spec).__name__}")


def serialize_jsonl(lines: List[Dict[str, Any]]) -> bytes:
    """Serializa las líneas como JSONL (UTF-8, una línea por objeto)."""
    return "".join(json.dumps(line, ensure_ascii=False, separators=(",", ":")) + "\n" for line in lines).encode("utf-8")


def build_job_file(preview: PreviewResult) -> bytes:
    """Archivo completo de variables para el job."""
    return serialize_jsonl(build_job_lines(preview))
