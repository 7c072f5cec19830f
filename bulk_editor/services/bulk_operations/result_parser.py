"""
Parser del archivo JSONL de resultados de un job bulk.

Cada línea es la respuesta de una mutation. Las líneas se procesan de
forma independiente: una línea inválida se registra como error genérico
y no afecta a los contadores ni detiene el resto del parseo.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from bulk_editor.domain.models import BulkOperationResults, ResultError
from bulk_editor.utils.error_handler import ResultParseException

logger = logging.getLogger(__name__)


def _field_path(field: Any) -> Optional[str]:
    if not field:
        return None
    if isinstance(field, (list, tuple)):
        return ".".join(str(part) for part in field)
    return str(field)


def _record_id(
    item: Dict[str, Any],
    mutation_payload: Optional[Dict[str, Any]],
    record_ids: Optional[Sequence[str]] = None,
) -> Optional[str]:
    """
    ID del producto de la línea.

    Shopify identifica cada línea con ``__lineNumber`` (base 0, mismo orden
    que el archivo enviado); si no hay ids del job se usa el producto
    devuelto por la mutation o las variables de la línea.
    """
    line_number = item.get("__lineNumber")
    if record_ids and isinstance(line_number, int) and 0 <= line_number < len(record_ids):
        return record_ids[line_number]

    if item.get("__parentId"):
        return item["__parentId"]

    product = (mutation_payload or {}).get("product") or {}
    if product.get("id"):
        return product["id"]

    if item.get("productId"):
        return item["productId"]

    line_input = item.get("input")
    if isinstance(line_input, dict) and line_input.get("id"):
        return line_input["id"]

    return None


def _collect_user_errors(item: Dict[str, Any], record_ids: Optional[Sequence[str]] = None) -> List[ResultError]:
    """
    Extrae los userErrors de una línea.

    Busca en el nivel superior, bajo cualquier campo de ``data`` y en la
    lista ``errors`` de GraphQL.
    """
    errors: List[ResultError] = []

    for error in item.get("userErrors") or []:
        errors.append(
            ResultError(
                message=error.get("message", "Unknown error"),
                field=_field_path(error.get("field")),
                record_id=_record_id(item, None, record_ids),
            )
        )

    data = item.get("data")
    if isinstance(data, dict):
        for mutation_payload in data.values():
            if not isinstance(mutation_payload, dict):
                continue
            for error in mutation_payload.get("userErrors") or []:
                errors.append(
                    ResultError(
                        message=error.get("message", "Unknown error"),
                        field=_field_path(error.get("field")),
                        record_id=_record_id(item, mutation_payload, record_ids),
                    )
                )

    for error in item.get("errors") or []:
        errors.append(
            ResultError(
                message=error.get("message", "Unknown error") if isinstance(error, dict) else str(error),
                record_id=_record_id(item, None, record_ids),
            )
        )

    return errors


def _parse_line(line: str, line_number: int) -> Dict[str, Any]:
    try:
        item = json.loads(line)
    except json.JSONDecodeError as e:
        raise ResultParseException(line_number, str(e)) from e

    if not isinstance(item, dict):
        raise ResultParseException(line_number, f"expected an object, got {type(item).__name__}")

    return item


def parse_result_lines(text: str, record_ids: Optional[Sequence[str]] = None) -> BulkOperationResults:
    """
    Parsea el contenido de un archivo de resultados.

    Args:
        text: Contenido JSONL
        record_ids: IDs de producto en el orden de las líneas del job

    Returns:
        BulkOperationResults: successful + failed == líneas válidas
    """
    results = BulkOperationResults()

    for line_number, line in enumerate((text or "").splitlines(), start=1):
        line = line.strip()
        if not line:
            continue

        try:
            item = _parse_line(line, line_number)
        except ResultParseException as e:
            logger.warning(f"{e.message}: {e.reason}")
            results.errors.append(ResultError(message=e.message))
            continue

        line_errors = _collect_user_errors(item, record_ids)
        if line_errors:
            results.failed += 1
            results.errors.extend(line_errors)
        else:
            results.successful += 1

    logger.info(f"Results processed: {results.successful} successful, {results.failed} failed")
    return results
