"""
Shopify GraphQL client for catalog reads.

This module handles the product queries the bulk editor needs: the
paginated listing shown to users and the batch-by-id lookup used to
compute previews. Prices are normalized to ``Money``.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from bulk_editor.db.queries import PRODUCTS_BY_ID_QUERY, PRODUCTS_LISTING_QUERY
from bulk_editor.domain.value_objects.money import Money
from bulk_editor.utils.error_handler import ShopifyAPIException, ValidationException
from bulk_editor.utils.retry_handler import execute_batch

from .base_client import BaseShopifyGraphQLClient, edges_or_nodes

logger = logging.getLogger(__name__)

PRODUCT_STATUSES = ("ANY", "ACTIVE", "DRAFT", "ARCHIVED")
DEFAULT_PAGE_SIZE = 25
# Máximo de ids aceptado por nodes(ids:)
NODES_LOOKUP_LIMIT = 250


def build_product_filter(status: Optional[str] = None, tags: Optional[List[str]] = None) -> Optional[str]:
    """
    Build the search string for the products connection.

    Args:
        status: ANY, ACTIVE, DRAFT or ARCHIVED
        tags: Tags that products must all have

    Returns:
        Filter such as ``status:active AND tag:'sale'``, or None for no filter
    """
    filters = []

    if status and status.upper() != "ANY":
        filters.append(f"status:{status.lower()}")

    for tag in tags or []:
        tag = tag.strip()
        if tag:
            escaped = tag.replace("'", "\\'")
            filters.append(f"tag:'{escaped}'")

    return " AND ".join(filters) if filters else None


def normalize_product(node: Dict[str, Any], currency_code: str) -> Dict[str, Any]:
    """Map a Product node to the shape used across the service layer."""
    return {
        "id": node["id"],
        "title": node.get("title") or "",
        "status": node.get("status") or "",
        "tags": list(node.get("tags") or []),
        "variants": [
            {
                "id": variant["id"],
                "title": variant.get("title") or "",
                "price": Money.parse(variant.get("price")).amount,
                "currency_code": currency_code,
            }
            for variant in edges_or_nodes(node.get("variants"))
        ],
    }


class ShopifyProductClient(BaseShopifyGraphQLClient):
    """
    Specialized client for Shopify catalog reads.
    """

    async def list_products(
        self,
        status: Optional[str] = None,
        tags: Optional[List[str]] = None,
        cursor: Optional[str] = None,
        direction: str = "forward",
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """
        Fetch one page of products.

        Args:
            status: Product status filter (ANY, ACTIVE, DRAFT, ARCHIVED)
            tags: Tags filter
            cursor: Pagination cursor
            direction: ``forward`` (after cursor) or ``backward`` (before cursor)
            page_size: Products per page (max 250)

        Returns:
            Dict with products, page_info, available_tags and currency_code
        """
        if status and status.upper() not in PRODUCT_STATUSES:
            raise ValidationException(f"Unknown product status: {status}", field="status", invalid_value=status)
        if direction not in ("forward", "backward"):
            raise ValidationException(f"Unknown direction: {direction}", field="direction", invalid_value=direction)

        page_size = max(1, min(page_size, 250))
        backward = direction == "backward"
        variables: Dict[str, Any] = {
            "query": build_product_filter(status, tags),
            "first": None if backward else page_size,
            "last": page_size if backward else None,
            "after": None if backward else cursor,
            "before": cursor if backward else None,
        }
        variables = {key: value for key, value in variables.items() if value is not None}

        try:
            result = await self._execute_query(PRODUCTS_LISTING_QUERY, variables)
        except ShopifyAPIException:
            raise
        except Exception as e:
            logger.error(f"Error fetching products: {e}")
            raise ShopifyAPIException(f"Failed to fetch products: {str(e)}") from e

        currency_code = (result.get("shop") or {}).get("currencyCode") or ""
        connection = result.get("products") or {}
        available_tags = set()
        products = []

        for edge in connection.get("edges", []):
            product = normalize_product(edge["node"], currency_code)
            product["cursor"] = edge.get("cursor")
            available_tags.update(product["tags"])
            products.append(product)

        page_info = connection.get("pageInfo") or {}
        return {
            "products": products,
            "page_info": {
                "has_next_page": bool(page_info.get("hasNextPage")),
                "has_previous_page": bool(page_info.get("hasPreviousPage")),
                "start_cursor": page_info.get("startCursor"),
                "end_cursor": page_info.get("endCursor"),
            },
            "available_tags": sorted(available_tags, key=str.lower),
            "currency_code": currency_code,
        }

    async def get_products_by_ids(self, product_ids: List[str]) -> Tuple[List[Dict[str, Any]], str]:
        """
        Fetch products by id, preserving the requested order.

        Ids that do not resolve to a Product are skipped. Large id lists
        are split into chunks executed in bounded concurrent windows.

        Args:
            product_ids: Product GIDs

        Returns:
            Tuple of (normalized products, shop currency code)
        """
        if not product_ids:
            return [], ""

        chunks = [product_ids[i : i + NODES_LOOKUP_LIMIT] for i in range(0, len(product_ids), NODES_LOOKUP_LIMIT)]

        responses = await execute_batch(
            self.transport,
            chunks,
            lambda chunk: (PRODUCTS_BY_ID_QUERY, {"ids": chunk}),
            monitor=self.monitor,
        )

        currency_code = ""
        by_id: Dict[str, Dict[str, Any]] = {}
        for response in responses:
            self._raise_for_errors(response)
            data = response.get("data") or {}
            currency_code = currency_code or (data.get("shop") or {}).get("currencyCode") or ""
            for node in data.get("nodes") or []:
                if node and node.get("__typename") == "Product":
                    by_id[node["id"]] = node

        products = [normalize_product(by_id[pid], currency_code) for pid in product_ids if pid in by_id]
        logger.info(f"Fetched {len(products)}/{len(product_ids)} products by id")
        return products, currency_code
