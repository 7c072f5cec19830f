"""
Unified Shopify GraphQL client that combines the specialized clients.

This module provides the single catalog gateway the bulk operations
service depends on, delegating to the product and bulk clients while
sharing one session, transport and rate limit monitor.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .base_client import BaseShopifyGraphQLClient
from .bulk_client import ShopifyBulkClient
from .product_client import ShopifyProductClient

logger = logging.getLogger(__name__)


class ShopifyGraphQLClient(BaseShopifyGraphQLClient):
    """
    Unified Shopify GraphQL client for the bulk editor.
    """

    def __init__(self, *args, **kwargs):
        """Initialize the unified client with all specialized clients."""
        super().__init__(*args, **kwargs)

        self.products = ShopifyProductClient(settings=self.settings)
        self.bulk = ShopifyBulkClient(settings=self.settings)
        self._share_with_specialized_clients()

    def _share_with_specialized_clients(self):
        for client in (self.products, self.bulk):
            client._share_from(self)

    async def initialize(self, test_connection: bool = True):
        """
        Initialize the unified client and share its session.
        """
        await super().initialize(test_connection=test_connection)
        self._share_with_specialized_clients()
        logger.info("✅ Unified Shopify GraphQL client initialized with all specialized clients")

    async def close(self):
        """Close the shared session."""
        await super().close()
        for client in (self.products, self.bulk):
            client.session = None

    # =============================================================================
    # PRODUCT OPERATIONS - Delegate to ProductClient
    # =============================================================================

    async def list_products(
        self,
        status: Optional[str] = None,
        tags: Optional[List[str]] = None,
        cursor: Optional[str] = None,
        direction: str = "forward",
        page_size: int = 25,
    ) -> Dict[str, Any]:
        """Delegate to product client."""
        return await self.products.list_products(status, tags, cursor, direction, page_size)

    async def get_products_by_ids(self, product_ids: List[str]) -> Tuple[List[Dict[str, Any]], str]:
        """Delegate to product client."""
        return await self.products.get_products_by_ids(product_ids)

    # =============================================================================
    # BULK OPERATIONS - Delegate to BulkClient
    # =============================================================================

    async def create_staged_upload(self, filename: str = "bulk_op_vars.jsonl") -> Dict[str, Any]:
        """Delegate to bulk client."""
        return await self.bulk.create_staged_upload(filename)

    async def upload_staged_file(self, target: Dict[str, Any], content: bytes) -> str:
        """Delegate to bulk client."""
        return await self.bulk.upload_staged_file(target, content)

    async def run_bulk_mutation(self, mutation: str, staged_upload_path: str) -> Dict[str, Any]:
        """Delegate to bulk client."""
        return await self.bulk.run_bulk_mutation(mutation, staged_upload_path)

    async def get_bulk_operation(self, bulk_operation_id: str) -> Optional[Dict[str, Any]]:
        """Delegate to bulk client."""
        return await self.bulk.get_bulk_operation(bulk_operation_id)

    async def get_current_bulk_operation(self) -> Optional[Dict[str, Any]]:
        """Delegate to bulk client."""
        return await self.bulk.get_current_bulk_operation()

    async def download_result_file(self, url: str) -> str:
        """Delegate to bulk client."""
        return await self.bulk.download_result_file(url)
