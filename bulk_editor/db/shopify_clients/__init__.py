"""
Shopify GraphQL clients organized by responsibility.

This module contains specialized GraphQL clients for catalog reads and
bulk mutation jobs, plus a unified client that shares one session.
"""

from .base_client import BaseShopifyGraphQLClient
from .bulk_client import ShopifyBulkClient
from .product_client import ShopifyProductClient, build_product_filter
from .unified_client import ShopifyGraphQLClient

__all__ = [
    "BaseShopifyGraphQLClient",
    "ShopifyProductClient",
    "ShopifyBulkClient",
    "ShopifyGraphQLClient",
    "build_product_filter",
]
