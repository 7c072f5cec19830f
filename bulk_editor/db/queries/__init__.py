"""
GraphQL queries for the Shopify Admin API.

Structure:
- products: catalog listing and by-id lookup used by previews
- bulk: staged uploads, bulk mutation submission and status polling
"""

from .bulk import *  # noqa: F403
from .products import *  # noqa: F403

__all__ = [
    # Product queries
    "PRODUCTS_LISTING_QUERY",  # noqa: F405
    "PRODUCTS_BY_ID_QUERY",  # noqa: F405
    # Bulk mutation templates
    "PRODUCT_VARIANTS_BULK_UPDATE_MUTATION",  # noqa: F405
    "PRODUCT_UPDATE_TAGS_MUTATION",  # noqa: F405
    # Bulk operation lifecycle
    "STAGED_UPLOADS_CREATE_MUTATION",  # noqa: F405
    "BULK_OPERATION_RUN_MUTATION",  # noqa: F405
    "BULK_OPERATION_STATUS_QUERY",  # noqa: F405
    "CURRENT_BULK_OPERATION_QUERY",  # noqa: F405
]
