"""
Base Shopify GraphQL client with common functionality.

This module provides the foundation for all Shopify GraphQL clients,
including session management, the retrying transport and basic query
execution.
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp import ClientTimeout

from bulk_editor.core.config import Settings, get_settings
from bulk_editor.utils.error_handler import RateLimitException, ShopifyAPIException
from bulk_editor.utils.retry_handler import RateLimitMonitor, RetryPolicy, RetryTransport, is_throttled

logger = logging.getLogger(__name__)


class BaseShopifyGraphQLClient:
    """
    Base client for Shopify GraphQL API operations.

    Every GraphQL call goes through a ``RetryTransport`` that handles
    throttling, backoff and the query cost budget.
    """

    def __init__(
        self,
        shop_url: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        monitor: Optional[RateLimitMonitor] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the base Shopify GraphQL client.

        Args:
            shop_url: Shop domain (defaults to SHOPIFY_SHOP_URL)
            access_token: Admin API token (defaults to SHOPIFY_ACCESS_TOKEN)
            api_version: Admin API version (defaults to SHOPIFY_API_VERSION)
            policy: Retry policy (built from settings when omitted)
            monitor: Rate limit monitor shared across calls
            settings: Settings instance (defaults to global settings)
        """
        self.settings = settings or get_settings()
        self.shop_url = shop_url or self.settings.SHOPIFY_SHOP_URL
        self.access_token = access_token or self.settings.SHOPIFY_ACCESS_TOKEN
        self.api_version = api_version or self.settings.SHOPIFY_API_VERSION

        if not self.shop_url.startswith(("http://", "https://")):
            self.shop_url = f"https://{self.shop_url}"

        self.graphql_url = f"{self.shop_url.rstrip('/')}/admin/api/{self.api_version}/graphql.json"

        self.session: Optional[aiohttp.ClientSession] = None
        self.monitor = monitor or RateLimitMonitor()
        self.transport = RetryTransport(
            self._post_graphql,
            policy=policy or RetryPolicy.from_settings(self.settings),
            monitor=self.monitor,
        )

    async def initialize(self, test_connection: bool = True):
        """
        Initialize the HTTP session and optionally test the connection.

        Raises:
            ShopifyAPIException: If initialization fails
        """
        try:
            timeout = ClientTimeout(total=self.settings.SHOPIFY_REQUEST_TIMEOUT, connect=10)
            connector = aiohttp.TCPConnector(limit=100, limit_per_host=30)

            # Sin headers por defecto: la subida de archivos va a otro host
            self.session = aiohttp.ClientSession(timeout=timeout, connector=connector)

            if test_connection:
                await self.test_connection()
            logger.info("✅ Shopify GraphQL client initialized successfully")

        except Exception as e:
            logger.error(f"❌ Failed to initialize Shopify GraphQL client: {e}")
            if self.session:
                await self.session.close()
                self.session = None
            raise ShopifyAPIException(f"Client initialization failed: {str(e)}", is_retryable=False) from e

    async def close(self):
        """Close the HTTP session and clean up resources."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("Shopify GraphQL client closed")

    def _graphql_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.access_token,
            "User-Agent": f"Catalog-Bulk-Editor/{self.api_version}",
        }

    async def _post_graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send a single GraphQL POST without retries.

        Returns:
            Dict: Full JSON response (data, errors, extensions)

        Raises:
            RateLimitException: On HTTP 429
            ShopifyAPIException: On other HTTP or network failures
        """
        if not self.session:
            raise ShopifyAPIException("Client not initialized. Call initialize() first.", is_retryable=False)

        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            async with self.session.post(self.graphql_url, json=payload, headers=self._graphql_headers()) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitException(
                        "Shopify API rate limit exceeded",
                        retry_after=float(retry_after) if retry_after else None,
                    )

                if response.status != 200:
                    body = await response.text()
                    raise ShopifyAPIException(
                        f"HTTP {response.status}: {body[:200]}",
                        api_response_code=response.status,
                        endpoint=self.graphql_url,
                        is_retryable=response.status >= 500,
                    )

                return await response.json()

        except aiohttp.ClientError as e:
            raise ShopifyAPIException(f"Network error: {str(e)}", endpoint=self.graphql_url) from e

    async def _execute_raw(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute through the retrying transport and return the full response."""
        return await self.transport.execute(query, variables)

    async def _execute_query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a GraphQL query with retries and error handling.

        Args:
            query: GraphQL query string
            variables: Query variables

        Returns:
            Dict: Query response data

        Raises:
            ShopifyAPIException: If the response carries GraphQL errors
        """
        response = await self._execute_raw(query, variables)
        self._raise_for_errors(response)
        return response.get("data") or {}

    def _raise_for_errors(self, response: Dict[str, Any]) -> None:
        if is_throttled(response):
            raise RateLimitException("Shopify API throttled", details={"errors": response.get("errors")})

        errors = response.get("errors")
        if errors:
            error_messages = [err.get("message", str(err)) for err in errors]
            raise ShopifyAPIException(f"GraphQL errors: {', '.join(error_messages)}", is_retryable=False)

    def _handle_graphql_errors(self, response_data: Dict[str, Any], operation: str = "operation"):
        """
        Handle mutation userErrors consistently across all clients.

        Args:
            response_data: Mutation payload (the field under ``data``)
            operation: Operation name for error context

        Raises:
            ShopifyAPIException: If there are user errors
        """
        user_errors = response_data.get("userErrors") or []
        if user_errors:
            error_messages = []
            for error in user_errors:
                field = error.get("field") or []
                message = error.get("message", "Unknown error")
                field_str = ".".join(field) if field else "general"
                error_messages.append(f"{field_str}: {message}")

            raise ShopifyAPIException(
                f"{operation} failed: {', '.join(error_messages)}",
                is_retryable=False,
                details={"user_errors": user_errors},
            )

    async def test_connection(self) -> bool:
        """
        Test the connection to Shopify GraphQL API.

        Returns:
            bool: True if connection is successful

        Raises:
            ShopifyAPIException: If connection test fails
        """
        test_query = """
        query {
          shop {
            name
            id
            currencyCode
          }
        }
        """

        try:
            result = await self._execute_query(test_query)
            shop_info = result.get("shop", {})
            logger.info(
                f"✅ Connected to Shopify store: {shop_info.get('name', 'Unknown')} "
                f"({shop_info.get('currencyCode', 'Unknown')})"
            )
            return True

        except Exception as e:
            logger.error(f"❌ Connection test failed: {e}")
            raise ShopifyAPIException(f"Connection test failed: {str(e)}", is_retryable=False) from e

    def get_rate_limit_status(self) -> Dict[str, float]:
        """Current estimate of the query cost budget."""
        return self.monitor.get_status()

    def _share_from(self, other: "BaseShopifyGraphQLClient") -> None:
        """Reuse another client's configuration, session and transport."""
        self.settings = other.settings
        self.shop_url = other.shop_url
        self.access_token = other.access_token
        self.api_version = other.api_version
        self.graphql_url = other.graphql_url
        self.session = other.session
        self.monitor = other.monitor
        self.transport = other.transport


def edges_or_nodes(connection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten a GraphQL connection that uses either ``nodes`` or ``edges``."""
    if not connection:
        return []
    if "nodes" in connection:
        return [node for node in connection["nodes"] if node]
    return [edge["node"] for edge in connection.get("edges", []) if edge.get("node")]
