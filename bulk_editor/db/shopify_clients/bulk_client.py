"""
Shopify GraphQL client for bulk mutation jobs.

This module handles the remote side of a bulk job: the staged upload
handshake, job submission, status reads and result file download.
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from bulk_editor.db.queries import (
    BULK_OPERATION_RUN_MUTATION,
    BULK_OPERATION_STATUS_QUERY,
    CURRENT_BULK_OPERATION_QUERY,
    STAGED_UPLOADS_CREATE_MUTATION,
)
from bulk_editor.utils.error_handler import ShopifyAPIException

from .base_client import BaseShopifyGraphQLClient

logger = logging.getLogger(__name__)

JOB_FILENAME = "bulk_op_vars.jsonl"
JOB_MIME_TYPE = "text/jsonl"


class ShopifyBulkClient(BaseShopifyGraphQLClient):
    """
    Specialized client for bulk mutation operations.
    """

    async def create_staged_upload(self, filename: str = JOB_FILENAME) -> Dict[str, Any]:
        """
        Request an upload target for a bulk mutation variables file.

        Returns:
            Dict with url, resource_url and parameters ([{name, value}])

        Raises:
            ShopifyAPIException: If Shopify returns user errors or no target
        """
        variables = {
            "input": [
                {
                    "resource": "BULK_MUTATION_VARIABLES",
                    "filename": filename,
                    "mimeType": JOB_MIME_TYPE,
                    "httpMethod": "POST",
                }
            ]
        }

        result = await self._execute_query(STAGED_UPLOADS_CREATE_MUTATION, variables)
        payload = result.get("stagedUploadsCreate") or {}
        self._handle_graphql_errors(payload, "stagedUploadsCreate")

        targets = payload.get("stagedTargets") or []
        if not targets:
            raise ShopifyAPIException("Shopify did not return a staged upload target.", is_retryable=False)

        target = targets[0]
        return {
            "url": target["url"],
            "resource_url": target.get("resourceUrl"),
            "parameters": target.get("parameters") or [],
        }

    async def _post_staged_file(self, url: str, parameters: List[Dict[str, str]], content: bytes) -> None:
        if not self.session:
            raise ShopifyAPIException("Client not initialized. Call initialize() first.", is_retryable=False)

        form = aiohttp.FormData()
        for parameter in parameters:
            form.add_field(parameter["name"], parameter["value"])
        # El archivo debe ser el último campo del formulario
        form.add_field("file", content, filename=JOB_FILENAME, content_type=JOB_MIME_TYPE)

        try:
            async with self.session.post(url, data=form) as response:
                if response.status not in (200, 201, 204):
                    body = await response.text()
                    raise ShopifyAPIException(
                        f"Staged upload failed with HTTP {response.status}: {body[:200]}",
                        api_response_code=response.status,
                        endpoint=url,
                        is_retryable=response.status >= 500,
                    )
        except aiohttp.ClientError as e:
            raise ShopifyAPIException(f"Network error during staged upload: {str(e)}", endpoint=url) from e

    async def upload_staged_file(self, target: Dict[str, Any], content: bytes) -> str:
        """
        Upload the job file to a staged target.

        Args:
            target: Result of ``create_staged_upload``
            content: JSONL file content

        Returns:
            str: Staged upload path (the ``key`` parameter)
        """
        parameters = target.get("parameters") or []
        key = next((p["value"] for p in parameters if p.get("name") == "key"), None)
        if not key:
            raise ShopifyAPIException("Staged upload target has no key parameter.", is_retryable=False)

        await self.transport.run(self._post_staged_file, target["url"], parameters, content)
        logger.info(f"Uploaded bulk job file ({len(content)} bytes) to staged path {key}")
        return key

    async def run_bulk_mutation(self, mutation: str, staged_upload_path: str) -> Dict[str, Any]:
        """
        Submit a bulk mutation job.

        Args:
            mutation: Mutation template executed once per file line
            staged_upload_path: Path returned by ``upload_staged_file``

        Returns:
            Dict with ``bulk_operation`` (or None) and ``user_errors``
        """
        result = await self._execute_query(
            BULK_OPERATION_RUN_MUTATION,
            {"mutation": mutation, "stagedUploadPath": staged_upload_path},
        )
        payload = result.get("bulkOperationRunMutation") or {}
        return {
            "bulk_operation": payload.get("bulkOperation"),
            "user_errors": payload.get("userErrors") or [],
        }

    async def get_bulk_operation(self, bulk_operation_id: str) -> Optional[Dict[str, Any]]:
        """
        Read a bulk operation by id.

        Returns:
            BulkOperation node, or None if Shopify does not know the id
        """
        result = await self._execute_query(BULK_OPERATION_STATUS_QUERY, {"id": bulk_operation_id})
        node = result.get("node")
        if not node or not node.get("id"):
            return None
        return node

    async def get_current_bulk_operation(self) -> Optional[Dict[str, Any]]:
        """
        Get the shop's most recent bulk mutation.

        Returns:
            BulkOperation node or None
        """
        result = await self._execute_query(CURRENT_BULK_OPERATION_QUERY)
        return result.get("currentBulkOperation")

    async def _get_text(self, url: str) -> str:
        if not self.session:
            raise ShopifyAPIException("Client not initialized. Call initialize() first.", is_retryable=False)

        try:
            async with self.session.get(url) as response:
                if response.status != 200:
                    raise ShopifyAPIException(
                        f"Failed to fetch results: HTTP {response.status}",
                        api_response_code=response.status,
                        endpoint=url,
                        is_retryable=response.status >= 500,
                    )
                return await response.text()
        except aiohttp.ClientError as e:
            raise ShopifyAPIException(f"Network error downloading results: {str(e)}", endpoint=url) from e

    async def download_result_file(self, url: str) -> str:
        """
        Download a bulk operation result file.

        Returns:
            str: JSONL text
        """
        text = await self.transport.run(self._get_text, url)
        logger.info(f"Downloaded bulk operation results ({len(text)} chars)")
        return text
