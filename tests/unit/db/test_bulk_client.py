"""Tests del cliente bulk contra un servidor Shopify falso."""

import pytest
from aiohttp import web

from bulk_editor.utils.error_handler import RateLimitException, ShopifyAPIException

BULK_ID = "gid://shopify/BulkOperation/1"
STAGED_KEY = "tmp/21/bulk/abc/bulk_op_vars.jsonl"


def _upload_target(fake):
    return {
        "url": fake.url("/upload"),
        "resource_url": None,
        "parameters": [{"name": "key", "value": STAGED_KEY}, {"name": "policy", "value": "signed"}],
    }


def _staged_target(fake):
    target = _upload_target(fake)
    return {
        "data": {
            "stagedUploadsCreate": {
                "stagedTargets": [{"url": target["url"], "resourceUrl": None, "parameters": target["parameters"]}],
                "userErrors": [],
            }
        }
    }


def _bulk_node(status="RUNNING", **extra):
    return {"id": BULK_ID, "status": status, "errorCode": None, "objectCount": "0", "url": None, **extra}


class TestStagedUpload:
    """Tests para el handshake de subida del archivo del job."""

    @pytest.mark.asyncio
    async def test_create_staged_upload_requests_bulk_variables_target(self, bulk_client, fake_shopify):
        """Debe pedir un destino BULK_MUTATION_VARIABLES y devolver url y parámetros."""
        fake_shopify.graphql_replies = [_staged_target(fake_shopify)]

        target = await bulk_client.create_staged_upload()

        assert target["url"] == fake_shopify.url("/upload")
        assert [p["name"] for p in target["parameters"]] == ["key", "policy"]
        request = fake_shopify.graphql_requests[0]
        assert "stagedUploadsCreate" in request["query"]
        assert request["variables"]["input"][0]["resource"] == "BULK_MUTATION_VARIABLES"
        assert request["variables"]["input"][0]["httpMethod"] == "POST"
        assert request["headers"]["X-Shopify-Access-Token"] == "test-token"

    @pytest.mark.asyncio
    async def test_staged_upload_user_errors_raise(self, bulk_client, fake_shopify):
        """Debe fallar si stagedUploadsCreate devuelve userErrors."""
        fake_shopify.graphql_replies = [
            {
                "data": {
                    "stagedUploadsCreate": {
                        "stagedTargets": [],
                        "userErrors": [{"field": ["input"], "message": "Invalid mime type"}],
                    }
                }
            }
        ]

        with pytest.raises(ShopifyAPIException) as exc_info:
            await bulk_client.create_staged_upload()

        assert "Invalid mime type" in exc_info.value.message
        assert exc_info.value.is_retryable is False

    @pytest.mark.asyncio
    async def test_upload_posts_parameters_then_file(self, bulk_client, fake_shopify):
        """Debe enviar los parámetros firmados en orden y el archivo como último campo."""
        content = b'{"input":{"id":"gid://shopify/Product/1"}}\n'

        key = await bulk_client.upload_staged_file(_upload_target(fake_shopify), content)

        assert key == STAGED_KEY
        assert len(fake_shopify.uploads) == 1
        fields = fake_shopify.uploads[0]
        assert [name for name, _ in fields] == ["key", "policy", "file"]
        assert dict(fields)["key"] == STAGED_KEY.encode()
        assert fields[-1][1] == content

    @pytest.mark.asyncio
    async def test_upload_without_key_is_rejected_before_posting(self, bulk_client, fake_shopify):
        """Debe rechazar un destino sin parámetro key sin hacer la subida."""
        target = {"url": fake_shopify.url("/upload"), "parameters": [{"name": "policy", "value": "signed"}]}

        with pytest.raises(ShopifyAPIException):
            await bulk_client.upload_staged_file(target, b"{}\n")

        assert fake_shopify.uploads == []

    @pytest.mark.asyncio
    async def test_upload_server_error_is_retried(self, bulk_client, fake_shopify):
        """Debe reintentar la subida ante un 503 y terminar con éxito."""
        fake_shopify.upload_statuses = [503, 201]
        target = _upload_target(fake_shopify)

        key = await bulk_client.upload_staged_file(target, b"{}\n")

        assert key == STAGED_KEY
        assert len(fake_shopify.uploads) == 2

    @pytest.mark.asyncio
    async def test_upload_client_error_is_not_retried(self, bulk_client, fake_shopify):
        """Debe fallar de inmediato ante un 403 del destino de subida."""
        fake_shopify.upload_statuses = [403]
        target = _upload_target(fake_shopify)

        with pytest.raises(ShopifyAPIException) as exc_info:
            await bulk_client.upload_staged_file(target, b"{}\n")

        assert exc_info.value.api_response_code == 403
        assert exc_info.value.is_retryable is False
        assert len(fake_shopify.uploads) == 1


class TestBulkMutation:
    """Tests para el envío y la consulta de operaciones bulk."""

    @pytest.mark.asyncio
    async def test_run_bulk_mutation_sends_staged_path(self, bulk_client, fake_shopify):
        """Debe enviar la mutation y el path subido, devolviendo la operación."""
        fake_shopify.graphql_replies = [
            {"data": {"bulkOperationRunMutation": {"bulkOperation": _bulk_node("CREATED"), "userErrors": []}}}
        ]

        result = await bulk_client.run_bulk_mutation("mutation call($input: ProductInput!) { x }", STAGED_KEY)

        assert result["bulk_operation"]["id"] == BULK_ID
        assert result["user_errors"] == []
        request = fake_shopify.graphql_requests[0]
        assert "bulkOperationRunMutation" in request["query"]
        assert request["variables"]["stagedUploadPath"] == STAGED_KEY

    @pytest.mark.asyncio
    async def test_run_bulk_mutation_returns_user_errors(self, bulk_client, fake_shopify):
        """Debe devolver los userErrors sin lanzar excepción."""
        errors = [{"field": None, "message": "A bulk mutation operation for this app and shop is already in progress."}]
        payload = {"bulkOperation": None, "userErrors": errors}
        fake_shopify.graphql_replies = [{"data": {"bulkOperationRunMutation": payload}}]

        result = await bulk_client.run_bulk_mutation("mutation { x }", STAGED_KEY)

        assert result == {"bulk_operation": None, "user_errors": errors}

    @pytest.mark.asyncio
    async def test_get_bulk_operation_returns_node(self, bulk_client, fake_shopify):
        """Debe devolver el nodo BulkOperation consultado por id."""
        fake_shopify.graphql_replies = [{"data": {"node": _bulk_node("COMPLETED", objectCount="3")}}]

        node = await bulk_client.get_bulk_operation(BULK_ID)

        assert node["status"] == "COMPLETED"
        assert fake_shopify.graphql_requests[0]["variables"] == {"id": BULK_ID}

    @pytest.mark.asyncio
    async def test_unknown_bulk_operation_returns_none(self, bulk_client, fake_shopify):
        """Debe devolver None cuando Shopify responde node: null."""
        fake_shopify.graphql_replies = [{"data": {"node": None}}]

        assert await bulk_client.get_bulk_operation(BULK_ID) is None

    @pytest.mark.asyncio
    async def test_current_bulk_operation(self, bulk_client, fake_shopify):
        """Debe leer currentBulkOperation de la tienda."""
        fake_shopify.graphql_replies = [{"data": {"currentBulkOperation": _bulk_node()}}]

        node = await bulk_client.get_current_bulk_operation()

        assert node["id"] == BULK_ID
        assert "currentBulkOperation" in fake_shopify.graphql_requests[0]["query"]


class TestResultDownload:
    """Tests para la descarga del archivo de resultados."""

    @pytest.mark.asyncio
    async def test_download_returns_jsonl_text(self, bulk_client, fake_shopify):
        """Debe devolver el texto JSONL tal cual."""
        fake_shopify.result_text = '{"data":{}}\n{"data":{}}\n'

        text = await bulk_client.download_result_file(fake_shopify.url("/results.jsonl"))

        assert text == fake_shopify.result_text

    @pytest.mark.asyncio
    async def test_download_server_error_is_retried(self, bulk_client, fake_shopify):
        """Debe reintentar la descarga ante un 502."""
        fake_shopify.result_statuses = [502, 200]
        fake_shopify.result_text = '{"data":{}}\n'

        text = await bulk_client.download_result_file(fake_shopify.url("/results.jsonl"))

        assert text == fake_shopify.result_text
        assert fake_shopify.result_requests == 2

    @pytest.mark.asyncio
    async def test_download_not_found_is_not_retried(self, bulk_client, fake_shopify):
        """Debe fallar sin reintentos si el archivo ya no existe."""
        fake_shopify.result_statuses = [404]

        with pytest.raises(ShopifyAPIException) as exc_info:
            await bulk_client.download_result_file(fake_shopify.url("/results.jsonl"))

        assert exc_info.value.is_retryable is False
        assert fake_shopify.result_requests == 1


class TestGraphQLTransport:
    """Tests para el mapeo de errores HTTP y GraphQL a excepciones."""

    @pytest.mark.asyncio
    async def test_http_429_is_retried_until_success(self, bulk_client, fake_shopify):
        """Debe reintentar un 429 respetando Retry-After y luego responder."""
        fake_shopify.graphql_replies = [
            lambda query, variables: web.Response(status=429, headers={"Retry-After": "0"}),
            {"data": {"currentBulkOperation": None}},
        ]

        assert await bulk_client.get_current_bulk_operation() is None
        assert len(fake_shopify.graphql_requests) == 2
        assert bulk_client.transport.get_metrics()["total_retries"] == 1

    @pytest.mark.asyncio
    async def test_persistent_429_raises_rate_limit(self, bulk_client, fake_shopify):
        """Debe lanzar RateLimitException reintentable tras agotar reintentos."""
        fake_shopify.graphql_replies = [lambda query, variables: web.Response(status=429, headers={"Retry-After": "2"})]

        with pytest.raises(RateLimitException) as exc_info:
            await bulk_client.get_current_bulk_operation()

        assert exc_info.value.retry_after == 2.0
        assert exc_info.value.is_retryable is True
        assert len(fake_shopify.graphql_requests) == 3

    @pytest.mark.asyncio
    async def test_persistent_5xx_raises_retryable_api_error(self, bulk_client, fake_shopify):
        """Debe mapear un 503 persistente a ShopifyAPIException reintentable."""
        fake_shopify.graphql_replies = [lambda query, variables: web.Response(status=503, text="maintenance")]

        with pytest.raises(ShopifyAPIException) as exc_info:
            await bulk_client.get_bulk_operation(BULK_ID)

        assert exc_info.value.api_response_code == 503
        assert exc_info.value.is_retryable is True
        assert len(fake_shopify.graphql_requests) == 3

    @pytest.mark.asyncio
    async def test_http_4xx_is_not_retried(self, bulk_client, fake_shopify):
        """Debe fallar de inmediato ante un 401."""
        fake_shopify.graphql_replies = [lambda query, variables: web.Response(status=401, text="Invalid API key")]

        with pytest.raises(ShopifyAPIException) as exc_info:
            await bulk_client.get_bulk_operation(BULK_ID)

        assert exc_info.value.api_response_code == 401
        assert exc_info.value.is_retryable is False
        assert len(fake_shopify.graphql_requests) == 1

    @pytest.mark.asyncio
    async def test_throttled_response_is_retried(self, bulk_client, fake_shopify):
        """Debe reintentar una respuesta con error THROTTLED."""
        fake_shopify.graphql_replies = [
            {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]},
            {"data": {"node": _bulk_node()}},
        ]

        node = await bulk_client.get_bulk_operation(BULK_ID)

        assert node["id"] == BULK_ID
        assert bulk_client.transport.get_metrics()["throttled_responses"] == 1

    @pytest.mark.asyncio
    async def test_graphql_errors_raise(self, bulk_client, fake_shopify):
        """Debe lanzar una excepción no reintentable ante errores GraphQL."""
        fake_shopify.graphql_replies = [{"errors": [{"message": "Field 'nope' doesn't exist"}]}]

        with pytest.raises(ShopifyAPIException) as exc_info:
            await bulk_client.get_current_bulk_operation()

        assert "doesn't exist" in exc_info.value.message
        assert exc_info.value.is_retryable is False
