"""Servidor Shopify falso para probar los clientes HTTP reales."""

from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from bulk_editor.db.shopify_clients.bulk_client import ShopifyBulkClient
from bulk_editor.db.shopify_clients.product_client import ShopifyProductClient
from bulk_editor.utils.retry_handler import RetryPolicy

API_VERSION = "2025-04"


class FakeShopify:
    """
    Aplicación aiohttp que imita el endpoint GraphQL, el destino de subida
    y el archivo de resultados.

    ``graphql_replies`` se consume en orden; el último se repite. Cada
    respuesta es un dict JSON, un ``web.Response`` o una función
    ``(query, variables)`` que devuelve cualquiera de los dos.
    """

    def __init__(self):
        self.graphql_replies: List[Any] = [{"data": {}}]
        self.graphql_requests: List[Dict[str, Any]] = []
        self.upload_statuses: List[int] = [204]
        self.uploads: List[List[Tuple[str, bytes]]] = []
        self.result_statuses: List[int] = [200]
        self.result_text = ""
        self.result_requests = 0

        self.app = web.Application()
        self.app.router.add_post(f"/admin/api/{API_VERSION}/graphql.json", self._graphql)
        self.app.router.add_post("/upload", self._upload)
        self.app.router.add_get("/results.jsonl", self._results)
        self.base_url = ""

    @staticmethod
    def _next(queue: List[Any]) -> Any:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def _graphql(self, request: web.Request) -> web.StreamResponse:
        body = await request.json()
        self.graphql_requests.append({"headers": dict(request.headers), **body})
        reply = self._next(self.graphql_replies)
        if callable(reply):
            reply = reply(body["query"], body.get("variables"))
        if isinstance(reply, web.StreamResponse):
            return reply
        return web.json_response(reply)

    async def _upload(self, request: web.Request) -> web.Response:
        fields = []
        reader = await request.multipart()
        async for part in reader:
            fields.append((part.name, bytes(await part.read())))
        self.uploads.append(fields)
        return web.Response(status=self._next(self.upload_statuses))

    async def _results(self, request: web.Request) -> web.Response:
        self.result_requests += 1
        status = self._next(self.result_statuses)
        if status != 200:
            return web.Response(status=status, text="unavailable")
        return web.Response(text=self.result_text, content_type="application/jsonl")

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"


@pytest_asyncio.fixture
async def fake_shopify():
    fake = FakeShopify()
    server = TestServer(fake.app)
    await server.start_server()
    fake.base_url = str(server.make_url("")).rstrip("/")
    yield fake
    await server.close()


@pytest.fixture
def fast_policy():
    return RetryPolicy(max_retries=2, initial_delay=0, max_delay=0, jitter_ratio=0)


async def _start(client_cls, fake: FakeShopify, settings, policy: RetryPolicy):
    client = client_cls(
        shop_url=fake.base_url,
        access_token="test-token",
        api_version=API_VERSION,
        policy=policy,
        settings=settings,
    )
    await client.initialize(test_connection=False)
    return client


@pytest_asyncio.fixture
async def bulk_client(fake_shopify, settings, fast_policy):
    client = await _start(ShopifyBulkClient, fake_shopify, settings, fast_policy)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def product_client(fake_shopify, settings, fast_policy):
    client = await _start(ShopifyProductClient, fake_shopify, settings, fast_policy)
    yield client
    await client.close()
