"""Fixtures compartidos: settings de prueba, base en memoria y cliente Shopify falso."""

from decimal import Decimal
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from bulk_editor.core.config import Settings
from bulk_editor.db.connection import ConnDB
from bulk_editor.db.operation_repository import OperationRepository
from bulk_editor.services.bulk_operations.events import OperationEventRecorder
from bulk_editor.services.bulk_operations.orchestrator import BulkOperationsOrchestrator
from bulk_editor.services.bulk_operations.reconciler import BulkOperationReconciler

SHOP = "test-shop.myshopify.com"
BULK_OPERATION_ID = "gid://shopify/BulkOperation/1"
RESULT_URL = "https://storage.example.com/results.jsonl"


def make_product(
    number: int,
    prices: Optional[List[str]] = None,
    tags: Optional[List[str]] = None,
    title: Optional[str] = None,
) -> Dict[str, Any]:
    """Producto normalizado como lo devuelve el cliente de catálogo."""
    prices = ["20.00"] if prices is None else prices
    return {
        "id": f"gid://shopify/Product/{number}",
        "title": title or f"Product {number}",
        "status": "ACTIVE",
        "tags": list(tags or []),
        "variants": [
            {
                "id": f"gid://shopify/ProductVariant/{number}{index}",
                "title": f"Variant {index}",
                "price": Decimal(price),
                "currency_code": "USD",
            }
            for index, price in enumerate(prices)
        ],
    }


def bulk_node(status: str = "COMPLETED", url: Optional[str] = RESULT_URL, **overrides) -> Dict[str, Any]:
    """Nodo BulkOperation como lo devuelve la query de estado."""
    node = {
        "id": BULK_OPERATION_ID,
        "status": status,
        "errorCode": None,
        "objectCount": "2",
        "fileSize": "120",
        "url": url,
        "partialDataUrl": None,
        "createdAt": "2025-01-15T10:00:00Z",
        "completedAt": "2025-01-15T10:01:00Z" if status == "COMPLETED" else None,
    }
    node.update(overrides)
    return node


def make_catalog_client(products: Optional[List[Dict[str, Any]]] = None) -> MagicMock:
    """Cliente falso con las operaciones que usa el orquestador."""
    catalog = {product["id"]: product for product in products or []}

    def lookup(ids):
        return [catalog[product_id] for product_id in ids if product_id in catalog], "USD"

    client = MagicMock()
    client.get_products_by_ids = AsyncMock(side_effect=lookup)
    client.list_products = AsyncMock(
        return_value={
            "products": list(catalog.values()),
            "page_info": {"has_next_page": False, "has_previous_page": False},
            "available_tags": [],
            "currency_code": "USD",
        }
    )
    client.create_staged_upload = AsyncMock(
        return_value={
            "url": "https://uploads.example.com/",
            "resource_url": None,
            "parameters": [{"name": "key", "value": "tmp/bulk/bulk_op_vars.jsonl"}],
        }
    )
    client.upload_staged_file = AsyncMock(return_value="tmp/bulk/bulk_op_vars.jsonl")
    client.run_bulk_mutation = AsyncMock(
        return_value={"bulk_operation": {"id": BULK_OPERATION_ID, "status": "CREATED"}, "user_errors": []}
    )
    client.get_bulk_operation = AsyncMock(return_value=bulk_node())
    client.get_current_bulk_operation = AsyncMock(return_value=None)
    client.download_result_file = AsyncMock(return_value="")
    return client


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="testing",
        SHOPIFY_SHOP_URL=SHOP,
        SHOPIFY_ACCESS_TOKEN="test-token",
        SHOPIFY_WEBHOOK_SECRET="test-secret",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
    )


@pytest_asyncio.fixture
async def repository():
    conn_db = ConnDB("sqlite+aiosqlite:///:memory:", echo=False)
    repo = OperationRepository(conn_db)
    await repo.initialize()
    yield repo
    await conn_db.close()


@pytest.fixture
def products():
    return [make_product(1, prices=["20.00"], tags=["summer"]), make_product(2, prices=["50.00"], tags=["sale"])]


@pytest.fixture
def catalog_client(products):
    return make_catalog_client(products)


@pytest.fixture
def events():
    return OperationEventRecorder()


@pytest.fixture
def orchestrator(repository, catalog_client, settings, events):
    return BulkOperationsOrchestrator(repository, catalog_client, events=events, settings=settings)


@pytest.fixture
def shop():
    return SHOP


@pytest.fixture
def product_factory():
    return make_product


@pytest.fixture
def node_factory():
    return bulk_node


@pytest.fixture
def client_factory():
    return make_catalog_client


@pytest.fixture
def reconciler(orchestrator, settings):
    return BulkOperationReconciler(orchestrator, settings)


@pytest_asyncio.fixture
async def api_client(orchestrator, reconciler, shop):
    """Cliente HTTP sobre la app con el orquestador de prueba inyectado."""
    from bulk_editor.api.v1.dependencies import get_orchestrator, get_reconciler, get_shop
    from bulk_editor.main import app

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    app.dependency_overrides[get_shop] = lambda: shop

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
