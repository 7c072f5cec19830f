"""
Interfaces/Protocols for bulk operation services (Dependency Inversion Principle).

These protocols define the contracts the orchestrator depends on,
allowing the SQL repository and the Shopify client to be swapped for
fakes in tests.
"""

from datetime import datetime
from typing import Any, Protocol

from bulk_editor.domain.models import Operation, OperationStatus, OperationType


class IOperationRepository(Protocol):
    """Protocol for operation persistence."""

    async def create_if_no_active(self, operation: Operation) -> Operation:
        """Insert a CREATED operation or raise ConflictException."""
        ...

    async def find_by_id(self, operation_id: str) -> Operation | None:
        ...

    async def get(self, operation_id: str) -> Operation:
        ...

    async def find_by_bulk_operation_id(self, bulk_operation_id: str) -> Operation | None:
        ...

    async def find_active_for_shop(self, shop: str) -> Operation | None:
        ...

    async def find_stuck(self, shop: str, older_than: datetime) -> list[Operation]:
        ...

    async def list_by_shop(
        self,
        shop: str,
        status: OperationStatus | None = None,
        type: OperationType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Operation], int]:
        ...

    async def stats(self, shop: str) -> dict[str, int]:
        ...

    async def update(self, operation_id: str, **fields: Any) -> Operation:
        ...

    async def update_if_active(self, operation_id: str, **fields: Any) -> tuple[Operation, bool]:
        """Write only while the operation is CREATED or RUNNING."""
        ...


class ICatalogClient(Protocol):
    """Protocol for the remote catalog API used by the orchestrator."""

    async def list_products(
        self,
        status: str | None = None,
        tags: list[str] | None = None,
        cursor: str | None = None,
        direction: str = "forward",
        page_size: int = 25,
    ) -> dict[str, Any]:
        ...

    async def get_products_by_ids(self, product_ids: list[str]) -> tuple[list[dict[str, Any]], str]:
        ...

    async def create_staged_upload(self, filename: str = ...) -> dict[str, Any]:
        ...

    async def upload_staged_file(self, target: dict[str, Any], content: bytes) -> str:
        ...

    async def run_bulk_mutation(self, mutation: str, staged_upload_path: str) -> dict[str, Any]:
        ...

    async def get_bulk_operation(self, bulk_operation_id: str) -> dict[str, Any] | None:
        ...

    async def get_current_bulk_operation(self) -> dict[str, Any] | None:
        ...

    async def download_result_file(self, url: str) -> str:
        ...
