"""
Factories for the bulk operations service (DIP).

``create_orchestrator`` wires the orchestrator from its collaborators;
the module-level singleton keeps one initialized repository, Shopify
client and orchestrator for the running application.
"""

import logging
from typing import Optional

from bulk_editor.core.config import Settings, get_settings
from bulk_editor.db.connection import ConnDB, get_db_connection
from bulk_editor.db.operation_repository import OperationRepository
from bulk_editor.db.shopify_clients import ShopifyGraphQLClient
from bulk_editor.services.bulk_operations.events import OperationEventRecorder
from bulk_editor.services.bulk_operations.interfaces import ICatalogClient, IOperationRepository
from bulk_editor.services.bulk_operations.orchestrator import BulkOperationsOrchestrator
from bulk_editor.services.bulk_operations.preview_builder import PreviewBuilder
from bulk_editor.services.bulk_operations.reconciler import BulkOperationReconciler

logger = logging.getLogger(__name__)


def create_orchestrator(
    repository: IOperationRepository,
    client: ICatalogClient,
    settings: Optional[Settings] = None,
    events: Optional[OperationEventRecorder] = None,
) -> BulkOperationsOrchestrator:
    """
    Create a fully wired orchestrator.

    Args:
        repository: Operation persistence
        client: Remote catalog client
        settings: Application settings (global settings if omitted)
        events: Event recorder (a new one if omitted)

    Returns:
        BulkOperationsOrchestrator: Orchestrator with injected dependencies
    """
    settings = settings or get_settings()
    return BulkOperationsOrchestrator(
        repository=repository,
        client=client,
        preview_builder=PreviewBuilder(client, settings),
        events=events or OperationEventRecorder(),
        settings=settings,
    )


class BulkOperationsService:
    """Holds the initialized collaborators of the bulk operations service."""

    def __init__(
        self,
        conn_db: Optional[ConnDB] = None,
        client: Optional[ShopifyGraphQLClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.conn_db = conn_db or get_db_connection()
        self.client = client or ShopifyGraphQLClient(settings=self.settings)
        self.repository = OperationRepository(self.conn_db)
        self.events = OperationEventRecorder()
        self.orchestrator = create_orchestrator(self.repository, self.client, self.settings, self.events)
        self.reconciler = BulkOperationReconciler(self.orchestrator, self.settings)
        self._initialized = False

    async def initialize(self, test_connection: bool = True):
        """Initialize the operations database and the Shopify session."""
        if self._initialized:
            return
        await self.repository.initialize()
        await self.client.initialize(test_connection=test_connection)
        self._initialized = True
        logger.info("✅ Bulk operations service initialized")

    async def close(self):
        await self.client.close()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def __repr__(self):
        return f"BulkOperationsService(initialized={self._initialized}, repository={self.repository!r})"


# Singleton instance for global use
_service: Optional[BulkOperationsService] = None


async def get_bulk_operations_service() -> BulkOperationsService:
    """
    Get or create the singleton service instance.

    Returns:
        BulkOperationsService: Initialized service
    """
    global _service

    if _service is None:
        _service = BulkOperationsService()
        await _service.initialize()

    return _service


def get_current_service() -> Optional[BulkOperationsService]:
    """Current singleton, without creating or initializing it."""
    return _service


async def close_bulk_operations_service():
    """Close and clean up the singleton service."""
    global _service

    if _service is not None:
        await _service.close()
        _service = None
