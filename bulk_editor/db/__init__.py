"""
Data access for the catalog bulk editor.

- ConnDB: connection to the operations database
- OperationRepository: persistence of bulk operation records
- shopify_clients: GraphQL access to the Shopify Admin API
"""

from bulk_editor.db.connection import ConnDB, close_database, get_db_connection, initialize_database
from bulk_editor.db.operation_repository import OperationRepository

__all__ = [
    "ConnDB",
    "get_db_connection",
    "initialize_database",
    "close_database",
    "OperationRepository",
]
