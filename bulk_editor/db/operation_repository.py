"""
OperationRepository: persistence of bulk operation records.

The orchestrator is the only writer. Admission control is a single
conditional INSERT backed by a partial unique index, so two concurrent
starts for the same shop can never both create an active row.
"""

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from bulk_editor.db.base import BaseRepository, log_operation, with_retry
from bulk_editor.domain.models.operation import (
    BulkOperationResults,
    Operation,
    OperationStatus,
    OperationType,
    parse_timestamp,
)
from bulk_editor.domain.models.payloads import dump_payload, load_payload
from bulk_editor.utils.error_handler import ConflictException, DatabaseException, OperationNotFoundException

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "A bulk operation is already in progress for this shop."


def _sql_in(statuses) -> str:
    return "(" + ", ".join(f"'{status.value}'" for status in statuses) + ")"


# Must match the predicate of the partial index in connection.py
ACTIVE_STATUSES = _sql_in(OperationStatus.active())
TERMINAL_STATUSES = _sql_in(OperationStatus.terminal())

# Columnas que update() puede modificar
UPDATABLE_COLUMNS = {
    "status",
    "bulk_operation_id",
    "result_url",
    "results",
    "error_message",
    "undone",
    "undone_at",
    "undone_by_operation_id",
    "completed_at",
}


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Store datetimes as UTC ISO-8601 text so they sort lexicographically."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _to_db_value(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column == "results":
        if isinstance(value, BulkOperationResults):
            return value.model_dump_json()
        return json.dumps(value)
    if column == "undone":
        return 1 if value else 0
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (OperationStatus, OperationType)):
        return value.value
    return value


def row_to_operation(row: Dict[str, Any]) -> Operation:
    """Map a database row to the Operation domain model."""
    results = row.get("results")
    return Operation(
        id=row["id"],
        shop=row["shop"],
        type=OperationType(row["type"]),
        status=OperationStatus(row["status"]),
        payload=load_payload(row["payload"]),
        inverse_payload=load_payload(row.get("inverse_payload")),
        bulk_operation_id=row.get("bulk_operation_id"),
        result_url=row.get("result_url"),
        results=BulkOperationResults.model_validate_json(results) if results else None,
        error_message=row.get("error_message"),
        undone=bool(row.get("undone")),
        undone_at=parse_timestamp(row.get("undone_at")),
        undone_by_operation_id=row.get("undone_by_operation_id"),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
        completed_at=parse_timestamp(row.get("completed_at")),
    )


class OperationRepository(BaseRepository):
    """Repository for bulk operation records."""

    # ------------------------- Creation -------------------------
    @log_operation()
    async def create_if_no_active(self, operation: Operation) -> Operation:
        """
        Insert a new CREATED operation unless the shop already has an active one.

        Args:
            operation: Operation to persist (``id`` is generated when missing)

        Returns:
            Operation: The stored operation

        Raises:
            ConflictException: If the shop has an operation in CREATED or RUNNING
            DatabaseException: If the insert fails for another reason
        """
        now = datetime.now(UTC)
        operation.id = operation.id or uuid.uuid4().hex
        operation.status = OperationStatus.CREATED
        operation.created_at = now
        operation.updated_at = now

        query = f"""
        INSERT INTO operations (
            id, shop, type, status, payload, inverse_payload, undone, created_at, updated_at
        )
        SELECT :id, :shop, :type, 'CREATED', :payload, :inverse_payload, 0, :created_at, :updated_at
        WHERE NOT EXISTS (
            SELECT 1 FROM operations WHERE shop = :shop AND status IN {ACTIVE_STATUSES}
        )
        """
        params = {
            "id": operation.id,
            "shop": operation.shop,
            "type": operation.type.value,
            "payload": dump_payload(operation.payload),
            "inverse_payload": dump_payload(operation.inverse_payload) if operation.inverse_payload else None,
            "created_at": format_timestamp(now),
            "updated_at": format_timestamp(now),
        }

        try:
            async with self.get_session() as session:
                result = await session.execute(text(query), params)
                await session.commit()
                inserted = result.rowcount == 1
        except IntegrityError:
            inserted = False
        except Exception as e:
            logger.error(f"Error creating operation for {operation.shop}: {e}")
            raise DatabaseException(f"Failed to create operation: {str(e)}") from e

        if not inserted:
            active = await self.find_active_for_shop(operation.shop)
            raise ConflictException(
                CONFLICT_MESSAGE,
                shop=operation.shop,
                active_operation_id=active.id if active else None,
            )

        logger.info(f"Created operation {operation.id} ({operation.type.value}) for {operation.shop}")
        return operation

    # ------------------------- Retrieval -------------------------
    async def _fetch_one(self, query: str, params: Dict[str, Any]) -> Optional[Operation]:
        try:
            async with self.get_session() as session:
                result = await session.execute(text(query), params)
                row = result.mappings().first()
        except Exception as e:
            logger.error(f"Error reading operation: {e}")
            raise DatabaseException(f"Failed to read operation: {str(e)}") from e
        return row_to_operation(dict(row)) if row else None

    async def _fetch_all(self, query: str, params: Dict[str, Any]) -> List[Operation]:
        try:
            async with self.get_session() as session:
                result = await session.execute(text(query), params)
                rows = result.mappings().all()
        except Exception as e:
            logger.error(f"Error reading operations: {e}")
            raise DatabaseException(f"Failed to read operations: {str(e)}") from e
        return [row_to_operation(dict(row)) for row in rows]

    @with_retry(max_attempts=3, delay=0.5)
    async def find_by_id(self, operation_id: str) -> Optional[Operation]:
        """Find an operation by its id."""
        return await self._fetch_one("SELECT * FROM operations WHERE id = :id", {"id": operation_id})

    async def get(self, operation_id: str) -> Operation:
        """
        Get an operation by id.

        Raises:
            OperationNotFoundException: If it does not exist
        """
        operation = await self.find_by_id(operation_id)
        if operation is None:
            raise OperationNotFoundException(operation_id)
        return operation

    @with_retry(max_attempts=3, delay=0.5)
    async def find_by_bulk_operation_id(self, bulk_operation_id: str) -> Optional[Operation]:
        """Find the operation tracking a remote bulk operation."""
        return await self._fetch_one(
            "SELECT * FROM operations WHERE bulk_operation_id = :bulk_operation_id",
            {"bulk_operation_id": bulk_operation_id},
        )

    @with_retry(max_attempts=3, delay=0.5)
    async def find_active_for_shop(self, shop: str) -> Optional[Operation]:
        """Find the shop's CREATED or RUNNING operation, if any."""
        return await self._fetch_one(
            f"""
            SELECT * FROM operations
            WHERE shop = :shop AND status IN {ACTIVE_STATUSES}
            ORDER BY created_at DESC
            LIMIT 1
            """,
            {"shop": shop},
        )

    @with_retry(max_attempts=3, delay=0.5)
    async def find_stuck(self, shop: str, older_than: datetime) -> List[Operation]:
        """Active operations of a shop created before ``older_than``, oldest first."""
        return await self._fetch_all(
            f"""
            SELECT * FROM operations
            WHERE shop = :shop AND status IN {ACTIVE_STATUSES} AND created_at < :cutoff
            ORDER BY created_at ASC
            """,
            {"shop": shop, "cutoff": format_timestamp(older_than)},
        )

    @with_retry(max_attempts=3, delay=0.5)
    async def find_shops_with_stuck(self, older_than: datetime) -> List[str]:
        """Shops that have at least one active operation created before ``older_than``."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    text(
                        f"""
                        SELECT DISTINCT shop FROM operations
                        WHERE status IN {ACTIVE_STATUSES} AND created_at < :cutoff
                        """
                    ),
                    {"cutoff": format_timestamp(older_than)},
                )
                return [row[0] for row in result.fetchall()]
        except Exception as e:
            logger.error(f"Error finding shops with stuck operations: {e}")
            raise DatabaseException(f"Failed to find stuck operations: {str(e)}") from e

    @with_retry(max_attempts=3, delay=0.5)
    async def list_by_shop(
        self,
        shop: str,
        status: Optional[OperationStatus] = None,
        type: Optional[OperationType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Operation], int]:
        """
        List a shop's operations, newest first.

        Returns:
            Tuple[List[Operation], int]: Page of operations and total matching count
        """
        filters = ["shop = :shop"]
        params: Dict[str, Any] = {"shop": shop, "limit": limit, "offset": offset}
        if status is not None:
            filters.append("status = :status")
            params["status"] = status.value
        if type is not None:
            filters.append("type = :type")
            params["type"] = type.value
        where = " AND ".join(filters)

        operations = await self._fetch_all(
            f"SELECT * FROM operations WHERE {where} ORDER BY created_at DESC LIMIT :limit OFFSET :offset",
            params,
        )

        try:
            async with self.get_session() as session:
                result = await session.execute(text(f"SELECT COUNT(*) FROM operations WHERE {where}"), params)
                total = result.scalar() or 0
        except Exception as e:
            logger.error(f"Error counting operations for {shop}: {e}")
            raise DatabaseException(f"Failed to count operations: {str(e)}") from e

        return operations, int(total)

    @with_retry(max_attempts=3, delay=0.5)
    async def stats(self, shop: str) -> Dict[str, int]:
        """Operation counts for a shop: total, completed, failed, running."""
        query = """
        SELECT
            COUNT(*) AS total,
            SUM(CASE WHEN status = 'COMPLETED' THEN 1 ELSE 0 END) AS completed,
            SUM(CASE WHEN status = 'FAILED' THEN 1 ELSE 0 END) AS failed,
            SUM(CASE WHEN status = 'RUNNING' THEN 1 ELSE 0 END) AS running
        FROM operations
        WHERE shop = :shop
        """
        try:
            async with self.get_session() as session:
                result = await session.execute(text(query), {"shop": shop})
                row = result.mappings().first()
        except Exception as e:
            logger.error(f"Error computing stats for {shop}: {e}")
            raise DatabaseException(f"Failed to compute stats: {str(e)}") from e

        return {key: int((row or {}).get(key) or 0) for key in ("total", "completed", "failed", "running")}

    # ------------------------- Updates -------------------------
    def _build_update(self, operation_id: str, fields: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        params = {column: _to_db_value(column, value) for column, value in fields.items()}
        params["id"] = operation_id
        params["updated_at"] = format_timestamp(datetime.now(UTC))
        assignments = ", ".join(f"{column} = :{column}" for column in fields)
        set_clause = f"{assignments}, updated_at = :updated_at" if assignments else "updated_at = :updated_at"
        return set_clause, params

    @log_operation()
    async def update(self, operation_id: str, **fields: Any) -> Operation:
        """
        Update columns of an operation.

        Raises:
            OperationNotFoundException: If the operation does not exist
            DatabaseException: If the update fails
        """
        set_clause, params = self._build_update(operation_id, fields)
        affected = await self.execute_query_with_commit(
            f"UPDATE operations SET {set_clause} WHERE id = :id",
            params,
        )
        if affected == 0:
            raise OperationNotFoundException(operation_id)
        return await self.get(operation_id)

    @log_operation()
    async def update_if_active(self, operation_id: str, **fields: Any) -> Tuple[Operation, bool]:
        """
        Update an operation only while it is still CREATED or RUNNING.

        Used for terminal transitions so that concurrent reconcilers (poll
        and webhook) apply at most one write.

        Returns:
            Tuple[Operation, bool]: Stored operation and whether this call wrote it
        """
        set_clause, params = self._build_update(operation_id, fields)
        affected = await self.execute_query_with_commit(
            f"UPDATE operations SET {set_clause} WHERE id = :id AND status IN {ACTIVE_STATUSES}",
            params,
        )
        return await self.get(operation_id), affected > 0

    # ------------------------- Cleanup -------------------------
    @log_operation()
    async def delete_terminal_older_than(self, cutoff: datetime) -> int:
        """
        Delete terminal operations created before ``cutoff``.

        Returns:
            int: Number of deleted rows
        """
        deleted = await self.execute_query_with_commit(
            f"DELETE FROM operations WHERE status IN {TERMINAL_STATUSES} AND created_at < :cutoff",
            {"cutoff": format_timestamp(cutoff)},
        )
        if deleted:
            logger.info(f"Deleted {deleted} old operations")
        return deleted
