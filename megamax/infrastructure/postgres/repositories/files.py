"""
PostgreSQL repository for file metadata.

This module implements the repository pattern for file records:
1. Translates between FileRecord and rows of the files table
2. Encapsulates all SQL queries
3. Issues exactly one statement per operation, so each call is atomic
   on its own and needs no application-level locking

Nothing here touches object storage. Deleting a row leaves the object
in the bucket.
"""

import asyncio
import logging
from typing import Optional

from ....core.uploads.models import FileRecord, Visibility
from ..client import ConnectionPool

logger = logging.getLogger(__name__)

FILE_COLUMNS = "id, user_id, key, name, content_type, size, visibility, created_at, confirmed_at"

# Creates the owner on first reference, then the file row, in one statement.
# The foreign key is checked at the end of the statement, after the CTE ran.
_REGISTER_SQL = f"""
    WITH owner AS (
        INSERT INTO users (id) VALUES (%s)
        ON CONFLICT (id) DO NOTHING
    )
    INSERT INTO files (user_id, key, name, content_type, size)
    VALUES (%s, %s, %s, %s, %s)
    RETURNING {FILE_COLUMNS}
"""

_UPDATE_SIZE_SQL = """
    UPDATE files
    SET size = %s,
        confirmed_at = NOW()
    WHERE id = %s
    RETURNING id
"""

_LIST_RECENT_SQL = f"""
    SELECT {FILE_COLUMNS}
    FROM files
    ORDER BY created_at DESC, id DESC
    LIMIT %s
"""

_DELETE_SQL = "DELETE FROM files WHERE id = %s"


class FileRepository:
    """
    Repository for file record persistence.

    Each method corresponds to a use case the application needs:
    - register: Insert a provisional record for a new upload
    - update_size: Record the size reported on confirmation
    - list_recent: Newest records for display
    - delete: Remove a record (metadata only)

    psycopg2 is blocking, so every statement runs in a worker thread via
    asyncio.to_thread and the event loop keeps serving other requests
    while it waits. The pool hands each thread its own connection.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    async def register(
        self,
        owner_id: str,
        storage_key: str,
        display_name: str,
        content_type: Optional[str],
        size_bytes: int,
    ) -> FileRecord:
        """Insert a file row (and its owner if new). Returns the stored record."""
        try:
            row = await asyncio.to_thread(
                self._execute,
                _REGISTER_SQL,
                (owner_id, owner_id, storage_key, display_name, content_type, size_bytes),
                "one",
            )
        except Exception as e:
            logger.error(
                "Failed to register file",
                extra={"owner_id": owner_id, "storage_key": storage_key, "error": str(e)}
            )
            raise

        record = self._row_to_record(row)

        logger.info(
            "Registered file",
            extra={"file_id": record.id, "owner_id": owner_id, "storage_key": storage_key}
        )

        return record

    async def update_size(self, file_id: int, size_bytes: int) -> bool:
        """
        Overwrite the stored size and mark the record confirmed.

        Last write wins; sizes are never added together.
        Returns False if no record has this id.
        """
        try:
            row = await asyncio.to_thread(
                self._execute, _UPDATE_SIZE_SQL, (size_bytes, file_id), "one"
            )
        except Exception as e:
            logger.error(
                "Failed to update file size",
                extra={"file_id": file_id, "error": str(e)}
            )
            raise

        updated = row is not None
        logger.info(
            "Confirmed file size" if updated else "Size update matched no file",
            extra={"file_id": file_id, "size_bytes": size_bytes}
        )

        return updated

    async def list_recent(self, limit: int = 200) -> list[FileRecord]:
        """Newest first by creation time; ties broken by id."""
        rows = await asyncio.to_thread(self._execute, _LIST_RECENT_SQL, (limit,), "all")
        return [self._row_to_record(row) for row in rows]

    async def delete(self, file_id: int) -> None:
        """Delete a row if it exists. A missing row is not an error."""
        deleted = await asyncio.to_thread(self._execute, _DELETE_SQL, (file_id,), "rowcount")

        logger.info(
            "Deleted file metadata",
            extra={"file_id": file_id, "rows": deleted}
        )

    async def ping(self) -> bool:
        """Run a trivial query; used by the readiness check."""
        row = await asyncio.to_thread(self._execute, "SELECT 1", None, "one")
        return row is not None

    def _execute(self, sql: str, params: Optional[tuple], result: str):
        """
        Run one statement on a pooled connection, in the calling thread.

        result picks what comes back: "one" (fetchone), "all" (fetchall)
        or "rowcount".
        """
        with self._pool.connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, params)
                if result == "one":
                    return cursor.fetchone()
                if result == "all":
                    return cursor.fetchall()
                return cursor.rowcount
            finally:
                cursor.close()

    def _row_to_record(self, row: tuple) -> FileRecord:
        (
            file_id,
            user_id,
            key,
            name,
            content_type,
            size,
            visibility,
            created_at,
            confirmed_at,
        ) = row
        return FileRecord(
            id=int(file_id),
            owner_id=user_id,
            storage_key=key,
            display_name=name,
            content_type=content_type,
            size_bytes=int(size or 0),
            visibility=Visibility(visibility or Visibility.PRIVATE.value),
            created_at=created_at,
            confirmed_at=confirmed_at,
        )
