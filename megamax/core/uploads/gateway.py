"""
Read and delete access to file records.

Deletion here is a metadata tombstone only. The object in storage is
left alone and keeps whatever lifecycle the bucket gives it.
"""

from .coordinator import FileStore
from .models import FileRecord

DEFAULT_LIST_LIMIT = 200


class FileGateway:
    """Lists and deletes file records. Never talks to object storage."""

    def __init__(self, store: FileStore, max_limit: int = DEFAULT_LIST_LIMIT) -> None:
        if max_limit <= 0:
            raise ValueError("max_limit must be positive")
        self._store = store
        self._max_limit = max_limit

    async def list(self, limit: int = DEFAULT_LIST_LIMIT) -> list[FileRecord]:
        """Newest records first, never more than max_limit of them."""
        limit = max(1, min(limit, self._max_limit))
        return await self._store.list_recent(limit)

    async def delete(self, file_id: int) -> None:
        """Remove a record. Deleting an id that doesn't exist is not an error."""
        await self._store.delete(file_id)
