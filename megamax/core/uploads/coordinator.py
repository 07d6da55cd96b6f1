"""
Upload coordination.

The coordinator runs the two checkpoints of an upload:

1. begin_upload: pick a fresh storage key, get a grant for it from the
   credential issuer, then register a metadata record.
2. confirm_upload: record the size the client reports after writing
   the object.

The bytes never pass through here. The coordinator only decides where
they go and remembers what the client said about them.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .errors import NotFound, ValidationError
from .models import FileRecord, UploadGrant, UploadIntent


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class CredentialIssuer(Protocol):
    """
    Something that can mint a delegated write credential for one key.

    Implementations are stateless per call and raise BackendUnavailable
    when the storage backend can't be reached.
    """

    async def issue_grant(
        self,
        storage_key: str,
        max_size_bytes: int,
        ttl_seconds: int,
        content_type: Optional[str] = None,
    ) -> UploadGrant:
        """Return a grant for a single write to storage_key."""
        ...


class FileStore(Protocol):
    """
    Durable file metadata.

    Every method maps to one atomic statement in the backing store, and
    is awaitable so a blocking driver never stalls the event loop.
    """

    async def register(
        self,
        owner_id: str,
        storage_key: str,
        display_name: str,
        content_type: Optional[str],
        size_bytes: int,
    ) -> FileRecord:
        ...

    async def update_size(self, file_id: int, size_bytes: int) -> bool:
        """Overwrite the size. Returns False when no record matched."""
        ...

    async def list_recent(self, limit: int) -> list[FileRecord]:
        ...

    async def delete(self, file_id: int) -> None:
        ...


@dataclass(frozen=True)
class UploadPolicy:
    """Knobs for begin_upload, usually filled from Settings."""
    key_prefix: str = "uploads"
    anonymous_user_id: str = "demo-user"
    max_size_bytes: int = 50 * 1024 * 1024 * 1024
    ttl_seconds: int = 600
    record_declared_size: bool = False

    def __post_init__(self) -> None:
        if self.max_size_bytes <= 0:
            raise ValueError("max_size_bytes must be positive")
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")


def _key_segment(value: str) -> str:
    """Keep a user-supplied value inside a single key segment."""
    return value.strip().replace("/", "_").replace("\\", "_")


class UploadCoordinator:
    """
    Issues upload grants and reconciles confirmations into file records.

    The grant is always issued before the record is written. If the
    insert then fails, the client is left holding a grant that simply
    expires; the reverse order could leave a record whose grant never
    existed.

    There is no locking. Concurrent confirmations for the same file are
    last-write-wins in the store.
    """

    def __init__(
        self,
        issuer: CredentialIssuer,
        store: FileStore,
        policy: Optional[UploadPolicy] = None,
        clock: Callable[[], float] = time.time,
        token_factory: Callable[[], str] = lambda: secrets.token_hex(4),
    ) -> None:
        self._issuer = issuer
        self._store = store
        self._policy = policy or UploadPolicy()
        self._clock = clock
        self._token_factory = token_factory
        self._last_stamp = 0

    async def begin_upload(
        self,
        owner_id: Optional[str],
        filename: Optional[str],
        content_type: Optional[str] = None,
        declared_size: Optional[int] = None,
    ) -> UploadIntent:
        """
        Register an upload and return where and how to write it.

        Raises:
            ValidationError: filename missing or declared size negative.
                The issuer is not called in that case.
            BackendUnavailable: grant issuance or the insert failed.
        """
        if not filename or not filename.strip():
            raise ValidationError("filename required")
        if declared_size is not None and declared_size < 0:
            raise ValidationError("size must not be negative")

        owner = owner_id or self._policy.anonymous_user_id
        storage_key = self.build_storage_key(owner, filename)

        grant = await self._issuer.issue_grant(
            storage_key,
            self._policy.max_size_bytes,
            self._policy.ttl_seconds,
            content_type=content_type or None,
        )

        initial_size = (declared_size or 0) if self._policy.record_declared_size else 0
        record = await self._store.register(
            owner_id=owner,
            storage_key=storage_key,
            display_name=filename,
            content_type=content_type or None,
            size_bytes=initial_size,
        )

        return UploadIntent(
            file_id=record.id,
            storage_key=storage_key,
            grant=grant,
            declared_size=declared_size or 0,
        )

    async def confirm_upload(
        self,
        file_id: Optional[int],
        actual_size: Optional[int] = None,
    ) -> None:
        """
        Record the size the client reports for an uploaded file.

        Calling it again simply overwrites the size. A missing size is
        stored as 0.

        Raises:
            ValidationError: no file id, or a negative size.
            NotFound: no record with that id.
        """
        if not file_id:
            raise ValidationError("uploadId required")
        size = actual_size or 0
        if size < 0:
            raise ValidationError("size must not be negative")

        if not await self._store.update_size(file_id, size):
            raise NotFound(file_id)

    def build_storage_key(self, owner_id: str, filename: str) -> str:
        """
        Build a never-reused key: owner, a strictly increasing millisecond
        stamp and a random token, followed by the original filename.
        """
        stamp = self._next_stamp()
        token = self._token_factory()
        return (
            f"{self._policy.key_prefix}/{_key_segment(owner_id)}/"
            f"{stamp}_{token}_{_key_segment(filename)}"
        )

    def _next_stamp(self) -> int:
        # No await between read and write, so this is atomic on the event loop.
        stamp = max(int(self._clock() * 1000), self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp
