"""
Domain models for the upload lifecycle.

These models describe logical files and the grants that let a client
write one object directly to storage. They have no dependencies on
boto3, PostgreSQL or FastAPI; the infrastructure layer translates rows
and presigned posts into these types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Plan(Enum):
    """Billing plan of a user. New users start on the free plan."""
    FREE = "free"
    PAID = "paid"


class Visibility(Enum):
    """Who may see a file. Nothing in this service changes it from PRIVATE."""
    PRIVATE = "private"
    PUBLIC = "public"


class UploadState(Enum):
    """
    Where an upload attempt is in its lifecycle.

    REQUESTED only exists while begin_upload is running: the grant may
    be issued but no record has been written yet. There is no FAILED
    state; an attempt that is never confirmed stays REGISTERED.
    """
    REQUESTED = "requested"
    REGISTERED = "registered"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class User:
    """An external identity, taken at face value and created lazily."""
    id: str
    plan: Plan = Plan.FREE


@dataclass(frozen=True)
class UploadGrant:
    """
    A time-boxed, size-bounded permission to write one object.

    url and fields are backend specific; the client receives them
    verbatim and posts them along with the file bytes.
    """
    storage_key: str
    max_size_bytes: int
    expires_at: datetime
    url: str
    fields: dict[str, str] = field(default_factory=dict)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


@dataclass
class FileRecord:
    """
    Metadata for one logical file.

    size_bytes is whatever the client last reported. It is never checked
    against the stored object.
    """
    id: int
    owner_id: str
    storage_key: str
    display_name: str
    created_at: datetime
    content_type: Optional[str] = None
    size_bytes: int = 0
    visibility: Visibility = Visibility.PRIVATE
    confirmed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.size_bytes < 0:
            raise ValueError("size_bytes cannot be negative")

    @property
    def state(self) -> UploadState:
        if self.confirmed_at is not None:
            return UploadState.CONFIRMED
        return UploadState.REGISTERED

    @property
    def is_confirmed(self) -> bool:
        return self.state is UploadState.CONFIRMED


@dataclass(frozen=True)
class UploadIntent:
    """What begin_upload hands back: the new record id, its key and the grant."""
    file_id: int
    storage_key: str
    grant: UploadGrant
    declared_size: int = 0
