"""
Upload lifecycle logic.

Contains the domain models, the upload coordinator and the listing
gateway, plus the protocols the infrastructure layer implements.
"""

from .coordinator import CredentialIssuer, FileStore, UploadCoordinator, UploadPolicy
from .errors import BackendUnavailable, NotFound, UploadError, ValidationError
from .gateway import FileGateway
from .models import (
    FileRecord,
    Plan,
    UploadGrant,
    UploadIntent,
    UploadState,
    User,
    Visibility,
)

__all__ = [
    "BackendUnavailable",
    "CredentialIssuer",
    "FileGateway",
    "FileRecord",
    "FileStore",
    "NotFound",
    "Plan",
    "UploadCoordinator",
    "UploadError",
    "UploadGrant",
    "UploadIntent",
    "UploadPolicy",
    "UploadState",
    "User",
    "ValidationError",
    "Visibility",
]
