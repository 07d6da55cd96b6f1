"""
Errors raised by the upload lifecycle.

The API layer maps these onto HTTP responses: ValidationError is a
client fault, NotFound a missing record, BackendUnavailable a failing
storage or database dependency.
"""


class UploadError(Exception):
    """Base class for upload lifecycle errors."""
    pass


class ValidationError(UploadError):
    """Raised when a required field is missing or malformed."""
    pass


class NotFound(UploadError):
    """Raised when a referenced file record doesn't exist."""

    def __init__(self, file_id: int) -> None:
        super().__init__(f"File record not found: {file_id}")
        self.file_id = file_id


class BackendUnavailable(UploadError):
    """Raised when object storage or the metadata database fails."""
    pass
