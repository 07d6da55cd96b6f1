"""
Object storage integration: presigned upload grants.

Supports AWS S3 and S3-compatible stores through boto3.
Includes mock mode for local development without credentials.
"""

from .client import (
    MockCredentialIssuer,
    S3CredentialIssuer,
    StorageConfig,
    create_credential_issuer,
)

__all__ = [
    "MockCredentialIssuer",
    "S3CredentialIssuer",
    "StorageConfig",
    "create_credential_issuer",
]
