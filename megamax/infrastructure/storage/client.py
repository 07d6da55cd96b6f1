"""
Upload grant issuance for S3-compatible object storage.

Clients upload straight to the bucket with a presigned POST. The policy
in each POST pins the object key, caps the body size and expires after
a fixed number of seconds, so nothing here needs to remember which
grants were handed out.

Mock mode returns fake grants from memory, enabling API testing without
provisioning a bucket.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ...core.uploads.coordinator import CredentialIssuer
from ...core.uploads.errors import BackendUnavailable, ValidationError
from ...core.uploads.models import UploadGrant

logger = logging.getLogger(__name__)


@dataclass
class StorageConfig:
    """
    Configuration for S3-compatible storage.

    Credentials are optional: when unset, boto3 resolves them from its
    usual chain (environment, shared config, instance role).
    """
    bucket_name: str
    region: str = "us-east-1"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    endpoint_url: Optional[str] = None


def _check_grant_request(storage_key: str, max_size_bytes: int, ttl_seconds: int) -> None:
    if not storage_key:
        raise ValidationError("storage key required")
    if max_size_bytes <= 0:
        raise ValidationError("max_size_bytes must be positive")
    if ttl_seconds <= 0:
        raise ValidationError("ttl_seconds must be positive")


def _build_post_policy(
    max_size_bytes: int,
    content_type: Optional[str],
) -> tuple[dict[str, str], list]:
    """Form fields and policy conditions for one presigned POST."""
    fields: dict[str, str] = {}
    conditions: list = [["content-length-range", 0, max_size_bytes]]
    if content_type:
        fields["Content-Type"] = content_type
        conditions.append({"Content-Type": content_type})
    return fields, conditions


class S3CredentialIssuer:
    """
    Issues presigned POST grants with boto3.

    generate_presigned_post signs locally with the configured credentials;
    it only fails when the client is misconfigured or no credentials can
    be resolved. Either way the caller sees BackendUnavailable.

    issue_grant is async to match the CredentialIssuer protocol even
    though signing is synchronous and does no network I/O.
    """

    def __init__(self, config: StorageConfig) -> None:
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for S3 storage. Install with: pip install boto3"
            )

        self._config = config

        boto_config = Config(signature_version='s3v4')

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 credential issuer",
            extra={
                "bucket": config.bucket_name,
                "region": config.region,
                "endpoint": config.endpoint_url,
            }
        )

    async def issue_grant(
        self,
        storage_key: str,
        max_size_bytes: int,
        ttl_seconds: int,
        content_type: Optional[str] = None,
    ) -> UploadGrant:
        """
        Presign a POST that allows one object at storage_key.

        The content-length-range condition makes S3 reject bodies larger
        than max_size_bytes; the policy expiration makes it reject the
        POST after ttl_seconds.
        """
        _check_grant_request(storage_key, max_size_bytes, ttl_seconds)
        fields, conditions = _build_post_policy(max_size_bytes, content_type)
        issued_at = datetime.now(timezone.utc)

        try:
            presigned = self._s3_client.generate_presigned_post(
                Bucket=self._config.bucket_name,
                Key=storage_key,
                Fields=fields or None,
                Conditions=conditions,
                ExpiresIn=ttl_seconds,
            )
        except Exception as e:
            logger.error(
                "Failed to presign upload",
                extra={"storage_key": storage_key, "error": str(e)}
            )
            raise BackendUnavailable(f"Grant issuance failed: {e}") from e

        logger.debug(
            "Issued upload grant",
            extra={
                "storage_key": storage_key,
                "max_size_bytes": max_size_bytes,
                "ttl_seconds": ttl_seconds,
            }
        )

        return UploadGrant(
            storage_key=storage_key,
            max_size_bytes=max_size_bytes,
            expires_at=issued_at + timedelta(seconds=ttl_seconds),
            url=presigned["url"],
            fields={k: str(v) for k, v in presigned["fields"].items()},
        )


# ---------------------------------------------------------------------------
# Mock Issuer for Local Development
# ---------------------------------------------------------------------------

class MockCredentialIssuer:
    """
    In-memory grant issuer for local development and tests.

    Grants carry a mock:// URL and the same key/content-type fields a
    real presigned POST would. Every grant is kept in `issued` so tests
    can check whether (and how) the issuer was called.
    """

    def __init__(self, bucket_name: str = "mock-bucket") -> None:
        self._bucket_name = bucket_name
        self.issued: list[UploadGrant] = []
        self.unavailable = False
        logger.info("Initialized mock credential issuer (in-memory)")

    async def issue_grant(
        self,
        storage_key: str,
        max_size_bytes: int,
        ttl_seconds: int,
        content_type: Optional[str] = None,
    ) -> UploadGrant:
        """Return a fake grant, or fail when marked unavailable."""
        _check_grant_request(storage_key, max_size_bytes, ttl_seconds)
        if self.unavailable:
            raise BackendUnavailable("mock storage backend unavailable")

        fields, _ = _build_post_policy(max_size_bytes, content_type)
        fields["key"] = storage_key
        grant = UploadGrant(
            storage_key=storage_key,
            max_size_bytes=max_size_bytes,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds),
            url=f"mock://storage/{self._bucket_name}",
            fields=fields,
        )
        self.issued.append(grant)

        logger.debug(
            "Issued mock upload grant",
            extra={"storage_key": storage_key, "max_size_bytes": max_size_bytes}
        )

        return grant


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_credential_issuer(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> CredentialIssuer:
    """
    Create a credential issuer based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory issuer

    Returns:
        CredentialIssuer implementation (S3 or Mock)
    """
    if mock_mode:
        return MockCredentialIssuer()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3CredentialIssuer(config)
