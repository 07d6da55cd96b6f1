"""
FastAPI dependency injection.

The connection pool, credential issuer and the services built on them
are created once in the application lifespan (see create_services) and
kept on app.state. Dependencies only hand those instances to route
handlers, so:
- Routes don't instantiate their own dependencies (easier to test)
- There are no module-level singletons; each app owns its resources
- The coordinator's key stamp keeps advancing across requests
"""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from ..config.settings import Settings
from ..core.uploads import CredentialIssuer, FileGateway, UploadCoordinator, UploadPolicy
from ..infrastructure.postgres import (
    FileRepository,
    PostgresConfig,
    bootstrap_schema,
    create_postgres_pool,
)
from ..infrastructure.postgres.client import ConnectionPool
from ..infrastructure.storage import StorageConfig, create_credential_issuer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Process-scoped services
# ---------------------------------------------------------------------------

@dataclass
class Services:
    """Everything a request may need, built once per application."""
    pool: ConnectionPool
    issuer: CredentialIssuer
    repository: FileRepository
    coordinator: UploadCoordinator
    gateway: FileGateway

    def close(self) -> None:
        self.pool.close()


def create_services(settings: Settings) -> Services:
    """
    Build the pool, issuer and services from settings.

    Mock modes swap in the in-memory pool and issuer. The schema is
    bootstrapped before the first request is served.
    """
    if settings.database_mock_mode:
        pool = create_postgres_pool(mock_mode=True)
    else:
        pool = create_postgres_pool(
            config=PostgresConfig(
                dsn=settings.database_url,
                ssl_mode=settings.effective_ssl_mode,
                min_connections=settings.database_pool_min,
                max_connections=settings.database_pool_max,
            )
        )

    try:
        bootstrap_schema(pool)

        if settings.storage_mock_mode:
            issuer = create_credential_issuer(mock_mode=True)
        else:
            issuer = create_credential_issuer(
                config=StorageConfig(
                    bucket_name=settings.s3_bucket,
                    region=settings.aws_region,
                    access_key_id=settings.aws_access_key_id,
                    secret_access_key=settings.aws_secret_access_key,
                    endpoint_url=settings.s3_endpoint_url,
                )
            )
    except Exception:
        pool.close()
        raise

    repository = FileRepository(pool)
    policy = UploadPolicy(
        key_prefix=settings.storage_key_prefix,
        anonymous_user_id=settings.anonymous_user_id,
        max_size_bytes=settings.max_upload_size_bytes,
        ttl_seconds=settings.upload_url_ttl_seconds,
        record_declared_size=settings.record_declared_size,
    )

    logger.info(
        "Created application services",
        extra={
            "mock_mode": {
                "database": settings.database_mock_mode,
                "storage": settings.storage_mock_mode,
            }
        }
    )

    return Services(
        pool=pool,
        issuer=issuer,
        repository=repository,
        coordinator=UploadCoordinator(issuer, repository, policy),
        gateway=FileGateway(repository, max_limit=settings.list_limit_max),
    )


# ---------------------------------------------------------------------------
# Request Dependencies
# ---------------------------------------------------------------------------

def get_app_settings(request: Request) -> Settings:
    """Settings the running application was created with."""
    return request.app.state.settings


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_upload_coordinator(
    services: Annotated[Services, Depends(get_services)],
) -> UploadCoordinator:
    return services.coordinator


def get_file_gateway(
    services: Annotated[Services, Depends(get_services)],
) -> FileGateway:
    return services.gateway


def get_file_repository(
    services: Annotated[Services, Depends(get_services)],
) -> FileRepository:
    return services.repository


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
UploadCoordinatorDep = Annotated[UploadCoordinator, Depends(get_upload_coordinator)]
FileGatewayDep = Annotated[FileGateway, Depends(get_file_gateway)]
FileRepositoryDep = Annotated[FileRepository, Depends(get_file_repository)]
