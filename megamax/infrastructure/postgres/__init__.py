"""
PostgreSQL persistence for file metadata.

Includes an in-memory mock pool for local development without a database.
"""

from .client import (
    MockPostgresPool,
    PostgresConfig,
    PostgresPool,
    bootstrap_schema,
    create_postgres_pool,
)
from .repositories import FileRepository

__all__ = [
    "FileRepository",
    "MockPostgresPool",
    "PostgresConfig",
    "PostgresPool",
    "bootstrap_schema",
    "create_postgres_pool",
]
