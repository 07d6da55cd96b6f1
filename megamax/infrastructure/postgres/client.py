"""
PostgreSQL connection management.

One connection pool is created at startup and shared by every request.
Repositories borrow a connection per statement through
`pool.connection()`, which commits on success, rolls back on failure and
turns driver errors into BackendUnavailable.

Includes mock mode with in-memory storage for local development.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generator, Optional, Protocol

from ...core.uploads.errors import BackendUnavailable

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT,
        plan TEXT NOT NULL DEFAULT 'free' CHECK (plan IN ('free', 'paid')),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        key TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        content_type TEXT,
        size BIGINT NOT NULL DEFAULT 0 CHECK (size >= 0),
        visibility TEXT NOT NULL DEFAULT 'private' CHECK (visibility IN ('private', 'public')),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        confirmed_at TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS files_created_at_idx
        ON files (created_at DESC, id DESC)
    """,
)


class ConnectionPool(Protocol):
    """
    Protocol for the shared connection handle.

    Using a protocol means tests can provide the mock pool without
    importing psycopg2.
    """

    def connection(self): ...
    def close(self) -> None: ...


@dataclass
class PostgresConfig:
    """Configuration for the PostgreSQL pool."""
    dsn: str
    ssl_mode: Optional[str] = None
    min_connections: int = 1
    max_connections: int = 10


class PostgresPool:
    """
    Thread-safe psycopg2 connection pool.

    psycopg2 is imported here (not at module level) so that mock mode
    runs without the driver loaded.
    """

    def __init__(self, config: PostgresConfig) -> None:
        try:
            import psycopg2
            from psycopg2.pool import ThreadedConnectionPool
        except ImportError:
            raise ImportError(
                "psycopg2 is required for PostgreSQL. Install with: pip install psycopg2-binary"
            )

        self._driver_error = psycopg2.Error
        connect_kwargs = {}
        if config.ssl_mode:
            connect_kwargs["sslmode"] = config.ssl_mode

        try:
            self._pool = ThreadedConnectionPool(
                config.min_connections,
                config.max_connections,
                dsn=config.dsn,
                **connect_kwargs,
            )
        except psycopg2.Error as e:
            logger.error(
                "PostgreSQL connection failed",
                extra={"error": str(e)}
            )
            raise BackendUnavailable(f"Database connection failed: {e}") from e

        logger.info(
            "Initialized PostgreSQL connection pool",
            extra={
                "min_connections": config.min_connections,
                "max_connections": config.max_connections,
                "ssl_mode": config.ssl_mode,
            }
        )

    @contextmanager
    def connection(self) -> Generator:
        """
        Borrow a connection for one unit of work.

        Usage:
            with pool.connection() as conn:
                cursor = conn.cursor()
                # do work
        """
        try:
            conn = self._pool.getconn()
        except self._driver_error as e:
            logger.error("Could not get a database connection", extra={"error": str(e)})
            raise BackendUnavailable(f"Database connection failed: {e}") from e

        try:
            yield conn
            conn.commit()
        except self._driver_error as e:
            self._rollback(conn)
            logger.error("Database statement failed", extra={"error": str(e)})
            raise BackendUnavailable(f"Database error: {e}") from e
        except Exception:
            self._rollback(conn)
            raise
        finally:
            self._pool.putconn(conn, close=bool(conn.closed))

    def close(self) -> None:
        self._pool.closeall()
        logger.info("Closed PostgreSQL connection pool")

    def _rollback(self, conn) -> None:
        try:
            conn.rollback()
        except self._driver_error as e:
            logger.warning(
                "Error rolling back PostgreSQL transaction",
                extra={"error": str(e)}
            )


def bootstrap_schema(pool: ConnectionPool) -> None:
    """Create the users and files tables if they don't exist yet."""
    with pool.connection() as conn:
        cursor = conn.cursor()
        try:
            for statement in SCHEMA_STATEMENTS:
                cursor.execute(statement)
        finally:
            cursor.close()

    logger.info("Database schema ready")


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

class MockDatabaseError(Exception):
    """Raised by the mock cursor where PostgreSQL would raise a constraint error."""
    pass


class MockPostgresCursor:
    """
    Mock PostgreSQL cursor for testing.

    Implements just enough of the DB-API cursor interface to support
    FileRepository without a real database. Queries are recognised by
    pattern and row tuples follow the repository's column order:
    id, user_id, key, name, content_type, size, visibility,
    created_at, confirmed_at.

    Repositories run statements from worker threads, so each statement
    is applied under the connection's lock.
    """

    def __init__(self, storage: dict, state: dict, lock: threading.Lock) -> None:
        self._storage = storage
        self._state = state
        self._lock = lock
        self._results: list = []
        self._rowcount: int = -1

    def execute(self, query: str, params: Optional[tuple] = None) -> None:
        """Execute a query against mock storage."""
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        query_upper = " ".join(query.split()).upper()
        with self._lock:
            self._results = []
            self._rowcount = -1
            self._dispatch(query_upper, params or ())

    def _dispatch(self, query_upper: str, params: tuple) -> None:
        if query_upper.startswith("CREATE"):
            return
        if "INSERT INTO FILES" in query_upper:
            self._handle_insert_file(params)
        elif query_upper.startswith("UPDATE FILES"):
            self._handle_update_size(params)
        elif query_upper.startswith("DELETE FROM FILES"):
            self._handle_delete_file(params)
        elif query_upper.startswith("SELECT 1"):
            self._results = [(1,)]
        elif query_upper.startswith("SELECT") and "FROM FILES" in query_upper:
            self._handle_select_files(params)
        else:
            raise MockDatabaseError(f"Unsupported mock query: {query_upper[:60]}")

    def _handle_insert_file(self, params: tuple) -> None:
        """Lazily create the owner, then insert the file row."""
        owner_id, user_id, key, name, content_type, size = params
        files = self._storage["files"]
        if any(row["key"] == key for row in files.values()):
            raise MockDatabaseError(f"duplicate key value violates unique constraint: {key}")
        if size < 0:
            raise MockDatabaseError("new row violates check constraint files_size_check")

        now = datetime.now(timezone.utc)
        self._storage["users"].setdefault(
            owner_id,
            {"id": owner_id, "email": None, "plan": "free", "created_at": now},
        )

        self._state["next_file_id"] += 1
        file_id = self._state["next_file_id"]
        files[file_id] = {
            "id": file_id,
            "user_id": user_id,
            "key": key,
            "name": name,
            "content_type": content_type,
            "size": size,
            "visibility": "private",
            "created_at": now,
            "confirmed_at": None,
        }
        self._results = [self._as_tuple(files[file_id])]
        self._rowcount = 1

    def _handle_update_size(self, params: tuple) -> None:
        size, file_id = params
        row = self._storage["files"].get(file_id)
        if row is None:
            self._rowcount = 0
            return
        if size < 0:
            raise MockDatabaseError("new row violates check constraint files_size_check")
        row["size"] = size
        row["confirmed_at"] = datetime.now(timezone.utc)
        self._results = [(file_id,)]
        self._rowcount = 1

    def _handle_delete_file(self, params: tuple) -> None:
        (file_id,) = params
        removed = self._storage["files"].pop(file_id, None)
        self._rowcount = 1 if removed else 0

    def _handle_select_files(self, params: tuple) -> None:
        (limit,) = params
        rows = sorted(
            self._storage["files"].values(),
            key=lambda row: (row["created_at"], row["id"]),
            reverse=True,
        )
        self._results = [self._as_tuple(row) for row in rows[:limit]]
        self._rowcount = len(self._results)

    @staticmethod
    def _as_tuple(row: dict) -> tuple:
        return (
            row["id"],
            row["user_id"],
            row["key"],
            row["name"],
            row["content_type"],
            row["size"],
            row["visibility"],
            row["created_at"],
            row["confirmed_at"],
        )

    def fetchone(self):
        """Fetch one row from results."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return self._results

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass

    @property
    def rowcount(self) -> int:
        """Return number of rows affected."""
        return self._rowcount


class MockPostgresConnection:
    """
    Mock PostgreSQL connection for local development.

    Stores data in memory using a simple dictionary structure.
    Every statement applies immediately, so commit and rollback are
    no-ops.
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {id: row_dict}}
        self._storage: dict[str, dict] = {
            "users": {},
            "files": {},
        }
        self._state = {"next_file_id": 0}
        self._lock = threading.Lock()

        logger.info("Initialized mock PostgreSQL connection (in-memory)")

    def cursor(self) -> MockPostgresCursor:
        """Create a mock cursor."""
        return MockPostgresCursor(self._storage, self._state, self._lock)

    def commit(self) -> None:
        """Commit transaction (no-op for mock, always auto-commits)."""
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        """Rollback transaction (no-op for mock)."""
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Close connection (no-op for mock)."""
        logger.debug("Mock connection close")

    def _get_user(self, user_id: str) -> Optional[dict]:
        """Get a user row from mock storage (for test assertions)."""
        return self._storage["users"].get(user_id)


class MockPostgresPool:
    """
    Pool facade over a single shared mock connection.

    Sharing one connection means data persists across requests for as
    long as the pool lives.
    """

    def __init__(self) -> None:
        self.mock_connection = MockPostgresConnection()

    @contextmanager
    def connection(self) -> Generator[MockPostgresConnection, None, None]:
        try:
            yield self.mock_connection
        except MockDatabaseError as e:
            logger.error("Mock database statement failed", extra={"error": str(e)})
            raise BackendUnavailable(f"Database error: {e}") from e

    def close(self) -> None:
        self.mock_connection.close()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_postgres_pool(
    config: Optional[PostgresConfig] = None,
    mock_mode: bool = False,
) -> ConnectionPool:
    """
    Create the process-wide connection pool.

    Args:
        config: PostgreSQL configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory pool

    Returns:
        ConnectionPool implementation (real or mock)
    """
    if mock_mode:
        return MockPostgresPool()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return PostgresPool(config)
