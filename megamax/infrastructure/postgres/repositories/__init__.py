"""
Repository pattern implementations for PostgreSQL.

Repositories translate between domain models and database representations.
"""

from .files import FileRepository

__all__ = ["FileRepository"]
