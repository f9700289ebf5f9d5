"""
Persistence adapters.

Services depend on the repository instead of touching SQLAlchemy sessions
directly.
"""

from .sql_repository import NotFoundError, SQLRepository

__all__ = ["NotFoundError", "SQLRepository"]
