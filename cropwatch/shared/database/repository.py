"""Base repository pattern for append-only tables.

Provides inserts and single-statement queries with consistent error mapping.
Rows are never updated or deleted through this layer.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

import psycopg2
from psycopg2 import errors as pg_errors

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class DuplicateError(RepositoryError):
    """Duplicate entity already exists."""
    pass


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository for append-only entities.

    Subclasses map entities to columns while inheriting:
    - Connection management
    - Error mapping to RepositoryError
    - Logging patterns
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager
            table_name: Name of the database table
        """
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert entity to database parameters.

        Args:
            entity: Entity instance

        Returns:
            Dictionary of column names to values
        """
        pass

    def _execute(self, query: str, params: Any = None, fetch: Optional[str] = None, commit: bool = False):
        """Run a single statement and map driver failures.

        Args:
            query: SQL with %s placeholders
            params: Query parameters
            fetch: "one", "all" or None
            commit: Commit after executing

        Raises:
            DuplicateError: On unique constraint violation
            RepositoryError: On any other database failure
        """
        try:
            with self.connection_manager.get_connection() as conn:
                try:
                    with conn.cursor() as cur:
                        cur.execute(query, params)
                        if fetch == "one":
                            result = cur.fetchone()
                        elif fetch == "all":
                            result = cur.fetchall()
                        else:
                            result = None
                    if commit:
                        conn.commit()
                    return result
                except psycopg2.Error:
                    conn.rollback()
                    raise
        except pg_errors.UniqueViolation as e:
            logger.error(
                "REPOSITORY_DUPLICATE",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise DuplicateError(f"Duplicate row in {self.table_name}: {e}") from e
        except psycopg2.Error as e:
            logger.error(
                "REPOSITORY_QUERY_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Query on {self.table_name} failed: {e}") from e

    def insert(self, entity: T) -> None:
        """Append an entity. Existing rows are never overwritten.

        Args:
            entity: Entity to insert

        Raises:
            DuplicateError: If the id already exists
        """
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        values = list(params.values())
        placeholders = ["%s"] * len(values)

        query = (
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)})"
        )
        self._execute(query, values, commit=True)

