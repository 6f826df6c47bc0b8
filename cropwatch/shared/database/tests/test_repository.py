"""Tests for base repository pattern."""
import pytest
from contextlib import contextmanager
from unittest.mock import MagicMock
from dataclasses import dataclass
from typing import Any, Dict

import psycopg2
from psycopg2 import errors as pg_errors

from cropwatch.shared.database.repository import (
    BaseRepository,
    RepositoryError,
    DuplicateError,
)


@dataclass
class SampleRow:
    """Entity used to exercise the base repository."""
    id: str
    name: str
    value: int


class SampleRepository(BaseRepository[SampleRow]):
    """Concrete repository for testing."""

    def _entity_to_params(self, entity: SampleRow) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "name": entity.name,
            "value": entity.value,
        }


class TestRepositoryExceptions:
    """Tests for repository exception classes."""

    def test_repository_error(self):
        error = RepositoryError("Test error")
        assert str(error) == "Test error"

    def test_duplicate_error(self):
        assert isinstance(DuplicateError("Duplicate entity"), RepositoryError)


class TestBaseRepository:
    """Tests for BaseRepository class."""

    @pytest.fixture
    def cursor(self):
        cur = MagicMock()
        cur.__enter__.return_value = cur
        cur.__exit__.return_value = False
        return cur

    @pytest.fixture
    def conn(self, cursor):
        c = MagicMock()
        c.cursor.return_value = cursor
        return c

    @pytest.fixture
    def repository(self, conn):
        manager = MagicMock()

        @contextmanager
        def get_connection():
            yield conn

        manager.get_connection.side_effect = get_connection
        return SampleRepository(manager, "sample_table")

    def test_initialization(self, repository):
        assert repository.table_name == "sample_table"

    def test_insert_is_plain_insert(self, repository, cursor, conn):
        repository.insert(SampleRow(id="id_1", name="test", value=100))

        query, params = cursor.execute.call_args.args
        assert query == "INSERT INTO sample_table (id, name, value) VALUES (%s, %s, %s)"
        assert params == ["id_1", "test", 100]
        conn.commit.assert_called_once()

    def test_unique_violation_maps_to_duplicate(self, repository, cursor, conn):
        cursor.execute.side_effect = pg_errors.UniqueViolation("duplicate key")

        with pytest.raises(DuplicateError):
            repository.insert(SampleRow(id="id_1", name="test", value=1))

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_driver_error_maps_to_repository_error(self, repository, cursor):
        cursor.execute.side_effect = psycopg2.OperationalError("timeout")

        with pytest.raises(RepositoryError) as exc:
            repository.insert(SampleRow(id="id_1", name="test", value=1))

        assert not isinstance(exc.value, DuplicateError)

    def test_execute_fetches_without_commit(self, repository, cursor, conn):
        cursor.fetchall.return_value = [("a", 1)]

        assert repository._execute("SELECT name, value FROM sample_table", fetch="all") == [("a", 1)]
        conn.commit.assert_not_called()

    def test_no_update_or_delete(self, repository):
        assert not hasattr(repository, "save")
        assert not hasattr(repository, "delete")
