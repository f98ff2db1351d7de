"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Common plumbing for all repositories:
- Session injection
- Wrapping SQLAlchemy errors in repository exceptions
- Statement execution helpers
- Per-repository logger ("repository.<Name>")

============================================================
USAGE
============================================================
    class MyRepository(BaseRepository[MyModel]):
        def __init__(self, session: Session):
            super().__init__(session, MyModel, "MyRepository")

============================================================
"""

import logging
from abc import ABC
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Result
from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    TransactionError,
)


T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for all repositories.

    Repositories never create sessions; the caller owns the
    session lifetime and repositories own commit/rollback of the
    unit of work they expose.
    """

    def __init__(
        self,
        session: Session,
        model_class: Type[T],
        repository_name: str
    ) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy session (injected)
            model_class: The ORM model class this repository manages
            repository_name: Name for logging and error messages
        """
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        return self._session

    @property
    def repository_name(self) -> str:
        return self._repository_name

    # =========================================================
    # PROTECTED HELPER METHODS
    # =========================================================

    def _handle_db_error(
        self,
        error: Exception,
        operation: str,
        context: Optional[dict] = None
    ) -> None:
        """
        Wrap a database error in a repository exception.

        Args:
            error: The original exception
            operation: Name of the operation that failed
            context: Additional context for logging

        Raises:
            RepositoryException: Always
        """
        self._logger.error(
            f"Database error in {operation}: {error}",
            extra={"context": context or {}},
        )

        if isinstance(error, OperationalError):
            raise ConnectionError(
                repository_name=self._repository_name,
                operation=operation,
                original_error=str(error)
            ) from error

        if isinstance(error, SQLAlchemyIntegrityError):
            error_str = str(error).lower()
            if "duplicate" in error_str or "unique" in error_str:
                raise DuplicateRecordError(
                    repository_name=self._repository_name,
                    operation=operation,
                    message=str(error.orig),
                ) from error

            raise IntegrityError(
                repository_name=self._repository_name,
                operation=operation,
                message=str(error.orig),
            ) from error

        raise QueryError(
            repository_name=self._repository_name,
            operation=operation,
            original_error=str(error)
        ) from error

    def _upsert_insert(self, model: Type[Base]) -> Any:
        """
        Dialect INSERT supporting ON CONFLICT clauses.

        PostgreSQL in production, SQLite in tests.
        """
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise QueryError(
            repository_name=self._repository_name,
            operation="upsert",
            original_error=f"ON CONFLICT not supported for dialect {dialect}",
        )

    def _get_by_id(self, record_id: Any) -> Optional[T]:
        """Get an entity by its primary key."""
        try:
            return self._session.get(self._model_class, record_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_by_id", {"id": str(record_id)})
            raise

    def _execute(self, stmt: Any, operation: str) -> Result:
        """Execute any statement (DML included) and return the raw result."""
        try:
            return self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
            raise

    def _execute_query(self, stmt: Any) -> List[T]:
        """Execute a select statement and return the scalar rows."""
        try:
            result = self._session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query")
            raise

    def _execute_scalar(self, stmt: Any) -> Optional[Any]:
        """Execute a select statement and return a single value or None."""
        try:
            result = self._session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query_scalar")
            raise

    def _commit(self) -> None:
        """
        Commit the current transaction.

        Raises:
            TransactionError: If commit fails
        """
        try:
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise TransactionError(
                repository_name=self._repository_name,
                operation="commit",
                phase="commit",
                original_error=str(e)
            ) from e

    def _rollback(self) -> None:
        """Roll back the current transaction."""
        try:
            self._session.rollback()
        except SQLAlchemyError as e:
            self._logger.error(f"Rollback failed: {e}")
            raise TransactionError(
                repository_name=self._repository_name,
                operation="rollback",
                phase="rollback",
                original_error=str(e)
            ) from e
