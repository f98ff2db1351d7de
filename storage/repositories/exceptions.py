"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Every SQLAlchemy error raised inside a repository is wrapped in
one of these, carrying the repository name and operation.

The ingestion layer converts them into PersistenceError at the
batch boundary; the update gate and the publisher log them at
the tick/cycle boundary.

============================================================
"""

from typing import Optional


class RepositoryException(Exception):
    """Base exception for all repository operations."""

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None
    ) -> None:
        self.message = message
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        return f"[{self.repository_name}] {self.operation}: {self.message}"


class DuplicateRecordError(RepositoryException):
    """Unique constraint violated outside an ON CONFLICT statement."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        message: str
    ) -> None:
        super().__init__(
            message=f"Duplicate record: {message}",
            repository_name=repository_name,
            operation=operation,
        )


class IntegrityError(RepositoryException):
    """Foreign key, not-null or check constraint violated."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        message: str
    ) -> None:
        super().__init__(
            message=f"Integrity constraint violated: {message}",
            repository_name=repository_name,
            operation=operation,
        )


class ConnectionError(RepositoryException):
    """Database unreachable, connection dropped or pool exhausted."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Database connection failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class QueryError(RepositoryException):
    """Statement execution failed for any other reason."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Query failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class TransactionError(RepositoryException):
    """Commit or rollback failed."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        phase: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Transaction {phase} failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"phase": phase, "original_error": original_error}
        )
        self.phase = phase


class ValidationError(RepositoryException):
    """Argument rejected before touching the database."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        field: str,
        reason: str
    ) -> None:
        super().__init__(
            message=f"Validation failed for {field}: {reason}",
            repository_name=repository_name,
            operation=operation,
            details={"field": field, "reason": reason}
        )
        self.field = field
        self.reason = reason
