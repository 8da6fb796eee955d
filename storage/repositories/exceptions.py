"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Defines repository-specific exceptions. All driver, filesystem
and serialization errors are caught inside a backend and wrapped
in one of these, so callers always see a determinate class:

- TransientIOError subclasses: retried by the retry policy
- FatalIOError subclasses: propagated on first occurrence

"Not found" is never an exception; lookups return a found flag.

============================================================
"""

from typing import Optional

from core.exceptions import FatalIOError, MetricsException, TransientIOError


class RepositoryException(MetricsException):
    """
    Base exception for repository operations.

    Carries the repository name and the failing operation.
    """

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None,
        **kwargs,
    ) -> None:
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        context = dict(self.details, repository=repository_name, operation=operation)
        super().__init__(f"[{repository_name}] {operation}: {message}", context=context, **kwargs)


class RepositoryConnectionError(RepositoryException, TransientIOError):
    """
    Raised when the storage connection fails.

    Connection refused/reset, pool exhaustion, SQLSTATE class 08.
    """

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str,
    ) -> None:
        super().__init__(
            message=f"Database connection failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error},
        )


class QueryError(RepositoryException, FatalIOError):
    """Raised when a statement fails for a non-connectivity reason."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str,
    ) -> None:
        super().__init__(
            message=f"Query failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error},
        )


class TransactionError(RepositoryException, FatalIOError):
    """Raised when a batch transaction cannot be committed."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        phase: str,
        original_error: str,
    ) -> None:
        super().__init__(
            message=f"Transaction {phase} failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"phase": phase, "original_error": original_error},
        )
        self.phase = phase


class RepositoryClosedError(RepositoryException, FatalIOError):
    """Raised when an operation is attempted after close()."""

    def __init__(self, repository_name: str, operation: str) -> None:
        super().__init__(
            message="Repository is closed",
            repository_name=repository_name,
            operation=operation,
        )


# ============================================================
# SNAPSHOT FILE ERRORS
# ============================================================

class SnapshotNotFoundError(RepositoryException, FatalIOError):
    """Raised by an explicit load when the snapshot file does not exist."""

    def __init__(self, repository_name: str, path: str) -> None:
        super().__init__(
            message=f"Snapshot file {path} does not exist",
            repository_name=repository_name,
            operation="load",
            details={"path": path},
        )
        self.path = path


class SnapshotCorruptedError(RepositoryException, FatalIOError):
    """Raised when the snapshot file is not a JSON array of metrics."""

    def __init__(self, repository_name: str, path: str, reason: str) -> None:
        super().__init__(
            message=f"Snapshot file {path} is malformed: {reason}",
            repository_name=repository_name,
            operation="restore",
            details={"path": path, "reason": reason},
        )
        self.path = path


class SnapshotWriteError(RepositoryException, FatalIOError):
    """
    Raised when a snapshot cannot be written.

    The previous snapshot stays in place.
    """

    def __init__(self, repository_name: str, path: str, original_error: str) -> None:
        super().__init__(
            message=f"Cannot write snapshot {path}: {original_error}",
            repository_name=repository_name,
            operation="save",
            details={"path": path, "original_error": original_error},
        )
        self.path = path
