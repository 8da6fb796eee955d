"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the error taxonomy shared by the collector, the storage
backends and the reporting agent.

- Separates "absent" (a found flag, never an exception) from "failed"
- Classifies failures as transient (retry may succeed) or fatal
- Carries context for logging

============================================================
EXCEPTION HIERARCHY
============================================================
MetricsException (base)
├── ConfigurationError
├── ValidationError
│   └── InvalidKindError
├── TransientIOError
├── FatalIOError
└── OperationCancelled
    └── DeadlineExceeded

============================================================
"""

from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, propagated on first occurrence."""

    CANCELLED = "cancelled"
    """The caller gave up; never retried."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class MetricsException(Exception):
    """
    Base exception for all collector errors.

    All exceptions carry:
    - classification: for retry decisions
    - context: for debugging
    """

    default_classification: ErrorClassification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_transient(self) -> bool:
        """Check if a retry may succeed."""
        return self.classification == ErrorClassification.TRANSIENT


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(MetricsException):
    """Error in configuration."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


# ============================================================
# VALIDATION ERRORS
# ============================================================

class ValidationError(MetricsException):
    """Malformed input, rejected before it reaches a repository."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        actual: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if field:
            context["field"] = field
        if actual is not None:
            context["actual"] = str(actual)[:100]

        super().__init__(message, context=context, **kwargs)


class InvalidKindError(ValidationError):
    """Metric kind is neither gauge nor counter."""

    def __init__(self, kind: Any):
        super().__init__(
            message=f"Unknown metric type: {kind!r}",
            field="type",
            actual=kind,
        )
        self.kind = kind


# ============================================================
# I/O ERRORS
# ============================================================

class TransientIOError(MetricsException):
    """
    Connectivity-class failure.

    Network timeouts, refused or reset connections, unexpected
    end of stream, database connection exceptions. Eligible for retry.
    """

    default_classification = ErrorClassification.TRANSIENT


class FatalIOError(MetricsException):
    """
    Any other I/O failure.

    Serialization failures, malformed snapshot files, constraint
    violations. Never retried.
    """


# ============================================================
# CANCELLATION
# ============================================================

class OperationCancelled(MetricsException):
    """The operation context was cancelled before the work started."""

    default_classification = ErrorClassification.CANCELLED

    def __init__(self, message: str = "operation cancelled", **kwargs):
        super().__init__(message, **kwargs)


class DeadlineExceeded(OperationCancelled):
    """The operation context deadline passed before the work started."""

    def __init__(self, message: str = "operation deadline exceeded", **kwargs):
        super().__init__(message, **kwargs)
