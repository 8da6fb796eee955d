"""
Core Module Package.

This package contains the infrastructure components that the
storage, server and agent packages depend on.

Components:
- context: Cancellation/deadline carrier for repository calls
- retry: Bounded retry with fixed backoff delays
- exceptions: Error taxonomy (transient vs fatal)
- config: Server and agent configuration
"""

from .context import OperationContext
from .exceptions import (
    ConfigurationError,
    DeadlineExceeded,
    ErrorClassification,
    FatalIOError,
    InvalidKindError,
    MetricsException,
    OperationCancelled,
    TransientIOError,
    ValidationError,
)
from .retry import RETRY_DELAYS, is_transient_error, with_retry, with_retry_async


__all__ = [
    "OperationContext",
    "ConfigurationError",
    "DeadlineExceeded",
    "ErrorClassification",
    "FatalIOError",
    "InvalidKindError",
    "MetricsException",
    "OperationCancelled",
    "TransientIOError",
    "ValidationError",
    "RETRY_DELAYS",
    "is_transient_error",
    "with_retry",
    "with_retry_async",
]
