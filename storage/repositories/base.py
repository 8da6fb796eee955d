"""
Repository Contract.

============================================================
PURPOSE
============================================================
The capability set every metrics backend satisfies. Backends are
selected at startup by configuration and share no implementation:
this class only declares the operations.

============================================================
OPERATIONS
============================================================
update_gauge(ctx, name, value)     overwrite
update_counter(ctx, name, delta)   accumulate
get_gauge(ctx, name)               -> (value, found)
get_counter(ctx, name)             -> (delta, found)
get_all(ctx)                       -> [Metric], unordered
update_batch(ctx, metrics)         all-or-nothing
ping(ctx)                          health probe
close()                            idempotent

Absent entries return found=False and never raise. Failures raise
TransientIOError or FatalIOError subclasses. Every operation
checks the context before any external effect.

============================================================
"""

from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from core.context import OperationContext
from storage.models import Metric


class MetricsRepository(ABC):
    """Abstract metrics store."""

    @abstractmethod
    def update_gauge(self, ctx: OperationContext, name: str, value: float) -> None:
        """Upsert a gauge, replacing any prior value."""

    @abstractmethod
    def update_counter(self, ctx: OperationContext, name: str, delta: int) -> None:
        """Upsert a counter, adding delta onto any prior total."""

    @abstractmethod
    def get_gauge(self, ctx: OperationContext, name: str) -> Tuple[float, bool]:
        """Return (value, found); (0.0, False) when absent."""

    @abstractmethod
    def get_counter(self, ctx: OperationContext, name: str) -> Tuple[int, bool]:
        """Return (delta, found); (0, False) when absent."""

    @abstractmethod
    def get_all(self, ctx: OperationContext) -> List[Metric]:
        """Return every stored entry."""

    @abstractmethod
    def update_batch(self, ctx: OperationContext, metrics: Sequence[Metric]) -> None:
        """Apply all updates as one unit; on failure none are applied."""

    @abstractmethod
    def ping(self, ctx: OperationContext) -> None:
        """Raise if the backing store is unreachable."""

    @abstractmethod
    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""

    def __enter__(self) -> "MetricsRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
