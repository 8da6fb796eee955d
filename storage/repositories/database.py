"""
Database Repository.

============================================================
PURPOSE
============================================================
Transactional metrics store over a SQL table keyed by (id, type).

- Gauge: INSERT ... ON CONFLICT DO UPDATE SET value = excluded.value
- Counter: INSERT ... ON CONFLICT DO UPDATE
           SET delta = metrics.delta + excluded.delta
  The addition happens inside the conflict resolution, so
  concurrent writers never lose an increment.
- Batch: one transaction, one upsert per key, commit once
- Every operation runs through the shared retry policy

============================================================
ERROR TRANSLATION
============================================================
Connection-class failures (SQLSTATE class 08, disconnects,
invalidated connections, pool timeouts, driver OperationalErrors
without a SQLSTATE) -> RepositoryConnectionError (retried).
Everything else -> QueryError / TransactionError (not retried).

============================================================
"""

import logging
import threading
from contextlib import nullcontext
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from core.context import OperationContext
from core.retry import RETRY_DELAYS, with_retry
from database.engine import create_session_factory, transaction_scope
from database.models import MetricRecord
from storage.models import Metric, MetricKind
from storage.repositories.base import MetricsRepository
from storage.repositories.batch import coalesce_batch, validate_batch
from storage.repositories.exceptions import (
    QueryError,
    RepositoryClosedError,
    RepositoryConnectionError,
    TransactionError,
)


T = TypeVar("T")

CONNECTION_EXCEPTION_CLASS = "08"


def sqlstate_of(error: BaseException) -> Optional[str]:
    """SQLSTATE of a DBAPI error (psycopg2 pgcode, psycopg/asyncpg sqlstate)."""
    orig = getattr(error, "orig", None)
    for candidate in (orig, error):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if isinstance(code, str) and code:
            return code
    return None


def is_connection_error(error: BaseException) -> bool:
    """Classify a SQLAlchemy error as connection-class (transient)."""
    if isinstance(error, (DisconnectionError, PoolTimeoutError)):
        return True
    if isinstance(error, DBAPIError):
        if error.connection_invalidated:
            return True
        code = sqlstate_of(error)
        if code is not None:
            return code.startswith(CONNECTION_EXCEPTION_CLASS)
        return isinstance(error, OperationalError)
    return False


class DatabaseRepository(MetricsRepository):
    """
    SQL-backed repository.

    The engine may be shared with other repository instances and
    other processes; consistency comes from the database's own
    constraint and transaction handling. On a single shared
    connection (in-memory SQLite) transactions run one at a time.
    """

    def __init__(
        self,
        engine: Engine,
        retry_delays: Sequence[float] = RETRY_DELAYS,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        """
        Initialize the repository.

        Args:
            engine: Established SQLAlchemy engine (released on close)
            retry_delays: Backoff delays for transient failures
            sleep: Override for backoff waits (tests)
        """
        self._engine = engine
        self._factory = create_session_factory(engine)
        self._retry_delays = tuple(retry_delays)
        self._sleep = sleep
        self._closed = False
        self._repository_name = "database"
        self._logger = logging.getLogger(f"repository.{self._repository_name}")

        dialect = engine.dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise ValueError(f"Unsupported database dialect: {dialect}")
        self._insert = insert

        # A StaticPool hands every session the same connection
        shared = isinstance(getattr(engine, "pool", None), StaticPool)
        self._serial = threading.Lock() if shared else None

    # =========================================================
    # PROTECTED HELPER METHODS
    # =========================================================

    def _handle_db_error(self, error: SQLAlchemyError, operation: str) -> None:
        """
        Wrap a SQLAlchemy error in a repository exception.

        Raises:
            RepositoryConnectionError: Connection-class failure
            QueryError: Any other failure
        """
        if is_connection_error(error):
            self._logger.warning(f"Connection error in {operation}: {error}")
            raise RepositoryConnectionError(
                repository_name=self._repository_name,
                operation=operation,
                original_error=str(error),
            ) from error

        self._logger.error(f"Database error in {operation}: {error}", exc_info=True)
        raise QueryError(
            repository_name=self._repository_name,
            operation=operation,
            original_error=str(error),
        ) from error

    def _run(
        self,
        ctx: OperationContext,
        operation: str,
        work: Callable[[Session], T],
        delays: Optional[Sequence[float]] = None,
    ) -> T:
        """Run `work` in one transaction under the retry policy."""
        if self._closed:
            raise RepositoryClosedError(self._repository_name, operation)

        def attempt() -> T:
            try:
                with self._serial or nullcontext():
                    with transaction_scope(self._factory) as session:
                        return work(session)
            except SQLAlchemyError as e:
                self._handle_db_error(e, operation)
                raise

        return with_retry(
            attempt,
            ctx=ctx,
            delays=self._retry_delays if delays is None else delays,
            sleep=self._sleep,
            operation_name=f"{self._repository_name}.{operation}",
        )

    def _upsert_statement(self, metric: Metric) -> Any:
        table = MetricRecord.__table__
        if metric.type == MetricKind.GAUGE:
            stmt = self._insert(table).values(
                id=metric.id, type=MetricKind.GAUGE.value, value=float(metric.value)
            )
            return stmt.on_conflict_do_update(
                index_elements=[table.c.id, table.c.type],
                set_={"value": stmt.excluded.value},
            )

        stmt = self._insert(table).values(
            id=metric.id, type=MetricKind.COUNTER.value, delta=metric.delta
        )
        return stmt.on_conflict_do_update(
            index_elements=[table.c.id, table.c.type],
            set_={"delta": func.coalesce(table.c.delta, 0) + stmt.excluded.delta},
        )

    def _lookup(self, session: Session, name: str, kind: MetricKind) -> Optional[MetricRecord]:
        stmt = select(MetricRecord).where(
            MetricRecord.id == name,
            MetricRecord.type == kind.value,
        )
        return session.execute(stmt).scalar_one_or_none()

    # =========================================================
    # CONTRACT
    # =========================================================

    def update_gauge(self, ctx: OperationContext, name: str, value: float) -> None:
        stmt = self._upsert_statement(Metric.gauge(name, value).validate())
        self._run(ctx, "update_gauge", lambda session: session.execute(stmt))

    def update_counter(self, ctx: OperationContext, name: str, delta: int) -> None:
        stmt = self._upsert_statement(Metric.counter(name, delta).validate())
        self._run(ctx, "update_counter", lambda session: session.execute(stmt))

    def update_batch(self, ctx: OperationContext, metrics: Sequence[Metric]) -> None:
        """
        Apply the batch in one transaction.

        Any failing statement rolls back the whole batch.
        """
        statements = [self._upsert_statement(m) for m in coalesce_batch(validate_batch(metrics))]
        if not statements:
            ctx.check()
            return

        def work(session: Session) -> None:
            for stmt in statements:
                session.execute(stmt)

        try:
            self._run(ctx, "update_batch", work)
        except QueryError as e:
            raise TransactionError(
                repository_name=self._repository_name,
                operation="update_batch",
                phase="execute",
                original_error=e.details.get("original_error", str(e)),
            ) from e

        self._logger.debug(f"Committed batch of {len(statements)} upserts")

    def get_gauge(self, ctx: OperationContext, name: str) -> Tuple[float, bool]:
        record = self._run(
            ctx, "get_gauge", lambda session: self._lookup(session, name, MetricKind.GAUGE)
        )
        if record is None or record.value is None:
            return 0.0, False
        return record.value, True

    def get_counter(self, ctx: OperationContext, name: str) -> Tuple[int, bool]:
        record = self._run(
            ctx, "get_counter", lambda session: self._lookup(session, name, MetricKind.COUNTER)
        )
        if record is None or record.delta is None:
            return 0, False
        return record.delta, True

    def get_all(self, ctx: OperationContext) -> List[Metric]:
        def work(session: Session) -> List[Metric]:
            records = session.execute(select(MetricRecord)).scalars().all()
            return [record.to_metric() for record in records]

        return self._run(ctx, "get_all", work)

    def ping(self, ctx: OperationContext) -> None:
        """Single-attempt connectivity probe."""
        self._run(ctx, "ping", lambda session: session.execute(text("SELECT 1")), delays=())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()
        self._logger.info("Database repository closed")
