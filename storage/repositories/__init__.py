"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to metric state.
All reads and writes from the HTTP layer, restore-on-boot and the
snapshot worker go through a MetricsRepository.

============================================================
BACKENDS
============================================================
- MemoryRepository: dicts behind a reader/writer lock
- FileRepository: JSON snapshot rewritten atomically per call
- DatabaseRepository: SQL upserts, batch transactions, retries

Selection at startup (create_repository):
1. DATABASE_DSN set -> database
2. FILE_STORAGE_PATH set -> file
3. otherwise -> memory

============================================================
USAGE
============================================================

    from core.context import OperationContext
    from storage.repositories import MemoryRepository

    repo = MemoryRepository()
    ctx = OperationContext.background()
    repo.update_counter(ctx, "PollCount", 2)
    repo.get_counter(ctx, "PollCount")   # (2, True)

============================================================
"""

import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.config import ServerConfig
from storage.repositories.base import MetricsRepository
from storage.repositories.database import DatabaseRepository
from storage.repositories.exceptions import (
    QueryError,
    RepositoryClosedError,
    RepositoryConnectionError,
    RepositoryException,
    SnapshotCorruptedError,
    SnapshotNotFoundError,
    SnapshotWriteError,
    TransactionError,
)
from storage.repositories.file import FileRepository
from storage.repositories.memory import MemoryRepository


logger = logging.getLogger(__name__)


def create_repository(
    config: ServerConfig,
    engine: Optional[Engine] = None,
) -> MetricsRepository:
    """
    Select and build the backend for this process.

    Args:
        config: Server configuration
        engine: Engine to use when the database backend is selected;
            created from config.database_dsn when omitted
    """
    if config.database_dsn:
        if engine is None:
            from database.engine import create_database_engine, initialize_schema

            engine = create_database_engine(config.database_dsn)
            try:
                initialize_schema(engine)
            except SQLAlchemyError as e:
                engine.dispose()
                raise RepositoryConnectionError("database", "initialize_schema", str(e)) from e
        logger.info("using database storage")
        return DatabaseRepository(engine, retry_delays=config.retry_delays)

    if config.file_storage_path:
        logger.info(f"using file storage at {config.file_storage_path}")
        return FileRepository(config.file_storage_path)

    logger.info("using memory storage")
    return MemoryRepository()


__all__ = [
    "MetricsRepository",
    "MemoryRepository",
    "FileRepository",
    "DatabaseRepository",
    "create_repository",
    "RepositoryException",
    "RepositoryConnectionError",
    "QueryError",
    "TransactionError",
    "RepositoryClosedError",
    "SnapshotNotFoundError",
    "SnapshotCorruptedError",
    "SnapshotWriteError",
]
