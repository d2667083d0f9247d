"""Read-only access to the entity store for change feed pulls."""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.exceptions import StoreFailure
from src.models.config import DatabaseConfig

log = structlog.stdlib.get_logger()

# Isolation used for pulls when the config does not name one
DEFAULT_ISOLATION_LEVELS: dict[str, str] = {
    "postgresql": "REPEATABLE READ",
    "sqlite": "SERIALIZABLE",
}


class ChangeStore:
    """Hands out snapshot sessions over the entity tables.

    All readers of one pull share a single transaction, so every source is
    read from the same consistent view.
    """

    def __init__(self, engine: Engine, isolation_level: str | None = None):
        """
        Initialize the change store.

        Args:
            engine: SQLAlchemy engine connected to the entity store
            isolation_level: Isolation level for pulls; dialect default if None
        """
        self._engine: Engine = engine
        self._isolation_level: str | None = isolation_level or DEFAULT_ISOLATION_LEVELS.get(
            engine.dialect.name
        )

        bind = engine
        if self._isolation_level:
            bind = engine.execution_options(isolation_level=self._isolation_level)

        self._session_factory = sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)

        log.info(
            "change_store_initialized",
            dialect=engine.dialect.name,
            isolation_level=self._isolation_level,
        )

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "ChangeStore":
        """Create a store from database configuration."""
        engine = create_engine(config.url, echo=config.echo, future=True)
        return cls(engine, isolation_level=config.isolation_level)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def isolation_level(self) -> str | None:
        return self._isolation_level

    @contextmanager
    def snapshot(self) -> Iterator[Session]:
        """
        Open a read-only transaction for one pull.

        The transaction is always rolled back; pulls never write.

        Yields:
            Session bound to a single transaction

        Raises:
            StoreFailure: If any database error occurs inside the block
        """
        try:
            with self._session_factory() as session:
                try:
                    yield session
                finally:
                    session.rollback()
        except SQLAlchemyError as e:
            log.error("store_read_failed", error=str(e), error_type=type(e).__name__)
            raise StoreFailure() from e

    def ping(self) -> bool:
        """
        Check that the store accepts connections.

        Returns:
            True when a trivial query succeeds

        Raises:
            StoreFailure: If the query fails
        """
        with self.snapshot() as session:
            session.execute(text("SELECT 1"))
        return True

    def dispose(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()
