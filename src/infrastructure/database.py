import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, MetaData, String, Table, Text, delete, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from src.domain.exceptions import DatabaseConnectionException, DatabaseException, TransactionException
from src.domain.models import BugStatus, ResponsibleParty

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLAlchemy core Table definitions
metadata = MetaData()
bugs_table = Table(
    'bugs', metadata,
    Column('id', String(36), primary_key=True),
    Column('description', Text, nullable=False),
    Column('image_url', Text, nullable=True),
    Column('status', Enum(BugStatus, name='bug_status', values_callable=lambda e: [m.value for m in e]), nullable=False),
    Column('comment', Text, nullable=True),
    Column('responsible', Enum(ResponsibleParty, name='responsible_party', values_callable=lambda e: [m.value for m in e]), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    Index('idx_bugs_created_at', 'created_at'),
)
bug_urls_table = Table(
    'bug_urls', metadata,
    Column('id', String(36), primary_key=True),
    Column('url', Text, nullable=False),
    Column('bug_id', String(36), ForeignKey('bugs.id', ondelete='CASCADE'), nullable=False),
    # Insertion order of the URL list as supplied by the client
    Column('position', Integer, nullable=False, server_default=text('0')),
    Index('idx_bug_urls_bug_id', 'bug_id'),
)

# Children before parents
CLEANABLE_TABLES = (bug_urls_table, bugs_table)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseGateway:
    """
    Owns the async engine (and its connection pool) for the relational store.
    Every read and write in the application goes through run_in_transaction.
    """

    def __init__(self, db_url: str, echo: bool = False, environment: str = "development"):
        self.db_url = db_url
        self.echo = echo
        self.environment = environment
        self.engine: Optional[AsyncEngine] = None

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def _build_engine(self) -> AsyncEngine:
        kwargs = {}
        is_sqlite = self.db_url.startswith("sqlite")
        if is_sqlite and (":memory:" in self.db_url or self.db_url.endswith("://")):
            # In-memory SQLite lives inside a single connection; share it so the schema persists.
            kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}

        engine = create_async_engine(self.db_url, echo=self.echo, **kwargs)
        if is_sqlite:
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    async def connect(self) -> None:
        """
        Creates the engine and checks that the store answers.

        Raises:
            DatabaseConnectionException: If the store is unreachable. The engine is discarded so a later call retries from scratch.
        """
        if self.engine is not None:
            return

        engine = self._build_engine()
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            logger.error(f"Could not connect to the database: {e}")
            raise DatabaseConnectionException(f"Database is unreachable: {e}") from e

        self.engine = engine
        logger.info(f"Connected to database ({engine.url.get_backend_name()}).")

    async def disconnect(self) -> None:
        """Releases every pooled connection. Safe to call when not connected."""
        if self.engine is None:
            return
        engine, self.engine = self.engine, None
        await engine.dispose()
        logger.info("Disconnected from database.")

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise DatabaseConnectionException("DatabaseGateway.connect() must be called before use.")
        return self.engine

    async def run_in_transaction(self, work: Callable[[AsyncConnection], Awaitable[T]]) -> T:
        """
        Runs `work` against a connection inside a single transaction.

        Commits when `work` returns and rolls back when it raises. Application exceptions
        propagate unchanged; database errors are re-raised as TransactionException, and
        an unreachable store as DatabaseConnectionException.
        """
        engine = self._require_engine()
        try:
            async with engine.begin() as conn:
                return await work(conn)
        except OSError as e:
            # asyncpg raises connection failures unwrapped when the pool opens a new connection
            logger.error(f"Lost connection to the database: {e}")
            raise DatabaseConnectionException(f"Database is unreachable: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Transaction rolled back: {e}")
            raise TransactionException(f"Transaction failed: {e}") from e

    async def create_schema(self) -> None:
        """Creates the tables if they do not exist yet."""
        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def clean_database(self) -> None:
        """
        Deletes every row from the application tables. Intended for tests and seeding.

        Raises:
            DatabaseException: When running in production.
        """
        if self.environment == "production":
            raise DatabaseException("Refusing to clean the database in production.")

        async def _clean(conn: AsyncConnection) -> None:
            for table in CLEANABLE_TABLES:
                await conn.execute(delete(table))

        await self.run_in_transaction(_clean)
        logger.info("Database cleaned.")
