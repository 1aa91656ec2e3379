"""
SQL Database Connection

DESIGN DECISION: The ledger needs real transactions and row locks,
so storage is a relational database reached through SQLAlchemy.
SQLite is the default for a single household; PostgreSQL works
unchanged through the same URL setting.

SQLite does not honour SELECT ... FOR UPDATE. To still serialise
concurrent ledger units, SQLite connections start every transaction
with BEGIN IMMEDIATE, which takes the database write lock up front.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import DatabaseSettings, get_settings
from src.services.storage.interface import ConnectionError
from src.services.storage.tables import Base


logger = structlog.get_logger(__name__)


def _enable_immediate_transactions(engine: Engine) -> None:
    """Make pysqlite emit BEGIN IMMEDIATE instead of deferred BEGIN."""

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # disable pysqlite's own transaction handling
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Owns the SQLAlchemy engine and session factory.

    Sessions are created with expire_on_commit=False so rows returned
    from a committed unit can still be read by the caller.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        settings: Optional[DatabaseSettings] = None,
    ):
        self._settings = settings or get_settings().database
        self.url = url or self._settings.url
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            connect_args = {}
            if self.is_sqlite:
                connect_args = {"check_same_thread": False, "timeout": 30}
            self._engine = create_engine(
                self.url,
                echo=self._settings.echo,
                connect_args=connect_args,
            )
            if self.is_sqlite:
                _enable_immediate_transactions(self._engine)
        return self._engine

    def connect(self) -> Engine:
        """
        Verify the database is reachable, retrying transient failures.

        Raises:
            ConnectionError: If every attempt failed
        """
        attempts = self._settings.connect_retries

        @retry(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        )
        def _ping() -> None:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))

        try:
            _ping()
        except OperationalError as e:
            raise ConnectionError(f"Failed to connect to database: {e}") from e

        logger.info("database_connected", url=self.engine.url.render_as_string(hide_password=True))
        return self.engine

    def create_all(self) -> None:
        """Create every table that does not exist yet."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(self.engine)

    def session(self) -> Session:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                expire_on_commit=False,
            )
        return self._session_factory()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session inside one database transaction; commit on success."""
        with self.session() as session:
            with session.begin():
                yield session

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


def create_database(url: Optional[str] = None, create_schema: bool = True) -> Database:
    """Build, connect and (optionally) initialise a Database."""
    database = Database(url=url)
    database.connect()
    if create_schema:
        database.create_all()
    return database
