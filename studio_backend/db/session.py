from collections.abc import Iterator
from contextlib import AbstractContextManager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


def make_engine(url: str, **engine_kwargs) -> Engine:
    engine = create_engine(url, future=True, echo=False, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        # pysqlite defers BEGIN until the first write; emit it ourselves so
        # SAVEPOINTs from atomic() always nest inside a real transaction.
        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, _record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _on_begin(connection):
            connection.exec_driver_sql("BEGIN")

    return engine


class Database:
    """Owns the engine and the session factory for one process.

    Nothing connects until :meth:`init` is called; :meth:`close` disposes the
    connection pool.
    """

    def __init__(self) -> None:
        self.engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    def init(self, url: str, **engine_kwargs) -> None:
        self.engine = make_engine(url, **engine_kwargs)
        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False
        )

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._session_factory = None

    @property
    def is_initialized(self) -> bool:
        return self._session_factory is not None

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not initialized")
        return self._session_factory()


database = Database()


def get_db() -> Iterator[Session]:
    db = database.session()
    try:
        yield db
    finally:
        db.close()


def atomic(db: Session) -> AbstractContextManager:
    """Transaction scope that nests as a SAVEPOINT inside an open transaction."""
    return db.begin_nested() if db.in_transaction() else db.begin()
