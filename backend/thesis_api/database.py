"""Database engine and helpers.

The `Database` object owns the SQLAlchemy engine. It is built once by the
application lifespan (see `main.create_app`), stored on `app.state.db` and
disposed at shutdown, so no module-level engine is shared between tests
or processes.

SQLite connections open every transaction with `BEGIN IMMEDIATE`, which
takes the write lock up front. Together with `SELECT ... FOR UPDATE` on
server databases this serializes concurrent subscription updates for the
same user.
"""

from fastapi import Request
from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session


class Database:
    """Explicitly constructed storage-access object."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.is_sqlite = url.startswith("sqlite")
        connect_args = {"check_same_thread": False, "timeout": 30} if self.is_sqlite else {}
        self.engine = create_engine(url, echo=echo, connect_args=connect_args)
        if self.is_sqlite:
            _serialize_sqlite_transactions(self.engine)

    def create_db_and_tables(self):
        """Create database tables using SQLModel metadata.

        Intended for local development and tests; production deployments
        should rely on a proper migration tool (alembic) instead.
        """
        # import for side effects: registers every table on the metadata
        from . import models  # noqa: F401
        SQLModel.metadata.create_all(self.engine)

    def session(self) -> Session:
        return Session(self.engine)

    def dispose(self):
        self.engine.dispose()


def _serialize_sqlite_transactions(engine):
    # pysqlite's own transaction handling would defer BEGIN until the first
    # write; take over so the lock is acquired before the first read.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_session(request: Request):
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session bound to the application's `Database`
    and ensures it is closed when the request scope finishes.
    """
    with request.app.state.db.session() as session:
        yield session
