import time
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

# Number of SQLite VM instructions between deadline checks.
_PROGRESS_STEPS = 1000


def build_engine(
    database_url: str, *, timeout_secs: Optional[float] = None, **engine_kwargs
) -> Engine:
    """Create an engine whose statements are bounded by ``timeout_secs``.

    SQLite gets a busy timeout plus a progress handler that interrupts a
    statement once its deadline passes; PostgreSQL gets ``statement_timeout``.
    Either way a slow backend surfaces as an ``OperationalError``.
    """
    connect_args: dict[str, object] = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
        if timeout_secs:
            connect_args["timeout"] = timeout_secs
    elif database_url.startswith("postgresql") and timeout_secs:
        connect_args["options"] = f"-c statement_timeout={int(timeout_secs * 1000)}"

    eng = create_engine(database_url, connect_args=connect_args, **engine_kwargs)
    if is_sqlite:
        event.listen(eng, "connect", _enable_sqlite_pragmas)
        event.listen(eng, "begin", _begin_sqlite_transaction)
        if timeout_secs:
            event.listen(
                eng, "before_cursor_execute", _statement_deadline(timeout_secs)
            )
            event.listen(eng, "after_cursor_execute", _clear_statement_deadline)
            event.listen(eng, "handle_error", _clear_deadline_on_error)
    return eng


def _create_engine() -> Engine:
    settings = get_settings()
    return build_engine(
        settings.database_url, timeout_secs=settings.storage_timeout_secs
    )


def _enable_sqlite_pragmas(dbapi_conn, _record):
    # pysqlite's implicit transactions break SAVEPOINT; BEGIN is emitted
    # explicitly by _begin_sqlite_transaction instead.
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def _begin_sqlite_transaction(conn):
    conn.exec_driver_sql("BEGIN")


def _statement_deadline(timeout_secs: float):
    def arm(conn, cursor, statement, parameters, context, executemany):
        deadline = time.monotonic() + timeout_secs
        cursor.connection.set_progress_handler(
            lambda: time.monotonic() > deadline, _PROGRESS_STEPS
        )

    return arm


def _clear_statement_deadline(conn, cursor, statement, parameters, context, executemany):
    cursor.connection.set_progress_handler(None, 0)


def _clear_deadline_on_error(exception_context):
    # after_cursor_execute is skipped for failed statements.
    if exception_context.cursor is not None:
        exception_context.cursor.connection.set_progress_handler(None, 0)


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
