from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from config import get_settings


class StorageError(RuntimeError):
    """The storage backend failed; the enclosing unit was rolled back."""


class ConcurrentModification(StorageError):
    pass


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    eng = create_engine(settings.database_url, connect_args=connect_args)
    if settings.database_url.startswith("sqlite"):
        event.listen(eng, "connect", enable_sqlite_pragmas)
    return eng


def enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """
    One all-or-nothing unit of work on an existing session.

    Commits when the block finishes and rolls back on any exception. Driver
    and ORM failures surface as StorageError so callers never see a half
    applied change; domain errors propagate unchanged after the rollback.
    """
    try:
        yield session
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        raise ConcurrentModification(
            "The record was modified by another request; please retry"
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageError(f"Storage operation failed: {exc}") from exc
    except Exception:
        session.rollback()
        raise
