# backend/app/db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url


class Database:
    """
    Owns the engine and session factory for one process.

    Created once on startup (see main.create_app), stored on app.state and
    handed to request handlers through get_db. Nothing else holds a
    connection handle.
    """

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        kwargs: dict = {"pool_pre_ping": True, "future": True, "echo": echo}
        if _is_sqlite(url):
            kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory_sqlite(url):
                # one shared connection, otherwise every checkout is a new empty db
                kwargs["poolclass"] = StaticPool

        self.engine: Engine = create_engine(url, **kwargs)

        if _is_sqlite(url):
            event.listen(self.engine, "connect", _sqlite_on_connect)

        self.session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )

    def create_all(self) -> None:
        # models must be imported so every table is registered on Base.metadata
        from . import models  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        from . import models  # noqa: F401

        Base.metadata.drop_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Session for scripts and tests. Rolls back on error, always closes.
        Callers commit explicitly.
        """
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _sqlite_on_connect(dbapi_conn, _record) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def get_db(request: Request) -> Iterator[Session]:
    """
    IMPORTANT (Postgres):
    If any SQL statement fails, the transaction is aborted and the session
    cannot run further statements until a rollback happens.

    This dependency guarantees rollback on exceptions so errors don't cascade
    into "InFailedSqlTransaction" on later queries in the same request.
    """
    database: Database = request.app.state.database
    db = database.session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
