from __future__ import annotations

import os
from dataclasses import dataclass

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

# purpose: construct the storage client once per process and hand sessions to request handlers
# status: active

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./labkeeper.db")

Base = declarative_base()


@dataclass(frozen=True)
class Storage:
    """Engine plus session factory for one database."""

    engine: Engine
    session_factory: sessionmaker

    def session(self):
        return self.session_factory()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_storage(url: str) -> Storage:
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    else:
        connect_args = {}
    engine = create_engine(url, connect_args=connect_args)
    if url.startswith("sqlite"):
        # ON DELETE SET NULL / CASCADE are only honoured with the pragma on
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return Storage(engine=engine, session_factory=factory)


storage = create_storage(DATABASE_URL)
engine = storage.engine
SessionLocal = storage.session_factory


def get_db():
    db = storage.session()
    try:
        yield db
    finally:
        db.close()
