from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker


def create_db_engine(db_url: str) -> Engine:
    return create_engine(
        db_url,
        connect_args={"check_same_thread": False} if db_url.startswith("sqlite") else {},
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """
    Session factory handed to the SQL-backed stores.

    The stores open one short-lived session per call; no session outlives a
    single rule lookup or responsibility read/write.
    """

    return sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)
