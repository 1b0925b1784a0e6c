from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from reading_billing.core.config import get_settings


class Base(DeclarativeBase):
    """Base class for ORM models."""


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Build the engine for ``database_url``.

    SQLite connections are shared with the scheduler's worker threads, so the
    same-thread check is turned off for them.
    """

    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, echo=echo, connect_args=connect_args)


engine = make_engine(get_settings().database_url, echo=get_settings().database_echo)

# Services flush explicitly; routes and the payout batch decide when to commit.
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    class_=Session,
)


@contextmanager
def transactional_session() -> Generator[Session, None, None]:
    """Run the block in one unit of work, used by seeding and one-off scripts."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
