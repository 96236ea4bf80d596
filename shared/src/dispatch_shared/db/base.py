"""Database foundation: declarative base class, engine and session factories."""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""


def create_db_engine(dsn: str, **kwargs: object) -> Engine:
    """Create a SQLAlchemy engine from a DSN string.

    Pass ``pool_pre_ping=True`` in production; the worker and the API both
    hold long-lived pools against the delivery_records table.
    """
    return create_engine(dsn, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a sessionmaker bound to the given engine.

    ``expire_on_commit=False`` lets the state store read row attributes
    after committing a transition, when the session is about to close.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)
