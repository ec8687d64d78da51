# tableside/infrastructure/db/session.py

import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tableside.domain.exceptions import FatalError, TablesideError

logger = logging.getLogger(__name__)


# -----------------------------
# Base Class for Models
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Engine
# -----------------------------
def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **options)

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
    )


# -----------------------------
# Session Factory
# -----------------------------
def create_session_factory(engine: Engine) -> sessionmaker:
    # Engines hand detached entities back to callers after commit.
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


# -----------------------------
# Unit of work
# -----------------------------
@contextmanager
def session_scope(session_factory: sessionmaker, operation: str, **context):
    """
    One transaction per engine operation.

    Domain errors roll back and propagate unchanged. Storage failures roll
    back, are logged with the operation name and key ids, and surface as
    FatalError. Anything else (including interruption) rolls back too.
    """
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except TablesideError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(
            "Storage failure during %s %s",
            operation,
            " ".join(f"{key}={value}" for key, value in sorted(context.items())),
        )
        raise FatalError(f"{operation} failed: storage unavailable") from exc
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
