from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.errors import StorageConflictError, StorageError
from app.settings import get_settings

logger = logging.getLogger("app.db")


class Base(DeclarativeBase):
    pass


def _engine_kwargs(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


_database_url = get_settings().database_url
engine = create_engine(_database_url, **_engine_kwargs(_database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_transaction(db: Session) -> Iterator[Session]:
    """Commit on success; roll back everything written in the block otherwise."""
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("storage_integrity_conflict", extra={"error": str(exc.orig)})
        raise StorageConflictError() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("storage_transaction_failed")
        raise StorageError() from exc
    except Exception:
        db.rollback()
        raise
