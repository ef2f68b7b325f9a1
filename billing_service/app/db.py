from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing_service.app.settings import settings

_engine: Optional[Engine] = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def make_engine(url: str, *, echo: bool = False, pool_size: int = 10, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        # sqlite pools do not take a size
        return create_engine(url, echo=echo, future=True, **kwargs)
    return create_engine(url, echo=echo, pool_size=pool_size, pool_pre_ping=True, future=True, **kwargs)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine(settings.BILLING_DATABASE_URL, echo=settings.DB_ECHO, pool_size=settings.DB_POOL_SIZE)
        SessionLocal.configure(bind=_engine)
    return _engine


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """Commit on success, roll back on any error."""
    if factory is None:
        get_engine()
        factory = SessionLocal
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
