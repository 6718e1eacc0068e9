from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from contextlib import contextmanager
from typing import Generator

from keytao.config.settings import get_settings


def build_engine(url: str, echo: bool = False, pool_pre_ping: bool = True) -> Engine:
    kwargs = {"echo": echo, "pool_pre_ping": pool_pre_ping, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


_db_settings = get_settings().database
engine = build_engine(_db_settings.url, _db_settings.echo, _db_settings.pool_pre_ping)
SessionLocal = sessionmaker(
    bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
)

# SQLAlchemy declarative base for models
Base = declarative_base()


def init_db(bind: Engine | None = None) -> None:
    """Create any missing tables."""
    import keytao.models  # noqa: F401  registers mappers

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def db_session():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
