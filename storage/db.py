# shopsync/storage/db.py
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from core.settings import DATABASE_URL

# Ensure SQLModel metadata is populated
import models.account  # noqa: F401
import models.expense  # noqa: F401
import models.order  # noqa: F401
import models.sync_item  # noqa: F401
from storage import migrations


SessionFactory = Callable[[], Session]

_engine: Optional[Engine] = None


def make_engine(url: str = DATABASE_URL) -> Engine:
    """Build an engine; SQLite connections may be shared across request threads."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in {"sqlite://", "sqlite:///"}:
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False, pool_pre_ping=True)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine()
    return _engine


def init_db(engine: Optional[Engine] = None) -> Engine:
    actual = engine or get_engine()
    SQLModel.metadata.create_all(actual)
    migrations.run_all(actual)
    return actual


def session_factory_for(engine: Engine) -> SessionFactory:
    def factory() -> Session:
        return Session(engine)

    return factory


def get_session() -> Session:
    return Session(get_engine())


__all__ = [
    "SessionFactory",
    "get_engine",
    "get_session",
    "init_db",
    "make_engine",
    "session_factory_for",
]
