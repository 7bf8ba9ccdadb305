"""Generate database sessions"""

from typing import Any, Optional

from sqlalchemy import Engine, StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from chess_arena.core.config import Settings, get_settings
from chess_arena.db.schema import Base


def build_engine(settings: Optional[Settings] = None) -> Engine:
    settings = settings or get_settings()
    options: dict[str, Any] = {}
    if settings.database_url.startswith("sqlite"):
        # the engine is shared by every thread that advances matches
        options["connect_args"] = {"check_same_thread": False}
        if settings.database_url in ("sqlite://", "sqlite:///:memory:"):
            # one connection, or every session would see its own empty database
            options["poolclass"] = StaticPool
    return create_engine(settings.database_url, echo=settings.database_echo, **options)


def init_db(engine: Engine) -> None:
    """Ensure all tables are created"""
    Base.metadata.create_all(bind=engine)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """One session per repository call (see SQLArenaRepository)."""
    return sessionmaker(bind=engine)
