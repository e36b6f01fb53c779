"""Database layer: engine, session, ORM base."""

from lending_core.db.base import Base
from lending_core.db.engine import init_engine, make_session_factory, session_scope

__all__ = ["Base", "init_engine", "make_session_factory", "session_scope"]
