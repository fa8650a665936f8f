"""Database package: SQLAlchemy models, engine/session management and RLS policies."""

from .session import Base, configure_engine, get_engine, session_scope, init_db, drop_db

__all__ = ["Base", "configure_engine", "get_engine", "session_scope", "init_db", "drop_db"]
