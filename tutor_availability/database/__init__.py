"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeMeta, declarative_base

Base: DeclarativeMeta = declarative_base()

from .sessions import SessionLocal, get_db, get_engine, get_session  # noqa: E402

__all__ = ["Base", "SessionLocal", "get_db", "get_engine", "get_session"]
