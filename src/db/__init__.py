"""Database base classes, mixins, and engine utilities."""

from src.db.base import Base, TenantMixin, TimestampMixin, UUIDMixin
from src.db.engine import get_engine, get_session, get_session_factory

__all__ = [
    "Base",
    "TenantMixin",
    "TimestampMixin",
    "UUIDMixin",
    "get_engine",
    "get_session",
    "get_session_factory",
]
