"""
Database Package
Handles engine/session construction and base models.
"""

from app.database.connection import (
    create_database_engine,
    create_session_factory,
    init_db,
    close_db,
)
from app.database.base import Base, TimestampMixin, UUIDMixin

__all__ = [
    # Connection
    "create_database_engine",
    "create_session_factory",
    "init_db",
    "close_db",
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDMixin",
]
