"""Database utilities and session management."""

from lesson_ingest.db.base import Base, BaseModel, String20, String255, String2048
from lesson_ingest.db.session import (
    AsyncSessionLocal,
    check_db_health,
    close_db,
    engine,
    get_session,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    # String types
    "String20",
    "String255",
    "String2048",
    # Session management
    "engine",
    "AsyncSessionLocal",
    "get_session",
    "init_db",
    "close_db",
    "check_db_health",
]
