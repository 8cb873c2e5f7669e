from .base import Base
from .engine import get_engine
from .session import SessionLocal, get_db, get_session_factory

__all__ = [
    "Base",
    "get_engine",
    "SessionLocal",
    "get_db",
    "get_session_factory",
]
