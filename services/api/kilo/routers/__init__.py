"""API routers."""

from kilo.routers import auth, chat, files, health, knowledge_bases, ratings, usage

__all__ = [
    "auth",
    "chat",
    "files",
    "health",
    "knowledge_bases",
    "ratings",
    "usage",
]
