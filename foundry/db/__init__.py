"""
Database package for ai-foundry.

Provides SQLite async database with SQLAlchemy ORM.
"""
from .database import (
    AsyncSessionLocal,
    Base,
    engine,
    get_db,
    init_db,
)
from .models import Comment, Landmark, Project, Task

__all__ = [
    "AsyncSessionLocal",
    "Base",
    "engine",
    "get_db",
    "init_db",
    "Comment",
    "Landmark",
    "Project",
    "Task",
]
