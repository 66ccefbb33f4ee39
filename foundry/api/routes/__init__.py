"""
API Routes package for ai-foundry.

Contains all FastAPI route handlers organized by domain.
"""
from .health import router as health_router
from .local import router as local_router
from .tasks import router as tasks_router

__all__ = [
    "health_router",
    "local_router",
    "tasks_router",
]
