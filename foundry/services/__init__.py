"""
Services package for ai-foundry.

Task persistence and the task orchestrator.
"""
from .task_orchestrator import ProcessResult, TaskOrchestrator
from .task_service import TaskService

__all__ = [
    "ProcessResult",
    "TaskOrchestrator",
    "TaskService",
]
