"""
FastAPI dependencies for the ai-foundry API.

Singletons for the directory registry and the task orchestrator. Tests
replace them through app.dependency_overrides.
"""
from functools import lru_cache

from ..config import FoundryConfigLoader, NetworkConfig
from ..core.registry import DirectoryRegistry
from ..core.summarizer import create_summarizer
from ..services.task_orchestrator import TaskOrchestrator


@lru_cache(maxsize=1)
def get_registry() -> DirectoryRegistry:
    """Dependency returning the shared directory registry."""
    return DirectoryRegistry()


@lru_cache(maxsize=1)
def get_network_config() -> NetworkConfig:
    return NetworkConfig.from_env()


@lru_cache(maxsize=1)
def get_orchestrator() -> TaskOrchestrator:
    """
    Dependency returning the shared task orchestrator.

    Raises:
        ConfigNotFoundError: If foundry.yaml doesn't exist.
        ConfigValidationError: If foundry.yaml is invalid.
    """
    settings = FoundryConfigLoader().get_run_settings()
    network = get_network_config()
    return TaskOrchestrator(
        registry=get_registry(),
        settings=settings,
        summarizer=create_summarizer(settings, network),
        network=network,
    )
