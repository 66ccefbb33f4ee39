"""
FastAPI application for ai-foundry.

Main entry point. Sets up backend logging, validates api.yaml, and
registers the routes and error handlers. The lifespan validates
foundry.yaml and creates the database tables. Both configurations are
logged at startup with secret-looking values masked.
"""
import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator

import yaml
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import (
    CONFIG_DIR,
    ConfigNotFoundError,
    ConfigValidationError,
    FoundryConfigLoader,
)
from ..core.exceptions import BindingError, RegistryError, TaskNotFoundError
from ..core.logging_config import setup_backend_logging
from ..db.database import DATABASE_PATH, init_db
from .routes import health_router, local_router, tasks_router

logger = logging.getLogger(__name__)

# API configuration file
API_CONFIG_FILE: Path = CONFIG_DIR / "api.yaml"

# Required fields in api.yaml
REQUIRED_API_FIELDS = ["host", "port", "cors_origins"]

# Config keys whose values are masked in the startup log
SECRET_KEY_PATTERN = re.compile(r"(secret|key|password|token)", re.IGNORECASE)


# =============================================================================
# Configuration Utilities
# =============================================================================

def mask_secret(value: str) -> str:
    """Keep the first and last four characters of a secret; mask short ones fully."""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


def config_lines(section: str, values: dict[str, Any]) -> list[str]:
    """Log lines for one flat config section, with secrets masked."""
    lines = [f"{section}:"]
    for key, value in values.items():
        if isinstance(value, list):
            value = ", ".join(str(item) for item in value) or "[]"
        elif value and SECRET_KEY_PATTERN.search(key):
            value = mask_secret(str(value))
        lines.append(f"  {key}: {value}")
    return lines


def log_configuration(section: str, values: dict[str, Any]) -> None:
    for line in config_lines(section, values):
        logger.info(line)


def load_api_config() -> dict[str, Any]:
    """
    Load API configuration from api.yaml.

    Raises:
        ConfigNotFoundError: If api.yaml doesn't exist.
        ConfigValidationError: If required fields are missing or invalid.
    """
    if not API_CONFIG_FILE.exists():
        raise ConfigNotFoundError(
            f"API configuration not found: {API_CONFIG_FILE}\n"
            f"Create config/api.yaml with required fields: {', '.join(REQUIRED_API_FIELDS)}"
        )

    try:
        with API_CONFIG_FILE.open("r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Failed to parse api.yaml: {e}") from e

    if config is None:
        raise ConfigValidationError(
            f"API configuration file is empty: {API_CONFIG_FILE}"
        )

    api_config = config.get("api")
    if not api_config:
        raise ConfigValidationError(
            f"No 'api' section found in {API_CONFIG_FILE}"
        )

    missing = [field for field in REQUIRED_API_FIELDS if field not in api_config]
    if missing:
        raise ConfigValidationError(
            f"Missing required fields in {API_CONFIG_FILE}:\n"
            f"  {', '.join(missing)}\n"
            f"All fields must be explicitly defined - no default values."
        )

    return config


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Startup validates foundry.yaml, logs the run settings and creates
    the database tables.

    Raises:
        ConfigNotFoundError: If foundry.yaml doesn't exist.
        ConfigValidationError: If foundry.yaml is invalid.
    """
    logger.info("Starting ai-foundry API...")
    settings = FoundryConfigLoader().get_run_settings()
    log_configuration("agent", settings.model_dump(mode="json"))

    logger.info(f"Database: {DATABASE_PATH}")
    await init_db()

    yield

    logger.info("Shutting down ai-foundry API...")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance.

    Raises:
        ConfigNotFoundError: If api.yaml doesn't exist.
        ConfigValidationError: If required fields are missing.
    """
    setup_backend_logging()

    config = load_api_config()
    api_config = config["api"]

    logger.info(f"Config file: {API_CONFIG_FILE}")
    log_configuration("api", api_config)

    app = FastAPI(
        title="ai-foundry API",
        description="Runs project tasks through a sandboxed coding agent",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config["cors_origins"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes under /api/v1 prefix
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(local_router, prefix="/api/v1")
    app.include_router(tasks_router, prefix="/api/v1")

    @app.exception_handler(BindingError)
    async def binding_error_handler(request: Request, exc: BindingError) -> JSONResponse:
        """Unbound or unusable project directory: 400."""
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(TaskNotFoundError)
    async def task_not_found_handler(
        request: Request, exc: TaskNotFoundError
    ) -> JSONResponse:
        """Convert TaskNotFoundError to 404 response."""
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
        logger.error(f"Registry failure: {exc}")
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = load_api_config()
    api_config = config["api"]

    uvicorn.run(
        "foundry.api.main:app",
        host=api_config["host"],
        port=api_config["port"],
        reload=api_config.get("reload", False),
        reload_excludes=["logs/*", "data/*"],
    )
