"""
Global configuration for ai-foundry.

This module defines directory paths, the FoundryConfigLoader class for
loading configuration from config/foundry.yaml, and the network settings
that are resolved once at process start.

Usage:
    from foundry.config import CONFIG_DIR, LOGS_DIR, DATA_DIR
    from foundry.config import FoundryConfigLoader, NetworkConfig

    loader = FoundryConfigLoader()
    settings = loader.get_run_settings()
    network = NetworkConfig.from_env()
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .core.schemas import PermissionMode, RunSettings

logger = logging.getLogger(__name__)


class ConfigNotFoundError(Exception):
    """Raised when a required configuration file is not found."""
    pass


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


# FOUNDRY_DIR is the root of the checkout (config/, logs/, data/ live here).
# FOUNDRY_ROOT lets containers mount those directories elsewhere.
_root_override = os.environ.get("FOUNDRY_ROOT")
if _root_override:
    FOUNDRY_DIR: Path = Path(_root_override).resolve()
else:
    # config.py is at <root>/foundry/config.py
    FOUNDRY_DIR = Path(__file__).parent.parent.resolve()

LOGS_DIR: Path = FOUNDRY_DIR / "logs"
CONFIG_DIR: Path = FOUNDRY_DIR / "config"
DATA_DIR: Path = FOUNDRY_DIR / "data"
PROMPTS_DIR: Path = Path(__file__).parent / "prompts"

FOUNDRY_CONFIG_FILE: Path = CONFIG_DIR / "foundry.yaml"

# Environment variables
ENV_PERMISSION_MODE = "FOUNDRY_PERMISSION_MODE"
ENV_LEGACY_PERMISSION_MODE = "CLAUDE_CODE_PERMISSION_MODE"
ENV_SUMMARY_API_KEY = "GOOGLE_GENERATIVE_AI_API_KEY"
PROXY_ENV_VARS = ("FOUNDRY_PROXY", "HTTPS_PROXY", "ALL_PROXY", "HTTP_PROXY")


@dataclass(frozen=True)
class NetworkConfig:
    """
    Outbound network settings shared by the summarizer and the agent runtime.

    Built once at startup and passed down explicitly; nothing in the
    package mutates process-wide networking state.
    """
    proxy_url: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "NetworkConfig":
        """
        Resolve the proxy URL from the environment.

        Preference order: FOUNDRY_PROXY, HTTPS_PROXY, ALL_PROXY, HTTP_PROXY.
        """
        env = os.environ if environ is None else environ
        for name in PROXY_ENV_VARS:
            value = (env.get(name) or "").strip()
            if value:
                logger.debug(f"Outbound proxy configured via {name}")
                return cls(proxy_url=value)
        return cls()

    def runtime_env(self) -> dict[str, str]:
        """Environment entries to hand to the agent runtime subprocess."""
        if not self.proxy_url:
            return {}
        return {"HTTPS_PROXY": self.proxy_url, "HTTP_PROXY": self.proxy_url}


class FoundryConfigLoader:
    """
    Loads and manages run configuration from foundry.yaml.

    Provides:
    - Fail-fast loading (no silent defaults for required fields)
    - Environment overrides for the permission mode
    - Summarizer credentials from the environment

    Usage:
        loader = FoundryConfigLoader()
        settings = loader.get_run_settings()

        # With custom config path
        loader = FoundryConfigLoader(config_path=Path("./custom.yaml"))
    """

    REQUIRED_FIELDS = [
        "model",
        "max_turns",
        "permission_mode",
        "summary_model",
        "summary_digest_events",
    ]

    def __init__(
        self,
        config_path: Optional[Path] = None,
        environ: Optional[dict[str, str]] = None,
    ) -> None:
        """
        Initialize the configuration loader.

        Args:
            config_path: Path to foundry.yaml. Defaults to CONFIG_DIR/foundry.yaml.
            environ: Environment mapping for overrides. Defaults to os.environ.
        """
        self._config_path = config_path or FOUNDRY_CONFIG_FILE
        self._environ = os.environ if environ is None else environ
        self._config: dict[str, Any] | None = None

    def load(self) -> dict[str, Any]:
        """
        Load the agent section of foundry.yaml.

        Raises:
            ConfigNotFoundError: If the config file is missing.
            ConfigValidationError: If it is empty, malformed or incomplete.
        """
        if not self._config_path.exists():
            raise ConfigNotFoundError(
                f"Configuration not found: {self._config_path}\n"
                f"Create it with an 'agent' section containing: "
                f"{', '.join(self.REQUIRED_FIELDS)}"
            )

        try:
            with self._config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(
                f"Failed to parse configuration {self._config_path}: {e}"
            ) from e

        if data is None:
            raise ConfigValidationError(
                f"Configuration file is empty: {self._config_path}"
            )

        config = data.get("agent")
        if not config:
            raise ConfigValidationError(
                f"No 'agent' section found in {self._config_path}"
            )

        missing = [name for name in self.REQUIRED_FIELDS if name not in config]
        if missing:
            raise ConfigValidationError(
                f"Missing required fields in {self._config_path}:\n"
                f"  {', '.join(missing)}\n"
                f"All fields must be explicitly defined - no default values."
            )

        self._config = config
        logger.info(f"Configuration loaded from {self._config_path}")
        return config

    def permission_mode_override(self) -> Optional[PermissionMode]:
        """
        Permission mode from the environment, if one is set.

        Raises:
            ConfigValidationError: If the variable holds an unknown mode.
        """
        for name in (ENV_PERMISSION_MODE, ENV_LEGACY_PERMISSION_MODE):
            raw = (self._environ.get(name) or "").strip()
            if not raw:
                continue
            try:
                return PermissionMode(raw)
            except ValueError as e:
                raise ConfigValidationError(
                    f"{name}={raw!r} is not a permission mode. "
                    f"Expected one of: {', '.join(m.value for m in PermissionMode)}"
                ) from e
        return None

    def get_run_settings(self) -> RunSettings:
        """
        Build RunSettings from YAML plus environment overrides.

        Returns:
            Validated RunSettings.
        """
        config = dict(self._config if self._config is not None else self.load())

        override = self.permission_mode_override()
        if override is not None:
            logger.info(f"Permission mode overridden from environment: {override}")
            config["permission_mode"] = override

        api_key = (self._environ.get(ENV_SUMMARY_API_KEY) or "").strip()
        config["summary_api_key"] = api_key or None

        try:
            return RunSettings(**config)
        except ValueError as e:
            raise ConfigValidationError(
                f"Invalid configuration in {self._config_path}: {e}"
            ) from e

    @property
    def config_path(self) -> Path:
        """Return the path to the config file."""
        return self._config_path
