"""
Tests for API configuration loading and startup logging helpers.
"""
from pathlib import Path
from unittest.mock import patch

import pytest

from foundry.api.main import config_lines, load_api_config, mask_secret
from foundry.config import ConfigNotFoundError, ConfigValidationError
from foundry.core.schemas import PermissionMode, RunSettings


class TestLoadApiConfig:
    """Tests for load_api_config."""

    @pytest.mark.unit
    def test_loads_api_section(self, tmp_path: Path) -> None:
        """A complete api.yaml is returned as a dict."""
        config_file = tmp_path / "api.yaml"
        config_file.write_text(
            "api:\n  host: 127.0.0.1\n  port: 9000\n  cors_origins: []\n",
            encoding="utf-8",
        )

        with patch("foundry.api.main.API_CONFIG_FILE", config_file):
            config = load_api_config()

        assert config["api"]["port"] == 9000

    @pytest.mark.unit
    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing api.yaml raises ConfigNotFoundError."""
        with patch("foundry.api.main.API_CONFIG_FILE", tmp_path / "api.yaml"):
            with pytest.raises(ConfigNotFoundError):
                load_api_config()

    @pytest.mark.unit
    def test_missing_fields(self, tmp_path: Path) -> None:
        """Every required field must be present."""
        config_file = tmp_path / "api.yaml"
        config_file.write_text("api:\n  host: 127.0.0.1\n", encoding="utf-8")

        with patch("foundry.api.main.API_CONFIG_FILE", config_file):
            with pytest.raises(ConfigValidationError) as exc_info:
                load_api_config()

        assert "port" in str(exc_info.value)


class TestConfigLogging:
    """Tests for masking configuration values in logs."""

    @pytest.mark.unit
    def test_mask_secret(self) -> None:
        """Long secrets keep only their ends; short ones are fully masked."""
        assert mask_secret("sk-abcdefghijkl") == "sk-a...ijkl"
        assert mask_secret("short") == "*****"

    @pytest.mark.unit
    def test_run_settings_key_is_masked(self) -> None:
        """The summarizer key from the run settings never reaches the log in full."""
        settings = RunSettings(
            model=None,
            max_turns=100,
            permission_mode=PermissionMode.DEFAULT,
            summary_model="gemini-2.5-flash",
            summary_digest_events=18,
            summary_api_key="AIzaExampleKey1234",
        )

        lines = config_lines("agent", settings.model_dump(mode="json"))

        assert lines[0] == "agent:"
        assert "  summary_api_key: AIza...1234" in lines
        assert "  max_turns: 100" in lines
        assert "  permission_mode: default" in lines
        assert not any("AIzaExampleKey1234" in line for line in lines)

    @pytest.mark.unit
    def test_api_section_lists_are_joined(self) -> None:
        """List values are shown on one line."""
        lines = config_lines(
            "api", {"host": "0.0.0.0", "cors_origins": ["http://a", "http://b"]}
        )
        assert "  cors_origins: http://a, http://b" in lines
        assert "  host: 0.0.0.0" in lines
