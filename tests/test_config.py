"""
Tests for configuration loading.
"""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from envdb.config import DEFAULTS, ENV_OVERRIDES, ConfigError, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No ENVDB_* variables and no stray .env file."""
    for env_var in ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.chdir(tmp_path)


class TestLoadConfig:

    def test_defaults_when_file_missing(self, tmp_path):
        config = load_config(str(tmp_path / "missing.yaml"))
        assert config == DEFAULTS

    def test_defaults_not_mutated(self, tmp_path):
        config = load_config(str(tmp_path / "missing.yaml"))
        config["database"]["url"] = "sqlite://"
        assert DEFAULTS["database"]["url"] == "sqlite:///.data/envdb.db"

    def test_file_overrides_defaults(self, tmp_path):
        path = tmp_path / "envdb.yaml"
        path.write_text(
            "database:\n"
            "  url: sqlite:////var/lib/envdb/nodes.db\n"
            "reconciler:\n"
            "  continue_on_error: true\n"
        )

        config = load_config(str(path))

        assert config["database"]["url"] == "sqlite:////var/lib/envdb/nodes.db"
        assert config["database"]["busy_timeout_seconds"] == 30
        assert config["reconciler"]["continue_on_error"] is True
        assert config["api"]["port"] == 8000

    def test_default_path_in_working_directory(self, tmp_path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "envdb.yaml").write_text("api:\n  port: 9001\n")

        assert load_config()["api"]["port"] == 9001

    def test_empty_file(self, tmp_path):
        path = tmp_path / "envdb.yaml"
        path.write_text("")
        assert load_config(str(path)) == DEFAULTS

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "envdb.yaml"
        path.write_text("api:\n  port: 9001\n")
        monkeypatch.setenv("ENVDB_API_PORT", "9100")
        monkeypatch.setenv("ENVDB_DATABASE_URL", "sqlite://")

        config = load_config(str(path))

        assert config["api"]["port"] == 9100
        assert config["database"]["url"] == "sqlite://"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("ENVDB_LOG_LEVEL=DEBUG\n")

        try:
            config = load_config(str(tmp_path / "missing.yaml"))
        finally:
            os.environ.pop("ENVDB_LOG_LEVEL", None)

        assert config["logging"]["level"] == "DEBUG"


class TestInvalidConfig:

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "envdb.yaml"
        path.write_text("database: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "envdb.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_section_not_a_mapping(self, tmp_path):
        path = tmp_path / "envdb.yaml"
        path.write_text("database: sqlite://\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_bad_port(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ENVDB_API_PORT", "eighty")
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "missing.yaml"))
