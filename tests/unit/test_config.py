"""
Unit tests for configuration loading.
"""

from pathlib import Path

from apimacro.config import Config

ENV_VARS = (
    "APIMACRO_STORAGE_PATH",
    "APIMACRO_BASE_URL",
    "APIMACRO_API_TOKEN",
    "APIMACRO_TIMEOUT",
    "APIMACRO_LOG_LEVEL",
)


def clear_env(monkeypatch):
    # setenv first so teardown removes anything load_dotenv adds
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestConfig:
    """Tests for Config.from_env and validate."""

    def test_defaults(self, monkeypatch, tmp_path):
        clear_env(monkeypatch)

        config = Config.from_env(str(tmp_path / "missing.env"))

        assert config.storage_path == str(Path.home() / ".apimacro" / "macros.db")
        assert config.base_url == ""
        assert config.timeout == 30.0
        assert config.log_level == "INFO"
        assert config.validate() == []

    def test_environment(self, monkeypatch, tmp_path):
        clear_env(monkeypatch)
        monkeypatch.setenv("APIMACRO_STORAGE_PATH", str(tmp_path / "macros.db"))
        monkeypatch.setenv("APIMACRO_BASE_URL", "https://fw.example.com")
        monkeypatch.setenv("APIMACRO_API_TOKEN", "secret")
        monkeypatch.setenv("APIMACRO_TIMEOUT", "5")
        monkeypatch.setenv("APIMACRO_LOG_LEVEL", "debug")

        config = Config.from_env(str(tmp_path / "missing.env"))

        assert config.storage_path == str(tmp_path / "macros.db")
        assert config.base_url == "https://fw.example.com"
        assert config.api_token == "secret"
        assert config.timeout == 5.0
        assert config.log_level == "DEBUG"

    def test_env_file(self, monkeypatch, tmp_path):
        clear_env(monkeypatch)
        env_file = tmp_path / ".env"
        env_file.write_text("APIMACRO_BASE_URL=https://api.example.com\n")

        config = Config.from_env(str(env_file))

        assert config.base_url == "https://api.example.com"

    def test_validate(self):
        config = Config(
            storage_path="",
            base_url="ftp://example.com",
            timeout=0,
            log_level="LOUD",
        )

        errors = config.validate()

        assert len(errors) == 4
        assert any("APIMACRO_BASE_URL" in e for e in errors)
        assert any("APIMACRO_LOG_LEVEL" in e for e in errors)
