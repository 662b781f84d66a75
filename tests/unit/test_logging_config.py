import pytest

from fitacademy.logging_config import build_config


@pytest.mark.unit
class TestLoggingConfig:
    def test_console_only_by_default(self):
        config = build_config("DEBUG")
        assert list(config["handlers"]) == ["console"]
        assert config["loggers"]["fitacademy"]["level"] == "DEBUG"
        assert config["loggers"]["httpx"]["level"] == "WARNING"

    def test_file_handler_attached_everywhere(self, tmp_path):
        config = build_config("INFO", str(tmp_path / "app.log"))
        assert config["handlers"]["file"]["filename"].endswith("app.log")
        assert all("file" in cfg["handlers"] for cfg in config["loggers"].values())
        assert "file" in config["root"]["handlers"]
