import pytest
from pydantic import ValidationError

from codejudge.settings import Settings


class TestSettings:
    def test_defaults_without_config_file(self, tmp_path) -> None:
        settings = Settings(config_path=str(tmp_path / "missing.toml"))
        assert settings.RUNNER == "docker"
        assert settings.DEFAULT_MEMORY_LIMIT_MB == 256
        assert settings.DEFAULT_TIME_LIMIT_SECONDS == 1.0
        assert settings.JUDGE0_API_KEY is None

    def test_values_loaded_from_toml(self, tmp_path) -> None:
        config = tmp_path / "config.toml"
        config.write_text(
            'RUNNER = "judge0"\n'
            "DEFAULT_TIME_LIMIT_SECONDS = 2.5\n"
            "[RUNTIME_IMAGES]\n"
            'python = "python:3.11-slim"\n'
        )
        settings = Settings(config_path=str(config))
        assert settings.RUNNER == "judge0"
        assert settings.DEFAULT_TIME_LIMIT_SECONDS == 2.5
        assert settings.RUNTIME_IMAGES == {"python": "python:3.11-slim"}

    def test_config_path_from_environment(self, tmp_path, monkeypatch) -> None:
        config = tmp_path / "other.toml"
        config.write_text('LOG_LEVEL = "DEBUG"\n')
        monkeypatch.setenv("CODEJUDGE_CONFIG", str(config))
        assert Settings().LOG_LEVEL == "DEBUG"

    def test_unknown_keys_are_rejected(self, tmp_path) -> None:
        config = tmp_path / "config.toml"
        config.write_text("NOT_A_SETTING = 1\n")
        with pytest.raises(ValidationError):
            Settings(config_path=str(config))

    def test_limits_must_be_positive(self, tmp_path) -> None:
        with pytest.raises(ValidationError) as exc_info:
            Settings(config_path=str(tmp_path / "missing.toml"), DEFAULT_MEMORY_LIMIT_MB=0)
        assert exc_info.value.errors()[0]["loc"] == ("DEFAULT_MEMORY_LIMIT_MB",)

    def test_unknown_runner_is_rejected(self, tmp_path) -> None:
        with pytest.raises(ValidationError):
            Settings(config_path=str(tmp_path / "missing.toml"), RUNNER="kubernetes")
