import os
from pathlib import Path

import pytest

from campusdesk.env_loader import load_default_env, load_env_file
from campusdesk.settings import load_settings


def test_env_loader_parses_key_value_and_ignores_comments(tmp_path, monkeypatch):
    path = tmp_path / "env"
    path.write_text(
        "\n".join(
            [
                "# comment",
                "export CD_FOO=bar",
                "CD_QUOTED='hello'",
                "CD_DOUBLE=\"world\"",
                "INVALIDLINE",
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    monkeypatch.delenv("CD_FOO", raising=False)
    monkeypatch.delenv("CD_QUOTED", raising=False)
    monkeypatch.setenv("CD_DOUBLE", "already")

    loaded = load_env_file(path)

    assert loaded == 2
    assert os.environ["CD_FOO"] == "bar"
    assert os.environ["CD_QUOTED"] == "hello"
    assert os.environ["CD_DOUBLE"] == "already"
    monkeypatch.delenv("CD_FOO")
    monkeypatch.delenv("CD_QUOTED")


def test_missing_env_file_loads_nothing(tmp_path):
    assert load_env_file(tmp_path / "absent") == 0


def test_default_env_file_comes_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "campus.env"
    path.write_text("CD_FROM_FILE=1\n", encoding="utf-8")
    monkeypatch.setenv("CAMPUSDESK_ENV_FILE", str(path))
    monkeypatch.delenv("CD_FROM_FILE", raising=False)

    assert load_default_env() == 1
    assert os.environ["CD_FROM_FILE"] == "1"
    monkeypatch.delenv("CD_FROM_FILE")


def test_settings_read_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("CAMPUSDESK_ENV", "Development")
    monkeypatch.setenv("CAMPUSDESK_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("GEMINI_API_KEY", "  env-key ")
    monkeypatch.setenv("GEMINI_DIRECT_MODELS", "a, b,,c")
    monkeypatch.setenv("GROUNDING_RESPONSE_CAP", "not-a-number")
    monkeypatch.setenv("LOG_REQUESTS", "off")

    settings = load_settings()

    assert settings.is_development
    assert settings.data_dir == Path(tmp_path)
    assert settings.gemini_api_key == "env-key"
    assert settings.gemini_direct_models == ("a", "b", "c")
    assert settings.grounding_response_cap == 10
    assert settings.log_requests is False


def test_settings_defaults_and_overrides(monkeypatch):
    for name in ("CAMPUSDESK_ENV", "GEMINI_API_KEY", "ASK_DEADLINE_SECONDS", "PROVIDER_LOG_RESPONSE_CHARS"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings(data_dir="somewhere")

    assert settings.environment == "production"
    assert settings.gemini_api_key is None
    assert settings.ask_deadline_seconds == 120.0
    assert settings.provider_log_response_chars == 500
    assert settings.data_dir == Path("somewhere")
    with pytest.raises(TypeError):
        load_settings(not_a_setting=True)
