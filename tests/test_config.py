from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from chatroom.config import Settings, load_settings


def test_defaults_without_config_file(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "missing.yaml", environ={})

    assert settings.database_path.name == "chatroom.sqlite3"
    assert settings.session_secret is None
    assert settings.session_cookie_secure is False
    assert settings.session_ttl == timedelta(days=1)
    assert settings.register_window == timedelta(seconds=30)
    with pytest.raises(RuntimeError):
        settings.require_secret()


def test_yaml_values_are_relative_to_config_file(tmp_path: Path) -> None:
    config = tmp_path / "chatroom.yaml"
    config.write_text(
        "database_path: data/board.sqlite3\n"
        "session_secret: from-yaml\n"
        "session_cookie_secure: true\n"
        "register_timeout: 45\n",
        encoding="utf-8",
    )

    settings = load_settings(config, environ={})

    assert settings.database_path == (tmp_path / "data" / "board.sqlite3").resolve()
    assert settings.require_secret() == "from-yaml"
    assert settings.session_cookie_secure is True
    assert settings.register_timeout == 45


def test_environment_overrides_yaml(tmp_path: Path) -> None:
    config = tmp_path / "chatroom.yaml"
    config.write_text("session_secret: from-yaml\nsession_max_age: 60\n", encoding="utf-8")
    env = {
        "CHATROOM_DB_PATH": str(tmp_path / "env.sqlite3"),
        "CHATROOM_SESSION_SECRET": "from-env",
        "CHATROOM_SESSION_SECURE": "yes",
        "CHATROOM_SESSION_MAX_AGE": "120",
        "CHATROOM_REGISTER_TIMEOUT": "10",
    }

    settings = load_settings(config, environ=env)

    assert settings.database_path == (tmp_path / "env.sqlite3").resolve()
    assert settings.session_secret == "from-env"
    assert settings.session_cookie_secure is True
    assert settings.session_max_age == 120
    assert settings.register_timeout == 10


def test_config_path_from_environment(tmp_path: Path) -> None:
    config = tmp_path / "custom.yaml"
    config.write_text("session_secret: custom\n", encoding="utf-8")

    settings = load_settings(environ={"CHATROOM_CONFIG": str(config)})
    assert settings.session_secret == "custom"


@pytest.mark.parametrize(
    "document",
    ["- just\n- a list\n", "register_timeout: soon\n", "session_max_age: 0\n"],
)
def test_invalid_configuration_is_rejected(tmp_path: Path, document: str) -> None:
    config = tmp_path / "chatroom.yaml"
    config.write_text(document, encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(config, environ={})


def test_settings_from_dict_defaults() -> None:
    settings = Settings.from_dict({"session_secret": "abc"})
    assert settings.session_secret == "abc"
    assert settings.session_max_age == 86400
