"""Configuration management for the chatroom service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path
from .registration import DEFAULT_REGISTER_TIMEOUT

DEFAULT_SESSION_MAX_AGE = 60 * 60 * 24


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from YAML and the environment."""

    database_path: Path
    session_secret: Optional[str] = None
    session_cookie_secure: bool = False
    session_max_age: int = DEFAULT_SESSION_MAX_AGE
    register_timeout: int = int(DEFAULT_REGISTER_TIMEOUT.total_seconds())

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(seconds=self.session_max_age)

    @property
    def register_window(self) -> timedelta:
        return timedelta(seconds=self.register_timeout)

    def require_secret(self) -> str:
        if not self.session_secret:
            raise RuntimeError("CHATROOM_SESSION_SECRET must be configured to serve the chatroom")
        return self.session_secret

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from a raw mapping such as a YAML document."""

        raw_db = data.get("database_path")
        if raw_db:
            db_path = Path(str(raw_db)).expanduser()
            if not db_path.is_absolute() and base_path is not None:
                db_path = base_path / db_path
            database_path = db_path.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        secret = data.get("session_secret")
        try:
            max_age = int(data.get("session_max_age", DEFAULT_SESSION_MAX_AGE))
            register_timeout = int(
                data.get("register_timeout", DEFAULT_REGISTER_TIMEOUT.total_seconds())
            )
        except (TypeError, ValueError) as exc:
            raise ValueError("session_max_age and register_timeout must be integers") from exc
        if max_age <= 0 or register_timeout <= 0:
            raise ValueError("session_max_age and register_timeout must be positive")

        return Settings(
            database_path=database_path,
            session_secret=str(secret) if secret else None,
            session_cookie_secure=bool(data.get("session_cookie_secure", False)),
            session_max_age=max_age,
            register_timeout=register_timeout,
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "chatroom.yaml").resolve(strict=False)


def _load_yaml(config_path: Path) -> Dict[str, object]:
    if not config_path.exists():
        return {}
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return raw


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML, letting ``CHATROOM_*`` variables override them."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("CHATROOM_CONFIG"))
    data: Dict[str, object] = dict(_load_yaml(path))

    if env.get("CHATROOM_DB_PATH"):
        data["database_path"] = str(resolve_database_path(env["CHATROOM_DB_PATH"]))
    if env.get("CHATROOM_SESSION_SECRET"):
        data["session_secret"] = env["CHATROOM_SESSION_SECRET"]
    if env.get("CHATROOM_SESSION_SECURE") is not None:
        data["session_cookie_secure"] = _env_flag(env.get("CHATROOM_SESSION_SECURE"))
    if env.get("CHATROOM_SESSION_MAX_AGE"):
        data["session_max_age"] = env["CHATROOM_SESSION_MAX_AGE"]
    if env.get("CHATROOM_REGISTER_TIMEOUT"):
        data["register_timeout"] = env["CHATROOM_REGISTER_TIMEOUT"]

    return Settings.from_dict(data, base_path=path.parent)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
