from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from portal.models import Credentials

APP_DIR_NAME = "htu-net"
CONFIG_FILE_NAME = "config.json"


class PersistenceError(RuntimeError):
    pass


@dataclass(frozen=True)
class PersistedState:
    credentials: Credentials | None = None
    last_login_url: str | None = None
    logout_url_base: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.credentials is not None:
            data["credentials"] = self.credentials.to_dict()
        if self.last_login_url:
            data["lastLoginUrl"] = self.last_login_url
        if self.logout_url_base:
            data["logoutUrlBase"] = self.logout_url_base
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "PersistedState":
        if not isinstance(data, dict):
            raise PersistenceError("config root must be a JSON object")
        raw_credentials = data.get("credentials")
        try:
            credentials = Credentials.from_dict(raw_credentials) if raw_credentials else None
        except ValueError as exc:
            raise PersistenceError(f"invalid credentials: {exc}") from exc
        return cls(
            credentials=credentials,
            last_login_url=_optional_str(data, "lastLoginUrl"),
            logout_url_base=_optional_str(data, "logoutUrlBase"),
        )


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise PersistenceError(f"{key} must be a string")
    return value


def user_config_dir() -> Path:
    if os.name == "nt":
        appdata = os.environ.get("APPDATA", "").strip()
        if appdata:
            return Path(appdata)
    xdg = os.environ.get("XDG_CONFIG_HOME", "").strip()
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def default_config_path() -> Path:
    return user_config_dir() / APP_DIR_NAME / CONFIG_FILE_NAME


def parse_state(raw: str) -> PersistedState:
    if not raw.strip():
        return PersistedState()
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise PersistenceError(f"config is not valid JSON: {exc}") from exc
    return PersistedState.from_dict(data)


def load_state(path: str | Path) -> PersistedState:
    p = Path(path)
    if not p.exists():
        return PersistedState()
    try:
        raw = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceError(f"cannot read {p}: {exc}") from exc
    return parse_state(raw)


def save_state(path: str | Path, state: PersistedState) -> None:
    """Write-then-rename so readers never observe a partially written file."""
    p = Path(path)
    tmp = p.with_name(p.name + ".tmp")
    payload = json.dumps(state.to_dict(), ensure_ascii=False, indent=2)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        with tmp.open("w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, p)
    except OSError as exc:
        raise PersistenceError(f"cannot write {p}: {exc}") from exc
