"""Application configuration and the on-disk config file."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fpt.models import WriteCredential

LOGGER = logging.getLogger(__name__)

DEFAULT_PORT = 4011
DEFAULT_HOST = "127.0.0.1"
DEFAULT_UI_URL = "http://127.0.0.1:5173"


def default_config_path() -> Path:
    return Path.home() / ".fpt" / "config.json"


@dataclass(slots=True)
class AppConfig:
    project_id: str | None = None
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    write_enabled: bool = False
    write_token: str | None = None
    ui_url: str = DEFAULT_UI_URL
    timeout: float = 30.0

    @property
    def write_credential(self) -> WriteCredential:
        return WriteCredential(enabled=self.write_enabled, token=self.write_token)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "AppConfig":
        config = cls()
        if raw.get("projectId"):
            config.project_id = str(raw["projectId"])
        if raw.get("port") is not None:
            config.port = int(raw["port"])
        if raw.get("serverHost"):
            config.host = str(raw["serverHost"])
        config.write_enabled = bool(raw.get("writeEnabled", False))
        if raw.get("writeToken"):
            config.write_token = str(raw["writeToken"])
        return config

    def to_dict(self) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "port": self.port,
            "serverHost": self.host,
            "writeEnabled": self.write_enabled,
        }
        if self.project_id:
            raw["projectId"] = self.project_id
        if self.write_token:
            raw["writeToken"] = self.write_token
        return raw


def load_config(path: Path | None = None) -> AppConfig:
    """Load the saved config, falling back to defaults when absent or unreadable."""
    path = path or default_config_path()
    if not path.exists():
        return AppConfig()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("config root must be an object")
        return AppConfig.from_dict(raw)
    except (OSError, TypeError, ValueError) as exc:
        LOGGER.warning("Ignoring unreadable config %s: %s", path, exc)
        return AppConfig()


def save_config(config: AppConfig, path: Path | None = None) -> Path:
    path = path or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
    return path
