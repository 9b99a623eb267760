"""Runtime configuration: defaults, then a JSON settings file, then env vars."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

DEFAULT_SETTINGS_PATH = Path.home() / ".chatsync" / "settings.json"
DEFAULT_TOKEN_PATH = Path.home() / ".chatsync" / "token.json"
ENV_PREFIX = "CHATSYNC_"


@dataclass(frozen=True)
class ChatConfig:
    api_url: str = "http://localhost:8000/api"
    ws_url: str = ""
    app_key: str = ""
    token_path: str = str(DEFAULT_TOKEN_PATH)
    request_timeout_s: float = 15.0
    heartbeat_s: float = 20.0
    log_level: str = "INFO"

    @property
    def resolved_ws_url(self) -> str:
        if self.ws_url:
            return self.ws_url
        return f"ws://localhost:8080/app/{self.app_key}?protocol=7&client=chatsync&version=0.1.0"


_FLOAT_FIELDS = {"request_timeout_s", "heartbeat_s"}


def load_settings(path: Path | str = DEFAULT_SETTINGS_PATH) -> Dict[str, Any]:
    """Load the JSON settings file; missing or invalid files yield ``{}``."""

    try:
        data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError:
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def _coerce(key: str, value: Any) -> Any:
    if key in _FLOAT_FIELDS:
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{key} must be a number, got {value!r}") from exc
    return str(value)


def load_config(path: Optional[Path | str] = None, env: Optional[Mapping[str, str]] = None) -> ChatConfig:
    env = os.environ if env is None else env
    settings_path = path if path is not None else env.get(f"{ENV_PREFIX}SETTINGS", DEFAULT_SETTINGS_PATH)
    settings = load_settings(settings_path)

    overrides: Dict[str, Any] = {}
    for item in fields(ChatConfig):
        if item.name in settings and settings[item.name] is not None:
            overrides[item.name] = _coerce(item.name, settings[item.name])
        env_value = env.get(f"{ENV_PREFIX}{item.name.upper()}")
        if env_value is not None and env_value != "":
            overrides[item.name] = _coerce(item.name, env_value)

    config = replace(ChatConfig(), **overrides)
    return replace(config, log_level=config.log_level.upper())
