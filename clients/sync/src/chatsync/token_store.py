"""Persist the API bearer token for the CLI."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from .config import DEFAULT_TOKEN_PATH


def _write_private(path: Path, token: str) -> None:
    """Replace the token file atomically with an owner-only copy."""

    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(f".{path.name}.new")
    fd = os.open(staging, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with open(fd, "w", encoding="utf-8") as handle:
        json.dump({"token": token}, handle)
        handle.write("\n")
    os.replace(staging, path)


def load_token(path: Path | str = DEFAULT_TOKEN_PATH) -> Optional[str]:
    try:
        data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    except (FileNotFoundError, ValueError):
        return None

    if not isinstance(data, dict):
        return None
    token = data.get("token")
    if not isinstance(token, str) or not token.strip():
        return None
    return token.strip()


def save_token(token: str, path: Path | str = DEFAULT_TOKEN_PATH) -> None:
    clean = token.strip()
    if clean.startswith("Bearer "):
        clean = clean[len("Bearer ") :].strip()
    if not clean:
        raise ValueError("token must not be empty")
    _write_private(Path(path).expanduser(), clean)


def clear_token(path: Path | str = DEFAULT_TOKEN_PATH) -> bool:
    try:
        Path(path).expanduser().unlink()
    except FileNotFoundError:
        return False
    return True
