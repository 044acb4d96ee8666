from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


def read_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read ``name`` from the environment, or from the file named by ``<name>_FILE``."""
    value = os.getenv(name)
    if value not in {None, ""}:
        return value

    file_var = os.getenv(f"{name}_FILE")
    if not file_var:
        return default

    try:
        content = Path(file_var).read_text(encoding="utf-8")
    except OSError:
        return default
    return content.rstrip("\r\n")


def read_env_path(name: str) -> Optional[Path]:
    value = (read_env(name) or "").strip()
    return Path(value).expanduser() if value else None


def read_env_int(name: str, default: int) -> int:
    value = (read_env(name) or "").strip()
    try:
        return int(value) if value else default
    except ValueError:
        return default
