"""Environment file loader used before settings are built."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger("campusdesk.env")


def load_env_file(path: str | os.PathLike) -> int:
    """
    Load KEY=VALUE lines into the process environment.

    - Ignores blank lines and comments.
    - Supports optional leading 'export '.
    - Uses os.environ.setdefault(key, value) so explicit env vars win.

    Returns the number of keys that were newly set. A missing file loads
    nothing.
    """

    env_path = Path(path)
    try:
        raw_text = env_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return 0
    except (PermissionError, UnicodeDecodeError) as exc:
        LOGGER.warning("env file unreadable path=%s err=%s", env_path, exc)
        return 0

    loaded = 0
    for raw_line in raw_text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        name, sep, value = line.partition("=")
        if sep != "=":
            continue
        key = name.strip()
        if not key or " " in key:
            continue
        cleaned = value.strip().strip("'").strip('"')
        if key not in os.environ:
            os.environ[key] = cleaned
            loaded += 1
    return loaded


def load_default_env(explicit: Optional[str] = None) -> int:
    """Load ``CAMPUSDESK_ENV_FILE`` (or ``.env`` in the working directory)."""

    target = explicit or os.environ.get("CAMPUSDESK_ENV_FILE") or ".env"
    return load_env_file(target)


__all__ = ["load_default_env", "load_env_file"]
