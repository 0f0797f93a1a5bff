"""JSON file helpers shared by the file-backed stores."""

from __future__ import annotations

import datetime as _dt
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any

_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9@._-]")


def safe_identity(value: str) -> str:
    """Replace characters that are unsafe in file names with ``_``."""

    return _UNSAFE_RE.sub("_", value or "")


def utc_now_iso() -> str:
    now = _dt.datetime.now(_dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def read_json(path: Path) -> Any:
    """Return the decoded JSON document at ``path``.

    Raises ``FileNotFoundError`` when missing and ``ValueError`` when the file
    does not hold valid JSON.
    """

    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def write_json(path: Path, payload: Any) -> None:
    """Atomically replace ``path`` with ``payload`` serialised as JSON."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


__all__ = ["read_json", "safe_identity", "utc_now_iso", "write_json"]
