"""Per-provider append log of questions answered from their stores."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .files import read_json, safe_identity, write_json

LOGGER = logging.getLogger("campusdesk.provider_logs")

UNKNOWN_PROVIDER = "unknown"


class ProviderLogStore:
    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._lock = threading.Lock()

    def path_for(self, provider_email: Optional[str]) -> Path:
        return self._root / f"{safe_identity(provider_email or UNKNOWN_PROVIDER)}.json"

    def _read(self, path: Path) -> List[Dict[str, Any]]:
        try:
            data = read_json(path)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            LOGGER.warning("provider log unreadable, starting fresh path=%s err=%s", path, exc)
            return []
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def append(self, provider_email: Optional[str], entry: Dict[str, Any]) -> int:
        """Append ``entry`` and return the new log length."""

        path = self.path_for(provider_email)
        with self._lock:
            entries = self._read(path)
            entries.append(dict(entry))
            write_json(path, entries)
        return len(entries)

    def list_logs(self, provider_email: str, limit: Optional[int] = None) -> Dict[str, Any]:
        """Entries newest ``asked_at`` first, truncated to ``limit``."""

        entries = self._read(self.path_for(provider_email))
        ordered = sorted(entries, key=lambda item: str(item.get("asked_at") or ""), reverse=True)
        if limit is not None and limit >= 0:
            ordered = ordered[:limit]
        return {"providerEmail": provider_email, "totalLogs": len(entries), "logs": ordered}


__all__ = ["ProviderLogStore", "UNKNOWN_PROVIDER"]
