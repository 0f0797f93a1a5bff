"""Append-only chat session transcripts, one JSON file per (email, session)."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .files import read_json, safe_identity, utc_now_iso, write_json

LOGGER = logging.getLogger("campusdesk.sessions")

SESSION_NAME_WORDS = 10
DEFAULT_SESSION_NAME = "New Session"


def generate_session_name(question: Any) -> str:
    """Derive a display name from the first question of a session."""

    if not isinstance(question, str) or not question.strip():
        return DEFAULT_SESSION_NAME
    trimmed = question.strip()
    words = trimmed.split()
    if len(words) <= SESSION_NAME_WORDS:
        return trimmed
    return " ".join(words[:SESSION_NAME_WORDS]) + "..."


def _later(previous: Any, current: str) -> str:
    if isinstance(previous, str) and previous > current:
        return previous
    return current


class SessionStore:
    """File-backed session transcripts.

    Writes within one process are serialised by a lock; concurrent writers in
    other processes follow last-write-wins.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, email: str, session_id: str) -> Path:
        return self._root / f"{safe_identity(email)}__{safe_identity(session_id)}.json"

    def _prefix(self, email: str) -> str:
        return f"{safe_identity(email)}__"

    def create(self, email: str, session_id: str, session_name: Optional[str]) -> Dict[str, Any]:
        now = utc_now_iso()
        session = {
            "sessionId": session_id,
            "sessionName": session_name or DEFAULT_SESSION_NAME,
            "email": email,
            "createdAt": now,
            "updatedAt": now,
            "messages": [],
        }
        with self._lock:
            write_json(self.path_for(email, session_id), session)
        return session

    def append(self, email: str, session_id: str, message: Dict[str, Any]) -> Dict[str, Any]:
        """Append ``message``; a missing or unreadable transcript is recreated."""

        path = self.path_for(email, session_id)
        with self._lock:
            now = utc_now_iso()
            try:
                session = read_json(path)
                if not isinstance(session, dict):
                    raise ValueError("session document is not an object")
            except FileNotFoundError:
                session = None
            except (OSError, ValueError) as exc:
                LOGGER.warning("session unreadable, recreating path=%s err=%s", path, exc)
                session = None

            if session is None:
                session = {
                    "sessionId": session_id,
                    "sessionName": generate_session_name(message.get("question")),
                    "email": email,
                    "createdAt": now,
                    "updatedAt": now,
                    "messages": [],
                }
            messages = session.get("messages")
            if not isinstance(messages, list):
                messages = []
            messages.append(dict(message))
            session["messages"] = messages
            session["updatedAt"] = _later(session.get("updatedAt"), now)
            write_json(path, session)
        return session

    def get(self, email: str, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            session = read_json(self.path_for(email, session_id))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            LOGGER.warning("session unreadable email=%s session=%s err=%s", email, session_id, exc)
            return None
        return session if isinstance(session, dict) else None

    def _iter_sessions(self, email: str) -> List[Dict[str, Any]]:
        prefix = self._prefix(email)
        sessions: List[Dict[str, Any]] = []
        if not self._root.exists():
            return sessions
        for path in sorted(self._root.glob(f"{prefix}*.json")):
            try:
                data = read_json(path)
            except (OSError, ValueError):
                continue
            if isinstance(data, dict):
                sessions.append(data)
        return sessions

    def list_sessions(self, email: str) -> List[Dict[str, Any]]:
        """Session headers, newest ``createdAt`` first."""

        rows = [
            {
                "sessionId": data.get("sessionId"),
                "sessionName": data.get("sessionName"),
                "createdAt": data.get("createdAt"),
                "messageCount": len(data.get("messages") or []),
            }
            for data in self._iter_sessions(email)
        ]
        rows.sort(key=lambda row: row.get("createdAt") or "", reverse=True)
        return rows

    def summary(self, email: str, limit: Optional[int] = None) -> Dict[str, Any]:
        rows = []
        for data in self._iter_sessions(email):
            rows.append(
                {
                    "sessionId": data.get("sessionId"),
                    "sessionName": data.get("sessionName"),
                    "createdAt": data.get("createdAt"),
                    "updatedAt": data.get("updatedAt") or data.get("createdAt"),
                    "messageCount": len(data.get("messages") or []),
                }
            )
        rows.sort(key=lambda row: row.get("updatedAt") or "", reverse=True)
        selected = rows[:limit] if limit is not None and limit >= 0 else rows
        return {"email": email, "totalSessions": len(rows), "sessions": selected}

    def delete(self, email: str, session_id: str) -> bool:
        path = self.path_for(email, session_id)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
        return True

    def delete_all(self, email: str) -> int:
        prefix = self._prefix(email)
        deleted = 0
        if not self._root.exists():
            return deleted
        with self._lock:
            for path in self._root.glob(f"{prefix}*.json"):
                try:
                    path.unlink()
                except OSError as exc:
                    LOGGER.warning("session delete failed path=%s err=%s", path, exc)
                    continue
                deleted += 1
        return deleted


__all__ = ["DEFAULT_SESSION_NAME", "SessionStore", "generate_session_name"]
