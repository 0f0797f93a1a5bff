"""Request normalization helpers for /api/ask."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import Request

_QUESTION_KEYS = ("question", "query", "q", "text")
_SESSION_KEYS = ("sessionId", "session_id")
_CAMPUS_KEYS = ("isCampusSearch", "is_campus_search", "campusSearch")


@dataclass
class AskRequest:
    email: Optional[str]
    question: Optional[str]
    session_id: Optional[str]
    campus_search: bool


def parse_campus_flag(value: Any) -> bool:
    """Campus search stays on unless the caller sent ``false``."""

    if value is False:
        return False
    if isinstance(value, str) and value.strip().lower() == "false":
        return False
    return True


def _clean_text(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    elif isinstance(value, bytes):
        value = value.decode("utf-8", "ignore")
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _first(payload: Mapping[str, Any], keys) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def normalize_payload(payload: Mapping[str, Any]) -> AskRequest:
    campus_raw = _first(payload, _CAMPUS_KEYS)
    return AskRequest(
        email=_clean_text(payload.get("email")),
        question=_clean_text(_first(payload, _QUESTION_KEYS)),
        session_id=_clean_text(_first(payload, _SESSION_KEYS)),
        campus_search=parse_campus_flag(campus_raw) if campus_raw is not None else True,
    )


async def normalize_request(request: Request) -> AskRequest:
    """Merge query parameters with a JSON or text/plain body (body wins)."""

    merged: Dict[str, Any] = dict(request.query_params)
    if request.method.upper() != "GET":
        raw_body = await request.body()
        content_type = (request.headers.get("content-type") or "").split(";")[0].strip().lower()
        if raw_body:
            decoded = raw_body.decode("utf-8", "ignore")
            if content_type == "text/plain":
                merged["question"] = decoded
            else:
                try:
                    body = json.loads(decoded or "{}")
                except ValueError:
                    body = None
                if isinstance(body, dict):
                    merged.update(body)
    return normalize_payload(merged)


__all__ = ["AskRequest", "normalize_payload", "normalize_request", "parse_campus_flag"]
