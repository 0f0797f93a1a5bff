"""Client for the per-department knowledge indexes (Gemini File Search)."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Dict, List, Optional, Sequence

import requests

LOGGER = logging.getLogger("campusdesk.knowledge")

STORE_PREFIX = "fileSearchStores/"


class KnowledgeIndexError(Exception):
    """Transport-level failure talking to the knowledge index."""


@dataclass
class KnowledgeResponse:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    latency_ms: int = 0

    @property
    def ok(self) -> bool:
        return bool(self.success and self.data)


@dataclass
class KnowledgeAnswer:
    """The useful parts of a successful ``KnowledgeResponse``."""

    response_text: str
    grounding_chunks: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_response(cls, response: KnowledgeResponse) -> "KnowledgeAnswer":
        data = response.data or {}
        text = data.get("response_text")
        metadata = data.get("grounding_metadata")
        chunks = metadata.get("groundingChunks") if isinstance(metadata, dict) else None
        return cls(
            response_text=text if isinstance(text, str) else "",
            grounding_chunks=[c for c in chunks or [] if isinstance(c, dict)],
        )


def grounding_texts(chunks: Sequence[Dict[str, Any]]) -> List[str]:
    """Evidence text of each chunk that carries a retrieved context."""

    texts: List[str] = []
    for chunk in chunks or []:
        context = chunk.get("retrievedContext") if isinstance(chunk, dict) else None
        if not isinstance(context, dict):
            continue
        text = context.get("text")
        if isinstance(text, str) and text:
            texts.append(text)
    return texts


def _qualify(index_name: str) -> str:
    name = (index_name or "").strip()
    if "/" in name:
        return name
    return STORE_PREFIX + name


def _candidate_payload(payload: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return None
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    first = candidates[0]
    if not isinstance(first, dict):
        return None

    parts = (first.get("content") or {}).get("parts") if isinstance(first.get("content"), dict) else None
    texts = []
    for part in parts or []:
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            texts.append(part["text"])
    response_text = "".join(texts).strip()
    if not response_text:
        return None

    metadata = first.get("groundingMetadata")
    if not isinstance(metadata, dict):
        metadata = {}
    chunks = metadata.get("groundingChunks")
    return {
        "response_text": response_text,
        "grounding_metadata": {"groundingChunks": chunks if isinstance(chunks, list) else []},
    }


class KnowledgeIndexClient:
    """Queries File Search stores through the Gemini REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        timeout: float,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def timeout(self) -> float:
        return self._timeout

    def _endpoint(self) -> str:
        model = self._model if self._model.startswith("models/") else f"models/{self._model}"
        return f"{self._base_url}/{model}:generateContent"

    def query(
        self,
        api_key: Optional[str],
        index_names: Sequence[str],
        question: str,
        *,
        timeout: Optional[float] = None,
    ) -> KnowledgeResponse:
        """Ask ``question`` against ``index_names``.

        A rejected or empty answer comes back as ``success=False``; network
        failures raise ``KnowledgeIndexError``.
        """

        if not api_key:
            return KnowledgeResponse(success=False, error="missing_api_key")
        if not index_names:
            return KnowledgeResponse(success=False, error="no_index")

        body = {
            "contents": [{"role": "user", "parts": [{"text": question}]}],
            "tools": [{"file_search": {"file_search_store_names": [_qualify(n) for n in index_names]}}],
        }
        effective_timeout = self._timeout if timeout is None else timeout
        start = perf_counter()
        try:
            response = self._session.post(
                self._endpoint(),
                json=body,
                headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
                timeout=effective_timeout,
            )
        except requests.RequestException as exc:
            LOGGER.warning("knowledge=fail stores=%s err=%s", list(index_names), exc)
            raise KnowledgeIndexError(str(exc)) from exc
        latency_ms = int((perf_counter() - start) * 1000)

        if response.status_code >= 400:
            LOGGER.warning(
                "knowledge=fail stores=%s code=%s lat_ms=%d body=%s",
                list(index_names),
                response.status_code,
                latency_ms,
                (response.text or "")[:300],
            )
            return KnowledgeResponse(
                success=False,
                error=f"http_{response.status_code}",
                status_code=response.status_code,
                latency_ms=latency_ms,
            )

        try:
            payload = response.json()
        except ValueError:
            LOGGER.warning("knowledge=fail stores=%s err=invalid_json", list(index_names))
            return KnowledgeResponse(success=False, error="invalid_json", status_code=response.status_code)

        data = _candidate_payload(payload)
        if data is None:
            LOGGER.info("knowledge=empty stores=%s lat_ms=%d", list(index_names), latency_ms)
            return KnowledgeResponse(
                success=False, error="empty_answer", status_code=response.status_code, latency_ms=latency_ms
            )

        LOGGER.info(
            "knowledge=ok stores=%s lat_ms=%d chunks=%d",
            list(index_names),
            latency_ms,
            len(data["grounding_metadata"]["groundingChunks"]),
        )
        return KnowledgeResponse(success=True, data=data, status_code=response.status_code, latency_ms=latency_ms)


__all__ = [
    "KnowledgeAnswer",
    "KnowledgeIndexClient",
    "KnowledgeIndexError",
    "KnowledgeResponse",
    "grounding_texts",
]
