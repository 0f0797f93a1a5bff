"""Thin wrapper around the Gemini SDK shared by the classifier and direct path."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx
import requests
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .errors import GeminiCallError, UpstreamUnavailable

LOGGER = logging.getLogger("campusdesk.gemini")

GEMINI_SUGGESTION = "Check your API key, internet connection, and try a different model if available"


@dataclass
class GeminiReply:
    text: str
    model: str
    latency_ms: int


def _extract_text(response: Any) -> str:
    """Return the best-effort text of a ``generate_content`` response."""

    if response is None:
        return ""
    try:
        text = response.text
    except (ValueError, AttributeError):
        text = None
    if isinstance(text, str) and text.strip():
        return text

    chunks: List[str] = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            value = getattr(part, "text", None)
            if isinstance(value, str) and value:
                chunks.append(value)
        if chunks:
            break
    return "".join(chunks)


def _key_preview(api_key: Optional[str]) -> str:
    return "present" if api_key else "missing"


def _http_options(timeout: float) -> types.HttpOptions:
    # HttpOptions.timeout is in milliseconds.
    return types.HttpOptions(timeout=max(1, int(timeout * 1000)))


_NETWORK_TYPES: Tuple[type, ...] = (
    httpx.TimeoutException,
    httpx.TransportError,
    requests.ConnectionError,
    requests.Timeout,
    ConnectionError,
    TimeoutError,
)

_STATUS_CATEGORIES: Dict[int, str] = {
    401: "unauthorized",
    403: "unauthorized",
    404: "model_unavailable",
    429: "rate_limited",
    503: "unavailable",
    504: "unavailable",
}

_CATEGORIES: Dict[str, Tuple[int, str]] = {
    "unauthorized": (401, "Invalid or unauthorized API key"),
    "rate_limited": (429, "API quota exceeded or rate limited"),
    "unavailable": (503, "Network error connecting to Gemini API"),
    "model_unavailable": (400, "Gemini model not available"),
    "internal": (500, "Failed to call Gemini API"),
}


def _category_for(exc: BaseException) -> str:
    if isinstance(exc, genai_errors.APIError):
        category = _STATUS_CATEGORIES.get(getattr(exc, "code", None))
        if category:
            return category
    if isinstance(exc, _NETWORK_TYPES):
        return "unavailable"

    message = str(exc).lower()
    if "api key" in message or "auth" in message:
        return "unauthorized"
    if "quota" in message or "exceeded" in message or "rate limit" in message:
        return "rate_limited"
    if "network" in message or "connect" in message or "timed out" in message or "timeout" in message:
        return "unavailable"
    if "model" in message:
        return "model_unavailable"
    return "internal"


def classify_gemini_error(exc: BaseException) -> GeminiCallError:
    """Map an SDK/transport failure onto the user-facing taxonomy."""

    category = _category_for(exc)
    status, message = _CATEGORIES[category]
    return GeminiCallError(
        message,
        category=category,
        status_code=status,
        details=str(exc) or exc.__class__.__name__,
        suggestion=GEMINI_SUGGESTION,
    )


def _default_client(api_key: str) -> Any:
    return genai.Client(api_key=api_key)


class GeminiGateway:
    """Lightweight helper that enforces consistent model setup and logging.

    Each organization key gets its own SDK client, so calls made with
    different keys never share state and run concurrently.
    """

    def __init__(self, *, timeout: float, client_factory: Optional[Callable[[str], Any]] = None) -> None:
        self._timeout = timeout
        self._client_factory = client_factory or _default_client
        self._clients: Dict[str, Any] = {}
        self._clients_lock = threading.Lock()

    @property
    def timeout(self) -> float:
        return self._timeout

    def _client(self, api_key: str) -> Any:
        # Guards only the cache; no network I/O happens under this lock.
        with self._clients_lock:
            client = self._clients.get(api_key)
            if client is None:
                client = self._client_factory(api_key)
                self._clients[api_key] = client
            return client

    def select_model(self, api_key: str, candidates: Sequence[str], *, timeout: Optional[float] = None) -> str:
        """Return the first candidate model the key can see.

        Only "model not available" failures move on to the next candidate;
        key, quota and network errors propagate to the caller.
        """

        client = self._client(api_key)
        effective_timeout = self._timeout if timeout is None else timeout
        for name in candidates:
            try:
                client.models.get(model=name, config=types.GetModelConfig(http_options=_http_options(effective_timeout)))
            except Exception as exc:
                if _category_for(exc) != "model_unavailable":
                    raise
                LOGGER.info("gemini model unavailable model=%s err=%s", name, exc)
                continue
            LOGGER.info("gemini model selected model=%s", name)
            return name
        raise UpstreamUnavailable(
            "No compatible Gemini model found",
            extra={"availableModels": list(candidates)},
        )

    def generate(
        self,
        api_key: str,
        model: str,
        contents: Any,
        *,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        response_mime_type: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> GeminiReply:
        """Run one ``generate_content`` call; SDK errors propagate unchanged."""

        effective_timeout = self._timeout if timeout is None else timeout
        config: Dict[str, Any] = {"http_options": _http_options(effective_timeout)}
        if system_instruction:
            config["system_instruction"] = system_instruction
        if temperature is not None:
            config["temperature"] = temperature
        if response_mime_type:
            config["response_mime_type"] = response_mime_type

        client = self._client(api_key)
        start = perf_counter()
        response = client.models.generate_content(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(**config),
        )
        latency_ms = int((perf_counter() - start) * 1000)
        text = _extract_text(response)
        LOGGER.info(
            "gemini=ok model=%s lat_ms=%d chars=%d key=%s",
            model,
            latency_ms,
            len(text),
            _key_preview(api_key),
        )
        return GeminiReply(text=text, model=model, latency_ms=latency_ms)


__all__ = [
    "GEMINI_SUGGESTION",
    "GeminiGateway",
    "GeminiReply",
    "classify_gemini_error",
]
