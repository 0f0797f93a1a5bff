"""Direct-answer path: forward the raw question to Gemini, no retrieval."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .deadline import Deadline, clip_timeout
from .errors import ConfigurationError, UpstreamUnavailable
from .gemini import GeminiGateway, classify_gemini_error

LOGGER = logging.getLogger("campusdesk.direct")

EMPTY_REPLY = "No response from Gemini"


def resolve_api_key(organization_key: Optional[str], fallback_key: Optional[str]) -> Optional[str]:
    """Organization key first, then the process-wide fallback."""

    if organization_key:
        return organization_key
    if fallback_key:
        LOGGER.info("using process-wide Gemini API key")
        return fallback_key
    return None


def require_api_key(organization_key: Optional[str], fallback_key: Optional[str]) -> str:
    key = resolve_api_key(organization_key, fallback_key)
    if not key:
        raise ConfigurationError(
            "No API key available for Gemini call",
            details="Check university API key or set GEMINI_API_KEY environment variable",
        )
    return key


@dataclass
class DirectAnswer:
    text: str
    model: str


class DirectAnswerer:
    def __init__(self, gateway: GeminiGateway, *, candidates: Sequence[str]) -> None:
        self._gateway = gateway
        self._candidates = tuple(candidates)

    @property
    def candidates(self) -> Sequence[str]:
        return self._candidates

    def answer(self, api_key: str, question: str, deadline: Optional[Deadline] = None) -> DirectAnswer:
        """Raise ``UpstreamUnavailable`` or a classified ``GeminiCallError`` on failure."""

        try:
            if deadline is not None:
                deadline.check("model selection")
            model = self._gateway.select_model(
                api_key,
                self._candidates,
                timeout=clip_timeout(deadline, self._gateway.timeout),
            )
        except UpstreamUnavailable:
            raise
        except Exception as exc:
            raise classify_gemini_error(exc) from exc

        try:
            if deadline is not None:
                deadline.check("direct answer")
            reply = self._gateway.generate(
                api_key,
                model,
                question,
                timeout=clip_timeout(deadline, self._gateway.timeout),
            )
        except Exception as exc:
            error = classify_gemini_error(exc)
            LOGGER.error(
                "direct=fail model=%s category=%s status=%s err=%s",
                model,
                error.category,
                error.status_code,
                exc,
            )
            raise error from exc

        text = reply.text if reply.text else EMPTY_REPLY
        return DirectAnswer(text=text, model=model)


__all__ = ["DirectAnswer", "DirectAnswerer", "EMPTY_REPLY", "require_api_key", "resolve_api_key"]
