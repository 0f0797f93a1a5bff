"""Classify a question against the caller's knowledge stores and split it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..deadline import Deadline, clip_timeout
from ..gemini import GeminiGateway

LOGGER = logging.getLogger("campusdesk.classifier")

NO_DEPARTMENT_REASON = "No department can answer this"


@dataclass(frozen=True)
class UnansweredPart:
    text: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"text": self.text, "reason": self.reason}


@dataclass
class ClassificationResult:
    stores: List[str] = field(default_factory=list)
    split_questions: Dict[str, str] = field(default_factory=dict)
    unanswered: List[UnansweredPart] = field(default_factory=list)
    fallback: bool = False

    @classmethod
    def select_all(cls, store_names: Sequence[str]) -> "ClassificationResult":
        """Every store, the unmodified question, nothing unanswered."""

        return cls(stores=list(dict.fromkeys(store_names)), fallback=True)

    @classmethod
    def from_payload(cls, payload: Any, store_names: Sequence[str]) -> Optional["ClassificationResult"]:
        """Validate a model-produced object; ``None`` when the shape is unusable.

        Store names not in ``store_names`` are dropped, as are split questions
        for stores that were not selected.
        """

        if not isinstance(payload, dict):
            return None
        raw_stores = payload.get("stores")
        if raw_stores is None:
            raw_stores = []
        if not isinstance(raw_stores, list):
            return None

        allowed = set(store_names)
        stores: List[str] = []
        for item in raw_stores:
            if not isinstance(item, str):
                continue
            name = item.strip()
            if name in allowed and name not in stores:
                stores.append(name)
            elif name not in allowed:
                LOGGER.info("classifier dropped unknown store=%r", name)

        split_questions: Dict[str, str] = {}
        raw_split = payload.get("split_questions")
        if isinstance(raw_split, dict):
            for key, value in raw_split.items():
                if not isinstance(key, str) or key.strip() not in stores:
                    continue
                if isinstance(value, str) and value.strip():
                    split_questions[key.strip()] = value.strip()

        unanswered: List[UnansweredPart] = []
        raw_unanswered = payload.get("unanswered")
        if isinstance(raw_unanswered, list):
            for item in raw_unanswered:
                if isinstance(item, dict):
                    text = item.get("text")
                    reason = item.get("reason")
                    text = text.strip() if isinstance(text, str) else ""
                    reason = reason.strip() if isinstance(reason, str) else ""
                    if text or reason:
                        unanswered.append(UnansweredPart(text=text, reason=reason))
                elif isinstance(item, str) and item.strip():
                    unanswered.append(UnansweredPart(text=item.strip(), reason=""))

        return cls(stores=stores, split_questions=split_questions, unanswered=unanswered)

    def question_for(self, store: str, original: str) -> str:
        return self.split_questions.get(store) or original

    def unanswered_dicts(self) -> List[Dict[str, str]]:
        return [part.to_dict() for part in self.unanswered]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stores": list(self.stores),
            "split_questions": dict(self.split_questions),
            "unanswered": self.unanswered_dicts(),
        }


def build_system_prompt(store_names: Sequence[str]) -> str:
    stores_json = json.dumps(list(store_names), ensure_ascii=False)
    return (
        "You are a strict classifier and splitter. INPUT:\n"
        f"- stores list (names only): {stores_json}\n"
        "- user's question (provided as the user content)\n"
        "\n"
        "TASK:\n"
        "1) Decide which of the stores from the list can answer whole or parts of the user's question.\n"
        "2) If some part belongs to a store, rewrite that part clearly and put it in split_questions under that store name.\n"
        "3) If a part belongs to multiple stores, include it under all relevant store keys.\n"
        "4) If a part cannot be answered by any store, include that part in \"unanswered\" with a short \"reason\".\n"
        "\n"
        "OUTPUT REQUIREMENTS (output only one valid JSON object, nothing else):\n"
        "{\"stores\": [exact store names copied from the list, or empty],\n"
        " \"split_questions\": {\"<store name>\": \"rewritten part for that store\"},\n"
        " \"unanswered\": [{\"text\": \"original part text\", \"reason\": \"why no store can answer\"}]}\n"
        "\n"
        "If NO store can answer, return:\n"
        "{\"stores\": [], \"split_questions\": {}, "
        f"\"unanswered\": [{{\"text\": \"<full question>\", \"reason\": \"{NO_DEPARTMENT_REASON}\"}}]}}\n"
        "\n"
        "Do NOT return any extra text, commentary, or explanation."
    )


def parse_model_json(text: Optional[str]) -> Optional[Any]:
    """Strict parse, then the outermost ``{...}`` span, else ``None``."""

    if not text or not text.strip():
        return None
    raw = text.strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(raw[start : end + 1])
    except json.JSONDecodeError:
        LOGGER.warning("classifier json unparseable after extraction: %s", raw[:200])
        return None


class StoreClassifier:
    """Gemini-backed classifier that never raises past its boundary."""

    def __init__(self, gateway: GeminiGateway, *, model: str) -> None:
        self._gateway = gateway
        self._model = model

    def classify(
        self,
        api_key: Optional[str],
        store_names: Sequence[str],
        question: str,
        deadline: Optional[Deadline] = None,
    ) -> ClassificationResult:
        names = list(dict.fromkeys(n for n in store_names if isinstance(n, str) and n))
        if not api_key:
            LOGGER.info("classifier=fallback reason=no_api_key stores=%d", len(names))
            return ClassificationResult.select_all(names)
        if deadline is not None and deadline.expired:
            LOGGER.warning("classifier=fallback reason=deadline stores=%d", len(names))
            return ClassificationResult.select_all(names)

        try:
            reply = self._gateway.generate(
                api_key,
                self._model,
                question,
                system_instruction=build_system_prompt(names),
                temperature=0.0,
                response_mime_type="application/json",
                timeout=clip_timeout(deadline, self._gateway.timeout),
            )
        except Exception as exc:
            LOGGER.warning("classifier=fallback reason=gemini_error err=%s", exc)
            return ClassificationResult.select_all(names)

        payload = parse_model_json(reply.text)
        result = ClassificationResult.from_payload(payload, names)
        if result is None:
            LOGGER.warning("classifier=fallback reason=invalid_output head=%r", (reply.text or "")[:200])
            return ClassificationResult.select_all(names)

        LOGGER.info(
            "classifier=ok stores=%s split=%d unanswered=%d",
            result.stores,
            len(result.split_questions),
            len(result.unanswered),
        )
        return result


__all__ = [
    "ClassificationResult",
    "StoreClassifier",
    "UnansweredPart",
    "build_system_prompt",
    "parse_model_json",
]
