"""Ask orchestration: direct Gemini answers or classify-and-retrieve.

``AskService.ask`` computes the caller-facing payload and a
``PersistenceJob`` describing the durable writes for the turn. The HTTP layer
sends the payload first and hands the job to the background worker
afterwards, so storage latency and storage failures never reach the caller.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, List, Optional

from .deadline import Deadline
from .direct import DirectAnswerer, require_api_key, resolve_api_key
from .directory import OrganizationDirectory, Student, UserDirectory
from .errors import CampusDeskError, NotFoundError, ValidationError
from .observability import Observability
from .persistence import PersistenceJob
from .rag.answerer import (
    STATUS_FAILED,
    STATUS_NO_STORES,
    MultiStoreAnswerer,
    MultiStoreResult,
)
from .rag.classifier import ClassificationResult, StoreClassifier
from .settings import Settings
from .storage.files import utc_now_iso
from .storage.sessions import generate_session_name

LOGGER = logging.getLogger("campusdesk.ask")

NO_STORES_AVAILABLE = "No RAG stores available for your account."
METHOD_DIRECT = "direct_gemini"
METHOD_CAMPUS = "campus_search"
PROVIDER_ERROR = "RAG call failed"

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id() -> str:
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


@dataclass
class SessionTurn:
    session_id: str
    is_new: bool
    session_name: Optional[str]

    @classmethod
    def resolve(cls, session_id: Optional[str], question: str) -> "SessionTurn":
        if session_id:
            return cls(session_id=session_id, is_new=False, session_name=None)
        return cls(session_id=new_session_id(), is_new=True, session_name=generate_session_name(question))

    def job(self, email: str, **kwargs: Any) -> PersistenceJob:
        return PersistenceJob(
            email=email,
            session_id=self.session_id,
            new_session=self.is_new,
            session_name=self.session_name,
            **kwargs,
        )


@dataclass
class AskOutcome:
    payload: Dict[str, Any]
    job: Optional[PersistenceJob] = None
    status_code: int = 200


class AskService:
    def __init__(
        self,
        *,
        settings: Settings,
        users: UserDirectory,
        organizations: OrganizationDirectory,
        classifier: StoreClassifier,
        answerer: MultiStoreAnswerer,
        direct: DirectAnswerer,
        observer: Optional[Observability] = None,
    ) -> None:
        self._settings = settings
        self._users = users
        self._organizations = organizations
        self._classifier = classifier
        self._answerer = answerer
        self._direct = direct
        self._observer = observer or Observability()

    # ---- public API -----------------------------------------------------

    def ask(
        self,
        email: Optional[str],
        question: Optional[str],
        session_id: Optional[str] = None,
        campus_search: bool = True,
        deadline: Optional[Deadline] = None,
    ) -> AskOutcome:
        """Answer one question.

        ``deadline`` may be cancelled from another thread, for example when the
        client disconnects; later upstream calls are then skipped.
        """

        email = (email or "").strip()
        question = (question or "").strip()
        if not email or not question:
            raise ValidationError("email & question required")

        student = self._users.lookup(email)
        if student is None:
            LOGGER.info("ask student not found email=%s", email)
            raise NotFoundError("Student not found")

        session_id = (session_id or "").strip() or None
        if deadline is None:
            deadline = Deadline(self._settings.ask_deadline_seconds)
        started = perf_counter()
        mode = "campus" if campus_search else "direct"
        LOGGER.info(
            "ask start mode=%s email=%s stores=%d session=%s",
            mode,
            email,
            len(student.accessible_stores),
            session_id or "new",
        )

        try:
            if campus_search:
                outcome, event = self._campus(student, question, session_id, deadline)
            else:
                outcome, event = self._direct_answer(student, question, session_id, deadline)
        except CampusDeskError as exc:
            self._record(mode, "error", question, started, error=exc.message, status=exc.status_code)
            raise

        self._record(mode, question=question, started=started, **event)
        return outcome

    # ---- helpers --------------------------------------------------------

    def _organization_key(self, student: Student) -> Optional[str]:
        university = self._organizations.lookup(student.university_email)
        return university.api_key if university else None

    def _record(self, mode: str, outcome: str, question: str, started: float, **extra: Any) -> None:
        record = {
            "event": "ask",
            "mode": mode,
            "outcome": outcome,
            "question": question,
            "latency_ms": int((perf_counter() - started) * 1000),
        }
        record.update(extra)
        self._observer.record(record)

    def _direct_answer(self, student: Student, question: str, session_id: Optional[str], deadline: Deadline):
        api_key = require_api_key(self._organization_key(student), self._settings.gemini_api_key)
        reply = self._direct.answer(api_key, question, deadline)
        turn = SessionTurn.resolve(session_id, question)

        payload = {
            "sessionId": turn.session_id,
            "answer": reply.text,
            "storesUsed": [],
            "grounding": [],
            "isCampusSearch": False,
            "modelUsed": reply.model,
            "timestamp": utc_now_iso(),
        }
        message = {
            "role": "assistant",
            "question": question,
            "answer": reply.text,
            "storesUsed": [],
            "grounding": [],
            "timestamp": utc_now_iso(),
            "isCampusSearch": False,
            "method": METHOD_DIRECT,
            "model": reply.model,
        }
        job = turn.job(student.email, message=message, label=METHOD_DIRECT)
        event = {"outcome": "answered", "model": reply.model, "session_new": turn.is_new}
        return AskOutcome(payload=payload, job=job), event

    def _campus(self, student: Student, question: str, session_id: Optional[str], deadline: Deadline):
        store_names = student.store_names
        if not store_names:
            LOGGER.info("ask no stores available email=%s", student.email)
            payload = {
                "sessionId": None,
                "answer": NO_STORES_AVAILABLE,
                "storesUsed": [],
                "grounding": [],
                "isCampusSearch": True,
            }
            return AskOutcome(payload=payload), {"outcome": "no_stores_available", "stores": []}

        api_key = resolve_api_key(self._organization_key(student), self._settings.gemini_api_key)
        LOGGER.info("ask campus key=%s stores=%s", "present" if api_key else "missing", store_names)
        turn = SessionTurn.resolve(session_id, question)

        classification = self._classifier.classify(api_key, store_names, question, deadline)
        result = self._answerer.answer(api_key, classification, question, student.accessible_stores, deadline)

        if result.status == STATUS_NO_STORES:
            return self._no_stores_selected(student, question, turn, classification, result)
        if result.status == STATUS_FAILED:
            return self._store_failed(student, question, turn, classification, result)
        return self._answered(student, question, turn, classification, result)

    def _base_message(self, question: str, answer: str, classification: ClassificationResult) -> Dict[str, Any]:
        return {
            "role": "assistant",
            "question": question,
            "answer": answer,
            "timestamp": utc_now_iso(),
            "isCampusSearch": True,
            "method": METHOD_CAMPUS,
            "classification": classification.to_dict(),
        }

    def _no_stores_selected(self, student, question, turn, classification, result: MultiStoreResult):
        payload = {
            "sessionId": turn.session_id,
            "answer": result.answer,
            "storesUsed": [],
            "grounding": [],
            "unanswered": result.unanswered,
            "isCampusSearch": True,
        }
        message = self._base_message(question, result.answer, classification)
        message.update({"storesUsed": [], "grounding": [], "unresolvedParts": result.unanswered})
        job = turn.job(student.email, message=message, label="no_stores_selected")
        event = {"outcome": "no_stores_selected", "stores": [], "unanswered": len(result.unanswered)}
        return AskOutcome(payload=payload, job=job), event

    def _store_failed(self, student, question, turn, classification, result: MultiStoreResult):
        failure = result.failure
        payload = {
            "sessionId": turn.session_id,
            "answer": result.answer,
            "storesUsed": [failure.store],
            "grounding": [],
            "searchedIn": failure.provider_email,
            "isCampusSearch": True,
            "failedStore": failure.store,
        }
        message = self._base_message(question, result.answer, classification)
        message.update(
            {
                "storesUsed": [failure.store],
                "grounding": [],
                "searchedIn": failure.provider_email,
                "failedStore": failure.store,
                "ragError": True,
            }
        )
        provider_entries = []
        if failure.provider_email:
            provider_entries.append(
                (
                    failure.provider_email,
                    {
                        "provider_email": failure.provider_email,
                        "user_email": student.email,
                        "store_name": failure.store,
                        "question": failure.question,
                        "response": None,
                        "asked_at": utc_now_iso(),
                        "isCampusSearch": True,
                        "error": PROVIDER_ERROR,
                        "reason": failure.reason,
                    },
                )
            )
        job = turn.job(student.email, message=message, provider_entries=provider_entries, label="store_failed")
        event = {"outcome": "store_failed", "stores": [failure.store], "reason": failure.reason}
        return AskOutcome(payload=payload, job=job), event

    def _answered(self, student, question, turn, classification, result: MultiStoreResult):
        cap = self._settings.grounding_response_cap
        payload = {
            "sessionId": turn.session_id,
            "answer": result.answer,
            "storesUsed": list(result.stores),
            "grounding": result.grounding[:cap],
            "isCampusSearch": True,
            "totalGrounding": result.total_grounding,
            "timestamp": utc_now_iso(),
        }
        message = self._base_message(question, result.answer, classification)
        message.update(
            {
                "storesUsed": list(result.stores),
                "grounding": list(result.grounding),
                "ragResultCount": len(result.store_answers),
            }
        )
        provider_entries: List = []
        limit = self._settings.provider_log_response_chars
        for item in result.store_answers:
            provider_entries.append(
                (
                    item.provider_email,
                    {
                        "provider_email": item.provider_email,
                        "user_email": student.email,
                        "store_name": item.store,
                        "question": item.question,
                        "response": _truncate(item.answer_text, limit),
                        "grounding_count": len(item.grounding_chunks),
                        "asked_at": utc_now_iso(),
                        "isCampusSearch": True,
                    },
                )
            )
        job = turn.job(student.email, message=message, provider_entries=provider_entries, label=METHOD_CAMPUS)
        event = {
            "outcome": "answered",
            "stores": list(result.stores),
            "grounding": result.total_grounding,
            "fallback_classification": classification.fallback,
            "session_new": turn.is_new,
        }
        return AskOutcome(payload=payload, job=job), event


__all__ = ["AskOutcome", "AskService", "NO_STORES_AVAILABLE", "new_session_id"]
