"""Query each selected knowledge store in turn and merge the answers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..deadline import Deadline, clip_timeout
from ..directory import StoreRef
from .classifier import ClassificationResult
from .knowledge import KnowledgeAnswer, KnowledgeIndexClient, grounding_texts

LOGGER = logging.getLogger("campusdesk.answerer")

NO_DEPARTMENT_ANSWER = "Sorry, none of the departments can answer this."
NOT_FOUND_ANSWER = "Sorry we didn't find any information related to this."

STATUS_ANSWERED = "answered"
STATUS_NO_STORES = "no_stores"
STATUS_FAILED = "failed"


@dataclass
class StoreAnswer:
    store: str
    question: str
    answer_text: str
    grounding_chunks: List[Dict[str, Any]] = field(default_factory=list)
    provider_email: Optional[str] = None


@dataclass
class StoreFailure:
    store: str
    question: str
    reason: str
    provider_email: Optional[str] = None


@dataclass
class MultiStoreResult:
    status: str
    answer: str
    stores: List[str] = field(default_factory=list)
    store_answers: List[StoreAnswer] = field(default_factory=list)
    grounding: List[str] = field(default_factory=list)
    failure: Optional[StoreFailure] = None
    unanswered: List[Dict[str, str]] = field(default_factory=list)

    @property
    def total_grounding(self) -> int:
        return len(self.grounding)


def merge_answers(store_answers: Sequence[StoreAnswer]) -> str:
    """One store answers verbatim; several are labelled and joined."""

    if len(store_answers) == 1:
        return store_answers[0].answer_text
    return "\n\n".join(f"**{item.store}**:\n{item.answer_text}" for item in store_answers)


def _owner(accessible: Sequence[StoreRef], store: str) -> Optional[StoreRef]:
    for ref in accessible:
        if ref.store_name == store:
            return ref
    return None


class MultiStoreAnswerer:
    """Sequential per-store retrieval.

    Any store failure, whether a clean failure signal, a raised error, or an
    expired deadline, aborts the request with ``STATUS_FAILED``.
    """

    def __init__(self, knowledge: KnowledgeIndexClient) -> None:
        self._knowledge = knowledge

    def answer(
        self,
        api_key: Optional[str],
        classification: ClassificationResult,
        fallback_question: str,
        accessible_stores: Sequence[StoreRef],
        deadline: Optional[Deadline] = None,
    ) -> MultiStoreResult:
        if not classification.stores:
            LOGGER.info("answerer no stores selected unanswered=%d", len(classification.unanswered))
            return MultiStoreResult(
                status=STATUS_NO_STORES,
                answer=NO_DEPARTMENT_ANSWER,
                unanswered=classification.unanswered_dicts(),
            )

        store_answers: List[StoreAnswer] = []
        grounding: List[str] = []

        for store in classification.stores:
            question = classification.question_for(store, fallback_question)
            ref = _owner(accessible_stores, store)
            provider = ref.account_email if ref else None
            index_name = ref.backing_index if ref else store

            reason = self._query_failure_reason(deadline)
            answer: Optional[KnowledgeAnswer] = None
            if reason is None:
                try:
                    response = self._knowledge.query(
                        api_key,
                        [index_name],
                        question,
                        timeout=clip_timeout(deadline, self._knowledge.timeout),
                    )
                except Exception as exc:
                    LOGGER.warning("answerer store=%s raised err=%s", store, exc)
                    reason = f"error: {exc}"
                else:
                    if response.ok:
                        answer = KnowledgeAnswer.from_response(response)
                    else:
                        reason = response.error or "no_data"

            if answer is None:
                LOGGER.warning("answerer store=%s failed reason=%s aborting", store, reason)
                return MultiStoreResult(
                    status=STATUS_FAILED,
                    answer=NOT_FOUND_ANSWER,
                    stores=[store],
                    failure=StoreFailure(store=store, question=question, reason=reason or "no_data", provider_email=provider),
                )

            store_answers.append(
                StoreAnswer(
                    store=store,
                    question=question,
                    answer_text=answer.response_text,
                    grounding_chunks=answer.grounding_chunks,
                    provider_email=provider,
                )
            )
            grounding.extend(grounding_texts(answer.grounding_chunks))
            LOGGER.info(
                "answerer store=%s ok chars=%d chunks=%d",
                store,
                len(answer.response_text),
                len(answer.grounding_chunks),
            )

        return MultiStoreResult(
            status=STATUS_ANSWERED,
            answer=merge_answers(store_answers),
            stores=list(classification.stores),
            store_answers=store_answers,
            grounding=grounding,
        )

    @staticmethod
    def _query_failure_reason(deadline: Optional[Deadline]) -> Optional[str]:
        if deadline is not None and deadline.expired:
            return "cancelled" if deadline.cancelled else "deadline_exceeded"
        return None


__all__ = [
    "MultiStoreAnswerer",
    "MultiStoreResult",
    "NOT_FOUND_ANSWER",
    "NO_DEPARTMENT_ANSWER",
    "STATUS_ANSWERED",
    "STATUS_FAILED",
    "STATUS_NO_STORES",
    "StoreAnswer",
    "StoreFailure",
    "merge_answers",
]
