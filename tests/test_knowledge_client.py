from __future__ import annotations

import pytest
import requests

from campusdesk.rag.knowledge import (
    KnowledgeAnswer,
    KnowledgeIndexClient,
    KnowledgeIndexError,
    grounding_texts,
)


class _Response:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _Session:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response


def _client(session):
    return KnowledgeIndexClient(
        base_url="https://example.test/v1beta/",
        model="gemini-2.5-flash",
        timeout=12.0,
        session=session,
    )


def _candidate(text, chunks):
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": text}]},
                "groundingMetadata": {"groundingChunks": chunks},
            }
        ]
    }


def test_successful_query_returns_text_and_chunks():
    chunks = [{"retrievedContext": {"text": "Library opens at 8."}}, {"web": {"uri": "x"}}]
    session = _Session(_Response(payload=_candidate("It opens at 8.", chunks)))

    response = _client(session).query("secret", ["library"], "When does it open?", timeout=3.0)

    assert response.ok
    answer = KnowledgeAnswer.from_response(response)
    assert answer.response_text == "It opens at 8."
    assert grounding_texts(answer.grounding_chunks) == ["Library opens at 8."]
    call = session.calls[0]
    assert call["url"] == "https://example.test/v1beta/models/gemini-2.5-flash:generateContent"
    assert call["headers"]["x-goog-api-key"] == "secret"
    assert call["timeout"] == 3.0
    assert call["json"]["tools"] == [{"file_search": {"file_search_store_names": ["fileSearchStores/library"]}}]


def test_http_error_is_a_clean_failure():
    session = _Session(_Response(status_code=403, text="denied"))

    response = _client(session).query("secret", ["fileSearchStores/abc"], "q")

    assert response.success is False
    assert response.error == "http_403"
    assert session.calls[0]["json"]["tools"][0]["file_search"]["file_search_store_names"] == ["fileSearchStores/abc"]


def test_empty_candidate_is_a_clean_failure():
    session = _Session(_Response(payload={"candidates": []}))

    response = _client(session).query("secret", ["library"], "q")

    assert response.success is False
    assert response.error == "empty_answer"


def test_missing_key_fails_without_network():
    session = _Session(exc=AssertionError("no call expected"))

    response = _client(session).query(None, ["library"], "q")

    assert response.success is False
    assert session.calls == []


def test_transport_error_raises():
    session = _Session(exc=requests.ConnectionError("reset"))

    with pytest.raises(KnowledgeIndexError):
        _client(session).query("secret", ["library"], "q")
