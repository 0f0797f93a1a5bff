from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
from fastapi.testclient import TestClient

from campusdesk.api import create_app
from campusdesk.bootstrap import bootstrap
from campusdesk.errors import UpstreamUnavailable
from campusdesk.gemini import GeminiReply
from campusdesk.rag.knowledge import KnowledgeResponse
from campusdesk.settings import load_settings


class FakeGateway:
    """Stands in for ``GeminiGateway``; replies are scripted per call."""

    def __init__(self, reply: Union[str, Exception, Callable[..., Any], None] = "") -> None:
        self.timeout = 5.0
        self.reply = reply
        self.calls: List[Dict[str, Any]] = []
        self.unavailable_models: set = set()

    def select_model(self, api_key, candidates, *, timeout=None):
        for name in candidates:
            if name not in self.unavailable_models:
                return name
        raise UpstreamUnavailable("No compatible Gemini model found", extra={"availableModels": list(candidates)})

    def generate(self, api_key, model, contents, *, system_instruction=None, temperature=None,
                 response_mime_type=None, timeout=None):
        self.calls.append(
            {
                "api_key": api_key,
                "model": model,
                "contents": contents,
                "system_instruction": system_instruction,
                "temperature": temperature,
                "timeout": timeout,
            }
        )
        reply = self.reply
        if callable(reply) and not isinstance(reply, Exception):
            reply = reply(contents, system_instruction)
        if isinstance(reply, Exception):
            raise reply
        return GeminiReply(text=reply or "", model=model, latency_ms=1)


def rag_response(text: str, evidence: Optional[List[str]] = None) -> KnowledgeResponse:
    chunks = [{"retrievedContext": {"text": item, "title": f"doc-{i}"}} for i, item in enumerate(evidence or [])]
    return KnowledgeResponse(
        success=True,
        data={"response_text": text, "grounding_metadata": {"groundingChunks": chunks}},
    )


class FakeKnowledge:
    """Stands in for ``KnowledgeIndexClient``; responses keyed by index name."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.timeout = 5.0
        self.responses: Dict[str, Any] = dict(responses or {})
        self.calls: List[Dict[str, Any]] = []

    def query(self, api_key, index_names, question, *, timeout=None):
        self.calls.append({"api_key": api_key, "index_names": list(index_names), "question": question})
        response = self.responses.get(index_names[0], KnowledgeResponse(success=False, error="unknown"))
        if isinstance(response, Exception):
            raise response
        return response


def write_student(root: Path, email: str, *, university: Optional[str] = "uni@campus.edu",
                  stores: Optional[List[Dict[str, Any]]] = None) -> None:
    path = root / "students" / f"{email}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    record = {"email": email, "universityEmail": university, "accessibleStores": stores or []}
    path.write_text(json.dumps(record), encoding="utf-8")


def write_university(root: Path, email: str, key: Optional[str]) -> None:
    path = root / "universities" / f"{email}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    record: Dict[str, Any] = {"email": email}
    if key is not None:
        record["apiKeyInfo"] = {"key": key}
    path.write_text(json.dumps(record), encoding="utf-8")


@pytest.fixture
def settings(tmp_path):
    return load_settings(data_dir=tmp_path / "db", gemini_api_key=None, environment="test", log_requests=False)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def knowledge():
    return FakeKnowledge()


@pytest.fixture
def context(settings, gateway, knowledge):
    ctx = bootstrap(settings, gateway=gateway, knowledge=knowledge)
    yield ctx
    ctx.close()


@pytest.fixture
def data_root(context):
    return context.paths.root


@pytest.fixture
def client(context):
    return TestClient(create_app(context))
