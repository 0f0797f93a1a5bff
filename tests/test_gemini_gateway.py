from __future__ import annotations

import json
import threading
import time
from types import SimpleNamespace

import httpx
import pytest
from google.genai import errors as genai_errors

from campusdesk.deadline import Deadline
from campusdesk.errors import UpstreamUnavailable
from campusdesk.gemini import GEMINI_SUGGESTION, GeminiGateway, _extract_text, classify_gemini_error
from campusdesk.rag.classifier import StoreClassifier


def _api_error(cls, code, message, status):
    return cls(code, {"error": {"code": code, "message": message, "status": status}})


@pytest.mark.parametrize(
    "exc, status, category",
    [
        (_api_error(genai_errors.ClientError, 403, "permission denied", "PERMISSION_DENIED"), 401, "unauthorized"),
        (_api_error(genai_errors.ClientError, 429, "Quota exceeded", "RESOURCE_EXHAUSTED"), 429, "rate_limited"),
        (_api_error(genai_errors.ServerError, 503, "backend down", "UNAVAILABLE"), 503, "unavailable"),
        (_api_error(genai_errors.ClientError, 404, "models/gemini-x is not found", "NOT_FOUND"), 400, "model_unavailable"),
        (_api_error(genai_errors.ClientError, 400, "API key not valid", "INVALID_ARGUMENT"), 401, "unauthorized"),
        (httpx.ConnectError("connection refused"), 503, "unavailable"),
        (RuntimeError("You exceeded your current quota"), 429, "rate_limited"),
        (TimeoutError("read timed out"), 503, "unavailable"),
        (RuntimeError("model does not support this"), 400, "model_unavailable"),
        (RuntimeError("something odd"), 500, "internal"),
    ],
)
def test_errors_map_to_user_facing_categories(exc, status, category):
    error = classify_gemini_error(exc)

    assert error.status_code == status
    assert error.category == category
    payload = error.to_payload()
    assert payload["error"]
    assert payload["details"]
    assert payload["suggestion"] == GEMINI_SUGGESTION


def test_extract_text_falls_back_to_candidate_parts():
    class Blocked:
        @property
        def text(self):
            raise ValueError("no simple text")

        candidates = [SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(text="a"), SimpleNamespace(text="b")]))]

    assert _extract_text(Blocked()) == "ab"
    assert _extract_text(SimpleNamespace(text="plain")) == "plain"
    assert _extract_text(None) == ""


class _FakeModels:
    def __init__(self, reply="ok", delay_for=None, delay=0.0):
        self.reply = reply
        self.delay_for = delay_for
        self.delay = delay
        self.requests = []
        self.started = threading.Event()

    def get(self, model, config=None):
        if model.startswith("missing"):
            raise _api_error(genai_errors.ClientError, 404, f"{model} is not found", "NOT_FOUND")
        if model.startswith("denied"):
            raise _api_error(genai_errors.ClientError, 403, "permission denied", "PERMISSION_DENIED")
        return SimpleNamespace(name=model)

    def generate_content(self, model, contents, config=None):
        self.requests.append({"model": model, "contents": contents, "config": config})
        if contents == self.delay_for:
            self.started.set()
            time.sleep(self.delay)
        return SimpleNamespace(text=self.reply)


class _FakeClients:
    def __init__(self, models):
        self.models = models
        self.keys = []

    def __call__(self, api_key):
        self.keys.append(api_key)
        return SimpleNamespace(models=self.models)


def test_select_model_skips_models_that_are_not_available():
    clients = _FakeClients(_FakeModels())
    gateway = GeminiGateway(timeout=4.0, client_factory=clients)

    assert gateway.select_model("k1", ["missing-one", "good-one", "good-two"]) == "good-one"


def test_select_model_raises_when_nothing_is_available():
    gateway = GeminiGateway(timeout=4.0, client_factory=_FakeClients(_FakeModels()))

    with pytest.raises(UpstreamUnavailable) as info:
        gateway.select_model("k1", ["missing-a", "missing-b"])

    assert info.value.extra["availableModels"] == ["missing-a", "missing-b"]


def test_select_model_propagates_key_errors():
    gateway = GeminiGateway(timeout=4.0, client_factory=_FakeClients(_FakeModels()))

    with pytest.raises(genai_errors.ClientError):
        gateway.select_model("k1", ["denied-model", "good-one"])


def test_generate_passes_config_and_timeout():
    models = _FakeModels(reply="echo")
    gateway = GeminiGateway(timeout=4.0, client_factory=_FakeClients(models))

    reply = gateway.generate("k2", "good", "hi", system_instruction="be strict", temperature=0.0,
                             response_mime_type="application/json", timeout=1.5)

    assert reply.text == "echo"
    request = models.requests[0]
    assert (request["model"], request["contents"]) == ("good", "hi")
    config = request["config"]
    assert config.system_instruction == "be strict"
    assert config.temperature == 0.0
    assert config.response_mime_type == "application/json"
    assert config.http_options.timeout == 1500


def test_one_client_per_api_key():
    clients = _FakeClients(_FakeModels())
    gateway = GeminiGateway(timeout=4.0, client_factory=clients)

    gateway.generate("k1", "m", "a")
    gateway.generate("k2", "m", "b")
    gateway.generate("k1", "m", "c")

    assert clients.keys == ["k1", "k2"]


def test_slow_call_does_not_hold_up_other_requests():
    reply = json.dumps({"stores": ["library"], "split_questions": {}, "unanswered": []})
    models = _FakeModels(reply=reply, delay_for="slow question", delay=2.0)
    gateway = GeminiGateway(timeout=30.0, client_factory=_FakeClients(models))
    background = threading.Thread(target=gateway.generate, args=("k1", "m", "slow question"), daemon=True)
    background.start()
    assert models.started.wait(5)

    started = time.monotonic()
    result = StoreClassifier(gateway, model="m").classify("k1", ["library", "finance"], "hours?", Deadline(0.5))
    elapsed = time.monotonic() - started

    background.join(5)
    assert elapsed < 1.0
    assert result.fallback is False
    assert result.stores == ["library"]
