from __future__ import annotations

import logging

from campusdesk.persistence import PersistenceJob, PersistenceWorker
from campusdesk.storage import ProviderLogStore, SessionStore


def _worker(tmp_path, **kwargs):
    sessions = SessionStore(tmp_path / "chat_sessions")
    provider_logs = ProviderLogStore(tmp_path / "provider_questions")
    return PersistenceWorker(sessions, provider_logs, **kwargs), sessions, provider_logs


def test_jobs_are_applied_in_submission_order(tmp_path):
    worker, sessions, provider_logs = _worker(tmp_path)
    worker.submit(
        PersistenceJob(
            email="s@campus.edu",
            session_id="session_1",
            new_session=True,
            session_name="First",
            message={"question": "q0"},
            provider_entries=[("lib@campus.edu", {"asked_at": "t0"})],
        )
    )
    for index in range(1, 4):
        worker.submit(PersistenceJob(email="s@campus.edu", session_id="session_1", message={"question": f"q{index}"}))

    assert worker.flush(timeout=5)
    worker.stop()

    session = sessions.get("s@campus.edu", "session_1")
    assert session["sessionName"] == "First"
    assert [m["question"] for m in session["messages"]] == ["q0", "q1", "q2", "q3"]
    assert provider_logs.list_logs("lib@campus.edu")["totalLogs"] == 1
    assert worker.processed == 4


def test_empty_jobs_are_ignored(tmp_path):
    worker, _, _ = _worker(tmp_path)

    assert worker.submit(None) is False
    assert worker.submit(PersistenceJob(email="s@campus.edu", session_id=None)) is False
    assert worker.running is False


def test_failed_job_is_logged_and_dropped(tmp_path, caplog, monkeypatch):
    worker, sessions, _ = _worker(tmp_path)

    def boom(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(sessions, "append", boom)
    caplog.set_level(logging.ERROR, logger="campusdesk.persistence")

    worker.submit(PersistenceJob(email="s@campus.edu", session_id="session_1", message={"question": "q"}))
    assert worker.flush(timeout=5)
    worker.stop()

    assert worker.failed == 1
    assert "background persistence error" in caplog.text
