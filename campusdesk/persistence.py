"""Background persistence of session turns and provider logs.

Jobs are produced by the ask orchestrator and submitted after the response has
been sent. A single worker thread applies them in order. A failed job is
logged and dropped; it is never retried and never reaches the caller.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .storage.provider_logs import ProviderLogStore
from .storage.sessions import SessionStore

LOGGER = logging.getLogger("campusdesk.persistence")


@dataclass
class PersistenceJob:
    email: str
    session_id: Optional[str]
    new_session: bool = False
    session_name: Optional[str] = None
    message: Optional[Dict[str, Any]] = None
    provider_entries: List[Tuple[Optional[str], Dict[str, Any]]] = field(default_factory=list)
    label: str = "ask"

    @property
    def empty(self) -> bool:
        return self.message is None and not self.provider_entries

    def apply(self, sessions: SessionStore, provider_logs: ProviderLogStore) -> None:
        if self.session_id and self.new_session:
            sessions.create(self.email, self.session_id, self.session_name)
        if self.session_id and self.message is not None:
            sessions.append(self.email, self.session_id, self.message)
        for provider_email, entry in self.provider_entries:
            provider_logs.append(provider_email, entry)


_STOP = object()


class PersistenceWorker:
    def __init__(
        self,
        sessions: SessionStore,
        provider_logs: ProviderLogStore,
        *,
        maxsize: int = 1000,
    ) -> None:
        self._sessions = sessions
        self._provider_logs = provider_logs
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max(0, maxsize))
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.processed = 0
        self.failed = 0
        self.dropped = 0

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="campusdesk-persistence", daemon=True)
            self._thread.start()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def submit(self, job: Optional[PersistenceJob]) -> bool:
        """Queue ``job``; returns False when it was dropped."""

        if job is None or job.empty:
            return False
        if not self.running:
            self.start()
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            self.dropped += 1
            LOGGER.error("persistence queue full, dropping job label=%s session=%s", job.label, job.session_id)
            return False
        return True

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until queued jobs are applied; False on timeout."""

        if timeout is None:
            self._queue.join()
            return True
        deadline = time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        thread = self._thread
        if thread is None or not thread.is_alive():
            return
        self._queue.put(_STOP)
        thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._apply(item)
            finally:
                self._queue.task_done()

    def _apply(self, job: PersistenceJob) -> None:
        try:
            job.apply(self._sessions, self._provider_logs)
        except Exception:
            self.failed += 1
            LOGGER.exception("background persistence error label=%s session=%s", job.label, job.session_id)
            return
        self.processed += 1
        LOGGER.info(
            "persisted label=%s session=%s new=%s provider_logs=%d",
            job.label,
            job.session_id,
            job.new_session,
            len(job.provider_entries),
        )


__all__ = ["PersistenceJob", "PersistenceWorker"]
