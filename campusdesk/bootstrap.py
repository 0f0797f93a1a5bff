"""Explicit initialization: build every collaborator once and hand back a context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .direct import DirectAnswerer
from .directory import OrganizationDirectory, UserDirectory
from .gemini import GeminiGateway
from .observability import Observability
from .persistence import PersistenceWorker
from .rag.answerer import MultiStoreAnswerer
from .rag.classifier import StoreClassifier
from .rag.knowledge import KnowledgeIndexClient
from .service import AskService
from .settings import Settings, load_settings
from .storage.provider_logs import ProviderLogStore
from .storage.sessions import SessionStore

LOGGER = logging.getLogger("campusdesk.bootstrap")


@dataclass
class DataPaths:
    root: Path

    @property
    def students(self) -> Path:
        return self.root / "students"

    @property
    def universities(self) -> Path:
        return self.root / "universities"

    @property
    def chat_sessions(self) -> Path:
        return self.root / "chat_sessions"

    @property
    def provider_logs(self) -> Path:
        return self.root / "provider_questions"

    def ensure(self) -> None:
        for path in (self.students, self.universities, self.chat_sessions, self.provider_logs):
            path.mkdir(parents=True, exist_ok=True)


@dataclass
class AppContext:
    settings: Settings
    paths: DataPaths
    users: UserDirectory
    organizations: OrganizationDirectory
    sessions: SessionStore
    provider_logs: ProviderLogStore
    worker: PersistenceWorker
    observer: Observability
    service: AskService

    def close(self) -> None:
        self.worker.flush(timeout=5.0)
        self.worker.stop()


def bootstrap(
    settings: Optional[Settings] = None,
    *,
    gateway: Optional[GeminiGateway] = None,
    knowledge: Optional[KnowledgeIndexClient] = None,
    start_worker: bool = True,
) -> AppContext:
    """Create the data directories and wire the ask pipeline."""

    settings = settings or load_settings()
    paths = DataPaths(Path(settings.data_dir))
    paths.ensure()

    gateway = gateway or GeminiGateway(timeout=settings.gemini_timeout)
    knowledge = knowledge or KnowledgeIndexClient(
        base_url=settings.rag_base_url,
        model=settings.rag_model,
        timeout=settings.rag_query_timeout,
    )

    users = UserDirectory(paths.students)
    organizations = OrganizationDirectory(paths.universities)
    sessions = SessionStore(paths.chat_sessions)
    provider_logs = ProviderLogStore(paths.provider_logs)
    observer = Observability()
    worker = PersistenceWorker(sessions, provider_logs, maxsize=settings.persistence_queue_size)
    if start_worker:
        worker.start()

    service = AskService(
        settings=settings,
        users=users,
        organizations=organizations,
        classifier=StoreClassifier(gateway, model=settings.gemini_classifier_model),
        answerer=MultiStoreAnswerer(knowledge),
        direct=DirectAnswerer(gateway, candidates=settings.gemini_direct_models),
        observer=observer,
    )
    LOGGER.info(
        "bootstrap data_dir=%s env=%s fallback_key=%s",
        paths.root,
        settings.environment,
        "present" if settings.gemini_api_key else "missing",
    )
    return AppContext(
        settings=settings,
        paths=paths,
        users=users,
        organizations=organizations,
        sessions=sessions,
        provider_logs=provider_logs,
        worker=worker,
        observer=observer,
        service=service,
    )


__all__ = ["AppContext", "DataPaths", "bootstrap"]
