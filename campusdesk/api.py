"""HTTP surface: the /api/ask entry point plus session and provider-log views."""

from __future__ import annotations

import functools
import json
import logging
import time
import traceback
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

import anyio
from anyio import to_thread
from fastapi import BackgroundTasks, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .bootstrap import AppContext, bootstrap
from .deadline import Deadline
from .errors import CampusDeskError, NotFoundError
from .request_normalizer import normalize_request
from .settings import Settings
from .storage.files import utc_now_iso

LOGGER = logging.getLogger("campusdesk.api")

DISCONNECT_POLL_SECONDS = 0.25


def _parse_limit(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


async def watch_disconnect(request: Request, deadline: Deadline, interval: float = DISCONNECT_POLL_SECONDS) -> None:
    """Cancel ``deadline`` once the client goes away."""

    while not deadline.expired:
        if await request.is_disconnected():
            LOGGER.info("client disconnected path=%s", request.url.path)
            deadline.cancel()
            return
        await anyio.sleep(interval)


async def _run_watched(request: Request, deadline: Deadline, call: Callable[[], Any]) -> Any:
    """Run ``call`` in a worker thread while watching for a client disconnect."""

    result: Dict[str, Any] = {}
    async with anyio.create_task_group() as group:
        group.start_soon(watch_disconnect, request, deadline)
        try:
            result["value"] = await to_thread.run_sync(call)
        except Exception as exc:
            # Re-raised outside the group so handlers see the original type.
            result["error"] = exc
        finally:
            group.cancel_scope.cancel()
    if "error" in result:
        raise result["error"]
    return result["value"]


def _finalize_response(payload: Dict[str, Any], started: float, status_code: int = 200) -> JSONResponse:
    latency_ms = int((time.perf_counter() - started) * 1000)
    LOGGER.info(
        "ask.response %s",
        json.dumps(
            {
                "status": status_code,
                "session": payload.get("sessionId"),
                "stores": payload.get("storesUsed"),
                "campus": payload.get("isCampusSearch"),
                "failed_store": payload.get("failedStore"),
                "lat_ms": latency_ms,
            },
            ensure_ascii=False,
        ),
    )
    return JSONResponse(payload, status_code=status_code, media_type="application/json")


def create_app(context: Optional[AppContext] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application around an explicit ``AppContext``."""

    context = context or bootstrap(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context.worker.start()
        try:
            yield
        finally:
            context.close()

    app = FastAPI(title="CampusDesk Ask API", version="1.0", lifespan=lifespan)
    app.state.context = context
    app.state.started_at = time.time()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if context.settings.log_requests:
            LOGGER.info("%s - %s %s", utc_now_iso(), request.method, request.url.path)
        return await call_next(request)

    @app.exception_handler(CampusDeskError)
    async def handle_campus_error(request: Request, exc: CampusDeskError) -> JSONResponse:
        LOGGER.info("request failed path=%s status=%s error=%s", request.url.path, exc.status_code, exc.message)
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse(
                {"error": "Endpoint not found", "path": request.url.path, "method": request.method},
                status_code=404,
            )
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("unexpected error path=%s", request.url.path)
        payload: Dict[str, Any] = {
            "error": "Internal Server Error",
            "details": str(exc),
            "timestamp": utc_now_iso(),
        }
        if context.settings.is_development:
            payload["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(payload, status_code=500)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": utc_now_iso(),
            "uptime": max(0.0, time.time() - app.state.started_at),
        }

    @app.get("/healthz")
    def healthz() -> Dict[str, bool]:
        return {"ok": True}

    async def _ask(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
        started = time.perf_counter()
        ask = await normalize_request(request)
        deadline = Deadline(context.settings.ask_deadline_seconds)
        outcome = await _run_watched(
            request,
            deadline,
            functools.partial(
                context.service.ask,
                ask.email,
                ask.question,
                ask.session_id,
                ask.campus_search,
                deadline,
            ),
        )
        if outcome.job is not None:
            background_tasks.add_task(context.worker.submit, outcome.job)
        return _finalize_response(outcome.payload, started, outcome.status_code)

    app.add_api_route("/api/ask", _ask, methods=["GET", "POST"])

    @app.get("/api/sessions/{email}")
    def list_sessions(email: str) -> Dict[str, Any]:
        sessions = context.sessions.list_sessions(email)
        LOGGER.info("sessions listed email=%s count=%d", email, len(sessions))
        return {"sessions": sessions}

    @app.get("/api/session/summary/{email}")
    def session_summary(email: str, limit: Optional[str] = Query(None)) -> Dict[str, Any]:
        return context.sessions.summary(email, _parse_limit(limit))

    @app.get("/api/session/delete/{email}/{session_id}")
    def delete_session(email: str, session_id: str) -> Dict[str, Any]:
        if not context.sessions.delete(email, session_id):
            raise NotFoundError("Session not found")
        LOGGER.info("session deleted email=%s session=%s", email, session_id)
        return {"message": "Session deleted successfully", "email": email, "sessionId": session_id}

    app.add_api_route("/api/session/{email}/{session_id}", delete_session, methods=["DELETE"])

    @app.get("/api/session/{email}/{session_id}")
    def get_session(email: str, session_id: str) -> Dict[str, Any]:
        session = context.sessions.get(email, session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    @app.get("/api/sessions/delete/all/{email}")
    def delete_all_sessions(email: str) -> Dict[str, Any]:
        deleted = context.sessions.delete_all(email)
        LOGGER.info("sessions deleted email=%s count=%d", email, deleted)
        return {
            "message": f"Deleted {deleted} sessions for user",
            "email": email,
            "deletedCount": deleted,
        }

    @app.get("/api/provider/logs/{provider_email}")
    def provider_logs(provider_email: str, limit: Optional[str] = Query(None)) -> Dict[str, Any]:
        return context.provider_logs.list_logs(provider_email, _parse_limit(limit))

    return app


__all__ = ["create_app"]
