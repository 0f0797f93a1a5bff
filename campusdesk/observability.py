"""Per-request telemetry for the ask pipeline with a daily snapshot."""

from __future__ import annotations

import datetime as _dt
import json
import logging
import threading
from collections import Counter
from typing import Any, Dict

LOGGER = logging.getLogger("campusdesk.observability")

_MISS_OUTCOMES = {"no_stores_available", "no_stores_selected", "store_failed"}


class Observability:
    """Collects per-request telemetry and emits a daily snapshot."""

    def __init__(self, *, today=_dt.date.today) -> None:
        self._today = today
        self._lock = threading.Lock()
        self._day = today()
        self._misses: Counter[str] = Counter()
        self._usage: Counter[str] = Counter()

    def _emit_daily(self) -> None:
        payload = {
            "event": "daily_report",
            "day": self._day.isoformat(),
            "top_10_misses": self._misses.most_common(10),
            "usage_snapshot": dict(self._usage),
        }
        LOGGER.info(json.dumps(payload, ensure_ascii=False))

    def _rollover_if_needed(self) -> None:
        today = self._today()
        if today != self._day:
            self._emit_daily()
            self._day = today
            self._misses.clear()
            self._usage.clear()

    def record(self, record: Dict[str, Any]) -> None:
        payload = dict(record)
        with self._lock:
            self._rollover_if_needed()
            mode = payload.get("mode") or "unknown"
            outcome = payload.get("outcome") or "unknown"
            self._usage[f"mode:{mode}"] += 1
            self._usage[f"outcome:{outcome}"] += 1
            for store in payload.get("stores") or []:
                self._usage[f"store:{store}"] += 1
            question = payload.pop("question", None)
            if outcome in _MISS_OUTCOMES and question:
                self._misses[str(question)[:160]] += 1
            LOGGER.info(json.dumps(payload, ensure_ascii=False, default=str))

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "day": self._day.isoformat(),
                "usage": dict(self._usage),
                "top_misses": self._misses.most_common(10),
            }


__all__ = ["Observability"]
