"""
GenBI Telemetry.

In-process product telemetry without external dependencies.
Tracks:
- Event counts per event name, split into success / failure
- Failures per service (AI service, engine)
- The most recent events for debugging

send_event() is fire-and-forget: it never raises into the caller.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TelemetryEvent(str, Enum):
    HOME_ASK_CANDIDATE = "home_ask_candidate"
    HOME_CANCEL_ASK = "home_cancel_ask"
    HOME_ANSWER_BREAKDOWN = "home_answer_breakdown"
    HOME_ANSWER_CHART = "home_answer_chart"
    HOME_ANSWER_ADJUST_CHART = "home_answer_adjust_chart"
    HOME_ANSWER_TEXT = "home_answer_text"
    HOME_ADJUST_THREAD_RESPONSE = "home_adjust_thread_response"
    HOME_GENERATE_THREAD_RECOMMENDATION_QUESTIONS = "home_generate_thread_recommendation_questions"
    HOME_PREVIEW_ANSWER = "home_preview_answer"
    DEPLOY_SEMANTICS = "deploy_semantics"


class ServiceTag(str, Enum):
    AI = "AI"
    ENGINE = "ENGINE"
    UI = "UI"
    UNKNOWN = "UNKNOWN"


@dataclass
class EventRecord:
    """Single telemetry event."""

    name: str
    properties: dict[str, Any]
    service: str
    success: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class EventCounter:
    success_count: int = 0
    failure_count: int = 0
    last_sent: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "last_sent": self.last_sent.isoformat() if self.last_sent else None,
        }


class Telemetry:
    """
    Central telemetry store.

    Thread-safe; one instance is created at startup and injected where
    events are sent.
    """

    MAX_RECENT = 200

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._lock = threading.Lock()
        self._events: dict[str, EventCounter] = defaultdict(EventCounter)
        self._service_failures: dict[str, int] = defaultdict(int)
        self._recent: deque[EventRecord] = deque(maxlen=self.MAX_RECENT)
        self._started_at = datetime.now(timezone.utc)

    def send_event(
        self,
        event: TelemetryEvent | str,
        properties: dict[str, Any] | None = None,
        service: ServiceTag | str = ServiceTag.UI,
        success: bool = True,
    ) -> None:
        """Record an event. Never raises."""
        if not self._enabled:
            return
        try:
            name = event.value if isinstance(event, TelemetryEvent) else str(event)
            service_name = service.value if isinstance(service, ServiceTag) else str(service)
            record = EventRecord(
                name=name,
                properties=dict(properties or {}),
                service=service_name,
                success=success,
            )
            with self._lock:
                counter = self._events[name]
                if success:
                    counter.success_count += 1
                else:
                    counter.failure_count += 1
                    self._service_failures[service_name] += 1
                counter.last_sent = record.timestamp
                self._recent.append(record)
            logger.debug(f"Telemetry event {name} [service={service_name}] [success={success}]")
        except Exception as e:  # telemetry must never break the caller
            logger.warning(f"Failed to record telemetry event {event}: {e}")

    def recent_events(self, name: str | None = None) -> list[EventRecord]:
        with self._lock:
            return [r for r in self._recent if name is None or r.name == name]

    def get_summary(self) -> dict[str, Any]:
        """Summary suitable for JSON serialization."""
        with self._lock:
            now = datetime.now(timezone.utc)
            return {
                "uptime_seconds": round((now - self._started_at).total_seconds(), 1),
                "collected_at": now.isoformat(),
                "events": {name: counter.to_dict() for name, counter in self._events.items()},
                "service_failures": dict(self._service_failures),
            }

    def reset(self) -> None:
        """Reset all counters. Useful for testing."""
        with self._lock:
            self._events.clear()
            self._service_failures.clear()
            self._recent.clear()
            self._started_at = datetime.now(timezone.utc)


def service_of(exc: BaseException) -> ServiceTag:
    """Which external service an exception came from, for telemetry tagging."""
    details = getattr(exc, "details", None) or {}
    service = str(details.get("service", "")).lower()
    if service.startswith("ai"):
        return ServiceTag.AI
    if service == "engine":
        return ServiceTag.ENGINE
    return ServiceTag.UNKNOWN
