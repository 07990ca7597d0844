"""
Structured cleanup events.

The cleanup pipelines only produce ``CleanupEvent`` records. How they are
rendered and where they go is decided by an ``EventSink``; the default
``LoggingEventSink`` writes one line per event (plain text or JSON) through
the standard logging module.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Dict, Optional, Union

from registry_cleaner.logging_utils import attach_stream_handler
from registry_cleaner.models import ResourceKind

EVENT_LOGGER_NAME = "registry_cleaner.events"


class EventLevel(Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class Action(Enum):
    START = "start"
    AUTH = "auth"
    FILTER = "filter"
    DELETE_ATTEMPT = "delete_attempt"
    DELETE_SUCCESS = "delete_success"
    DELETE_FAILED = "delete_failed"
    SKIP = "skip"
    PAGER = "pager"
    FINISHED = "finished"


_LOGGING_LEVELS = {
    EventLevel.INFO: logging.INFO,
    EventLevel.WARN: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class CleanupEvent:
    timestamp: datetime
    level: EventLevel
    provider: str
    repo: str
    action: Action
    resource: ResourceKind
    identifier: str = ""
    http_code: Optional[int] = None
    message: str = ""

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.strftime("%Y-%m-%dT%H:%M:%SZ")
        data["level"] = self.level.value
        data["action"] = self.action.value
        data["resource"] = self.resource.value
        return data

    def to_text(self) -> str:
        """Render as ``TS [LEVEL] provider/repo action resource identifier - message``."""
        message = self.message
        if self.http_code is not None:
            message = f"{self.http_code:03d} {message}".rstrip()
        return (
            f"{self.timestamp.strftime('%Y-%m-%dT%H:%M:%SZ')} [{self.level.value.upper()}] "
            f"{self.provider}/{self.repo} {self.action.value} {self.resource.value} "
            f"{self.identifier} - {message}"
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


class EventSink(ABC):
    """Destination for cleanup events"""

    @abstractmethod
    def emit(self, event: CleanupEvent) -> None:
        """Deliver a single event"""


class LoggingEventSink(EventSink):
    """Writes events through the ``registry_cleaner.events`` logger, one line each."""

    FORMATS = ("text", "json")

    def __init__(self, fmt: str = "text", stream=None):
        if fmt not in self.FORMATS:
            raise ValueError(f"Unsupported event format '{fmt}' (expected one of {', '.join(self.FORMATS)})")
        self.fmt = fmt
        self.logger = attach_stream_handler(EVENT_LOGGER_NAME, stream)

    def render(self, event: CleanupEvent) -> str:
        return event.to_json() if self.fmt == "json" else event.to_text()

    def emit(self, event: CleanupEvent) -> None:
        self.logger.log(_LOGGING_LEVELS[event.level], self.render(event))


class EventRecorder:
    """Stamps and forwards events for one provider/repository pair.

    Safe to share between worker threads; keeps per-action counts for the
    run summary.
    """

    def __init__(self, sink: EventSink, provider: str, repo: str):
        self.sink = sink
        self.provider = provider
        self.repo = repo
        self.counts: Counter = Counter()
        self._lock = Lock()

    def record(
        self,
        level: Union[EventLevel, str],
        action: Union[Action, str],
        resource: Union[ResourceKind, str],
        identifier: Optional[str] = "",
        http_code: Optional[int] = None,
        message: str = "",
    ) -> CleanupEvent:
        event = CleanupEvent(
            timestamp=datetime.now(timezone.utc),
            level=EventLevel(level),
            provider=self.provider,
            repo=self.repo,
            action=Action(action),
            resource=ResourceKind(resource),
            identifier=identifier or "",
            http_code=http_code,
            message=message,
        )
        with self._lock:
            self.counts[event.action] += 1
        self.sink.emit(event)
        return event

    def info(self, action, resource, identifier: Optional[str] = "", http_code: Optional[int] = None,
             message: str = "") -> CleanupEvent:
        return self.record(EventLevel.INFO, action, resource, identifier, http_code, message)

    def warn(self, action, resource, identifier: Optional[str] = "", http_code: Optional[int] = None,
             message: str = "") -> CleanupEvent:
        return self.record(EventLevel.WARN, action, resource, identifier, http_code, message)

    def error(self, action, resource, identifier: Optional[str] = "", http_code: Optional[int] = None,
              message: str = "") -> CleanupEvent:
        return self.record(EventLevel.ERROR, action, resource, identifier, http_code, message)

    def count(self, action: Action) -> int:
        with self._lock:
            return self.counts[action]
