from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .events import EngineEvent, EventKind
from .results import Report

logger = logging.getLogger(__name__)

EventSink = Callable[[EngineEvent], None]
ScoreSink = Callable[[Report], None]


class RecordingSink:
    """Keeps everything an engine emits in memory."""

    def __init__(self) -> None:
        self.events: list[EngineEvent] = []
        self.reports: list[Report] = []

    def emit_event(self, event: EngineEvent) -> None:
        self.events.append(event)

    def emit_score(self, report: Report) -> None:
        self.reports.append(report)

    def of_kind(self, kind: EventKind) -> list[EngineEvent]:
        return [e for e in self.events if e.type is kind]

    @property
    def last_report(self) -> Report | None:
        return self.reports[-1] if self.reports else None


class JsonLinesSink:
    """Appends events and reports to a JSON-lines file, one object per line."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def emit_event(self, event: EngineEvent) -> None:
        self._append({"kind": "event", **event.to_dict()})

    def emit_score(self, report: Report) -> None:
        self._append({"kind": "score", **report.to_dict()})
        logger.info("report for %s/%s written to %s", report.task_id, report.session_id, self._path)

    def _append(self, obj: dict[str, object]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(obj, sort_keys=True))
            fh.write("\n")


def fan_out(*sinks: Callable[..., None]) -> Callable[..., None]:
    """One callable that forwards each item to every sink in order."""

    def emit(item: Any) -> None:
        for sink in sinks:
            sink(item)

    return emit
