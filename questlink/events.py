"""CSV journal of discovery and reconnection events."""
from __future__ import annotations

import asyncio
import contextlib
import csv
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence

EVENT_FIELDS: Sequence[str] = (
    "timestamp",
    "event",
    "status",
    "value",
    "message",
    "extra",
)


def _encode_extra(extra: Mapping[str, Any]) -> str:
    if not extra:
        return ""
    try:
        return json.dumps(extra, separators=(",", ":"), ensure_ascii=True, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(extra)


@dataclass(slots=True)
class EventRecord:
    timestamp: str
    event: str
    status: Optional[str] = None
    value: Optional[float] = None
    message: Optional[str] = None
    extra: str = ""

    def as_row(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event": self.event,
            "status": self.status or "",
            "value": self.value if self.value is not None else "",
            "message": self.message or "",
            "extra": self.extra,
        }


class EventLogger:
    """Append-only CSV journal.

    Each row is flushed as soon as it is written so a run that is interrupted
    with Ctrl-C still leaves a complete trail of the probes it made. Context
    pushed with :meth:`scope` (for example the subnet being scanned) is merged
    into the ``extra`` column of every row logged inside it.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        static_extra: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._static_extra: Dict[str, Any] = dict(static_extra or {})
        self._lock = threading.Lock()
        self._stack: list[Dict[str, Any]] = []
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write_header()

    def _write_header(self) -> None:
        if self.path.exists() and self.path.stat().st_size > 0:
            return
        with self._lock, self.path.open("w", newline="", encoding="utf-8") as handle:
            csv.DictWriter(handle, fieldnames=EVENT_FIELDS).writeheader()

    def log(
        self,
        event: str,
        *,
        status: Optional[str] = None,
        value: Optional[float] = None,
        message: Optional[str] = None,
        **extra: Any,
    ) -> None:
        payload: Dict[str, Any] = dict(self._static_extra)
        for layer in self._stack:
            payload.update(layer)
        payload.update(extra)
        record = EventRecord(
            timestamp=self._timestamp(),
            event=event,
            status=status,
            value=value,
            message=message,
            extra=_encode_extra(payload),
        )
        with self._lock, self.path.open("a", newline="", encoding="utf-8") as handle:
            csv.DictWriter(handle, fieldnames=EVENT_FIELDS).writerow(record.as_row())

    async def log_async(self, event: str, **kwargs: Any) -> None:
        await asyncio.to_thread(self.log, event, **kwargs)

    @contextlib.contextmanager
    def scope(self, **context: Any) -> Iterator[None]:
        self._stack.append(dict(context))
        try:
            yield
        finally:
            self._stack.pop()

    @contextlib.contextmanager
    def timer(self, event: str, **context: Any) -> Iterator[None]:
        """Log *event* with its wall-clock duration once the block exits."""
        start = perf_counter()
        try:
            with self.scope(**context):
                yield
        except Exception as exc:
            self.log(
                event,
                status="error",
                value=perf_counter() - start,
                message=str(exc),
                exception=type(exc).__name__,
                **context,
            )
            raise
        self.log(event, status="ok", value=perf_counter() - start, **context)

    def _timestamp(self) -> str:
        dt = self._clock()
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")


__all__ = ["EVENT_FIELDS", "EventLogger", "EventRecord"]
