"""
Append-only sink for provider failure and quality events.

One JSON object per line: {"timestamp", "provider_id", "kind", "detail"}.
The caller chooses the path; a sink without a path only keeps the in-memory
tail, which is what tests and the status command read.
"""
from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorEvent:
    timestamp: str
    provider_id: str
    kind: str
    detail: str


class ErrorEventLog:
    """Structured event sink backed by an optional JSON-lines file."""

    def __init__(self, path: Optional[Union[str, Path]] = None, keep_last: int = 200) -> None:
        self._path = Path(path) if path else None
        self._tail: Deque[ErrorEvent] = deque(maxlen=keep_last)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def record(self, provider_id: str, kind: str, detail: str, at: float) -> ErrorEvent:
        event = ErrorEvent(
            timestamp=datetime.fromtimestamp(at, tz=timezone.utc).isoformat(timespec="seconds"),
            provider_id=provider_id,
            kind=kind,
            detail=detail[:500],
        )
        self._tail.append(event)
        if self._path is not None:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(asdict(event), ensure_ascii=False) + "\n")
            except OSError as exc:
                logger.error("Could not write event log %s: %s", self._path, exc)
        return event

    def recent(self, provider_id: Optional[str] = None) -> List[ErrorEvent]:
        if provider_id is None:
            return list(self._tail)
        return [e for e in self._tail if e.provider_id == provider_id]
