"""Error event sink: JSON lines on disk plus an in-memory tail."""

from __future__ import annotations

import json

from etf_analyzer.providers.event_log import ErrorEventLog
from tests.fakes.providers import WEEKEND_TS


def test_writes_json_lines(tmp_path):
    path = tmp_path / "nested" / "datasource_error.log"
    log = ErrorEventLog(path)
    log.record("tencent", "TransientProviderError", "tencent: rate limit (HTTP 429)", WEEKEND_TS)
    log.record("sina", "invalid_price", "Decimal('0')", WEEKEND_TS + 1)

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first == {
        "timestamp": "2026-01-03T00:00:00+00:00",
        "provider_id": "tencent",
        "kind": "TransientProviderError",
        "detail": "tencent: rate limit (HTTP 429)",
    }


def test_memory_only_without_path(tmp_path):
    log = ErrorEventLog()
    assert log.path is None
    log.record("a", "x", "detail", WEEKEND_TS)
    assert [e.kind for e in log.recent()] == ["x"]
    assert list(tmp_path.iterdir()) == []


def test_tail_is_bounded_and_filterable():
    log = ErrorEventLog(keep_last=3)
    for i in range(5):
        log.record("a" if i % 2 else "b", "k", str(i), WEEKEND_TS + i)
    assert [e.detail for e in log.recent()] == ["2", "3", "4"]
    assert [e.detail for e in log.recent("a")] == ["3"]


def test_detail_truncated():
    event = ErrorEventLog().record("a", "k", "x" * 2000, WEEKEND_TS)
    assert len(event.detail) == 500
