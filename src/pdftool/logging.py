from __future__ import annotations

import json
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .models import BatchResult, ConversionOutcome


@dataclass(slots=True)
class RequestLogEntry:
    request_id: str
    source: str
    status: str
    strategy: str | None
    artifacts: list[str]
    note: str | None
    job_ids: list[str]
    size_bytes: int
    elapsed_ms: float
    timestamp: str = field(default_factory=lambda: time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_outcome(cls, request_id: str, outcome: ConversionOutcome) -> "RequestLogEntry":
        return cls(
            request_id=request_id,
            source=outcome.source,
            status=outcome.status,
            strategy=outcome.strategy,
            artifacts=[artifact.name for artifact in outcome.artifacts],
            note=outcome.note,
            job_ids=list(outcome.job_ids),
            size_bytes=sum(len(artifact.data) for artifact in outcome.artifacts),
            elapsed_ms=round(outcome.elapsed_ms, 2),
        )


class RequestLogger:
    """Append one JSON line per outcome; a logger without a file is a no-op."""

    def __init__(self, log_file: Path | None) -> None:
        self._log_file = log_file
        self._lock = threading.Lock()

    @property
    def log_file(self) -> Path | None:
        return self._log_file

    def append(self, entry: RequestLogEntry) -> None:
        if self._log_file is None:
            return
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        with self._lock:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            with self._log_file.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def record(self, batch: BatchResult) -> None:
        for outcome in batch.outcomes:
            self.append(RequestLogEntry.from_outcome(batch.request_id, outcome))


@dataclass(slots=True)
class BatchSummary:
    total: int = 0
    converted: int = 0
    degraded: int = 0
    notes: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_batch(cls, batch: BatchResult) -> "BatchSummary":
        summary = cls(total=len(batch.outcomes))
        for outcome in batch.outcomes:
            if outcome.degraded:
                summary.degraded += 1
            else:
                summary.converted += 1
            if outcome.note:
                summary.notes[outcome.note] = summary.notes.get(outcome.note, 0) + 1
        return summary
