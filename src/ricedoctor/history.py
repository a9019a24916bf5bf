"""In-memory list of recent diagnoses, newest first."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ricedoctor.ml.pipeline import DiagnosisReport

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES: int = 20


@dataclass(frozen=True)
class HistoryEntry:
    """One completed diagnosis and the image it was made from."""

    id: str
    label: str
    confidence: str
    image_ref: str
    created_at: datetime
    advice: str


class DiagnosisHistory:
    """Bounded most-recent-first record of diagnoses. Oldest entries drop off."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._lock = threading.Lock()
        self._entries: deque[HistoryEntry] = deque(maxlen=max_entries)

    def record(self, report: DiagnosisReport, image_ref: str) -> HistoryEntry:
        entry = HistoryEntry(
            id=uuid.uuid4().hex,
            label=report.diagnosis.label,
            confidence=report.diagnosis.confidence,
            image_ref=image_ref,
            created_at=datetime.now(UTC),
            advice=report.advice,
        )
        with self._lock:
            self._entries.appendleft(entry)
        logger.debug("Recorded history entry %s (%s)", entry.id, entry.label)
        return entry

    def entries(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
