"""
In-memory job accounting: running statistics, the capped error-detail
collector and the throttle deciding when a progress snapshot is persisted.
"""
from dataclasses import dataclass, field
import threading
import time
from typing import Any, Callable, Dict, List, Optional

DEFAULT_MAX_ERROR_DETAILS = 200


@dataclass
class ImportStats:
    total_processed: int = 0
    total_success: int = 0
    total_errors: int = 0
    sheets_processed: List[str] = field(default_factory=list)
    duration_ms: int = 0

    def mark_sheet(self, sheet: str) -> None:
        if sheet not in self.sheets_processed:
            self.sheets_processed.append(sheet)

    def summary(self) -> str:
        return (
            f"Processed {self.total_processed} row(s). "
            f"Success: {self.total_success}, Errors: {self.total_errors}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalProcessed": self.total_processed,
            "totalSuccess": self.total_success,
            "totalErrors": self.total_errors,
            "sheetsProcessed": list(self.sheets_processed),
            "durationMs": self.duration_ms,
        }


@dataclass
class ErrorDetail:
    sheet: Optional[str]
    row_number: Optional[int]
    error: str


class ErrorCollector:
    """
    Keeps the first ``cap`` error details of a job.

    Every call to :meth:`add` is counted in :attr:`total`; details past the cap
    are dropped. :meth:`drain_pending` hands out details not yet persisted.
    """

    def __init__(self, cap: int = DEFAULT_MAX_ERROR_DETAILS):
        self.cap = cap
        self.total = 0
        self._details: List[ErrorDetail] = []
        self._persisted = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._details)

    @property
    def details(self) -> List[ErrorDetail]:
        return list(self._details)

    @property
    def dropped(self) -> int:
        return self.total - len(self._details)

    def add(self, sheet: Optional[str], row_number: Optional[int], error: str) -> bool:
        with self._lock:
            self.total += 1
            if len(self._details) >= self.cap:
                return False
            self._details.append(ErrorDetail(sheet=sheet, row_number=row_number, error=error))
            return True

    def add_fatal(self, sheet: Optional[str], error: str) -> None:
        """Record a job-level failure; always kept, even past the cap."""
        with self._lock:
            self.total += 1
            self._details.append(ErrorDetail(sheet=sheet, row_number=None, error=error))

    def drain_pending(self) -> List[ErrorDetail]:
        with self._lock:
            pending = self._details[self._persisted:]
            self._persisted = len(self._details)
        return pending


class ProgressThrottle:
    """Allows a write at most once per ``interval`` seconds unless forced."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._last: Optional[float] = None

    def ready(self, force: bool = False) -> bool:
        now = self._clock()
        if force or self._last is None or now - self._last >= self.interval:
            self._last = now
            return True
        return False
