from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Dict, List, Optional

from .database import now_iso
from .models import ScanInProgress

MAX_RECORDED_ERRORS = 50


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass(slots=True)
class ScanSummary:
    scanned: int = 0
    added: int = 0
    updated: int = 0
    fallback: int = 0
    failed: int = 0
    removed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ProgressSnapshot:
    is_scanning: bool
    state: ScanState
    progress: int
    status_text: str
    current_file: Optional[str]
    total_files: int
    processed_files: int
    results_summary: Dict[str, Any]
    start_time: Optional[str]
    finished_at: Optional[str]

    def to_record(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["state"] = self.state.value
        return payload


class ScanProgress:
    """
    Single owner of scan state, shared between the scan thread and pollers.

    Every read and write goes through one lock. ``begin`` is the only way into
    SCANNING, and it refuses while a scan is already running, which is what
    makes scans single-flight. A terminal state stays visible until the next
    ``begin``.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._state = ScanState.IDLE
        self._status_text = "Idle"
        self._current_file: Optional[str] = None
        self._total = 0
        self._processed = 0
        self._summary = ScanSummary()
        self._start_time: Optional[str] = None
        self._finished_at: Optional[str] = None
        self._stop_requested = False

    def begin(self, status_text: str = "Starting scan") -> None:
        with self._lock:
            if self._state is ScanState.SCANNING:
                raise ScanInProgress("A library scan is already running")
            self._state = ScanState.SCANNING
            self._status_text = status_text
            self._current_file = None
            self._total = 0
            self._processed = 0
            self._summary = ScanSummary()
            self._start_time = now_iso()
            self._finished_at = None
            self._stop_requested = False

    def set_total(self, total: int, status_text: str = "Scanning") -> None:
        with self._lock:
            self._total = max(0, int(total))
            self._status_text = status_text

    def set_status(self, status_text: str) -> None:
        with self._lock:
            self._status_text = status_text

    def file_started(self, path: str) -> None:
        with self._lock:
            self._current_file = path

    def file_done(self, *, created: bool = False, fallback: bool = False, error: Optional[str] = None) -> None:
        with self._lock:
            self._processed += 1
            self._summary.scanned += 1
            if error is not None:
                self._summary.failed += 1
                if len(self._summary.errors) < MAX_RECORDED_ERRORS:
                    self._summary.errors.append(error)
                return
            if created:
                self._summary.added += 1
            else:
                self._summary.updated += 1
            if fallback:
                self._summary.fallback += 1

    def record_removed(self, count: int) -> None:
        with self._lock:
            self._summary.removed += count

    def finish(self, state: ScanState, status_text: str) -> None:
        with self._lock:
            self._state = state
            self._status_text = status_text
            self._current_file = None
            self._finished_at = now_iso()

    def request_stop(self) -> bool:
        with self._lock:
            if self._state is not ScanState.SCANNING:
                return False
            self._stop_requested = True
            self._status_text = "Stopping"
            return True

    def stop_requested(self) -> bool:
        with self._lock:
            return self._stop_requested

    @property
    def is_scanning(self) -> bool:
        with self._lock:
            return self._state is ScanState.SCANNING

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            if self._total:
                percent = int(self._processed * 100 / self._total)
            else:
                percent = 100 if self._state is ScanState.COMPLETED else 0
            return ProgressSnapshot(
                is_scanning=self._state is ScanState.SCANNING,
                state=self._state,
                progress=min(100, percent),
                status_text=self._status_text,
                current_file=self._current_file,
                total_files=self._total,
                processed_files=self._processed,
                results_summary=asdict(self._summary),
                start_time=self._start_time,
                finished_at=self._finished_at,
            )
