from __future__ import annotations

import fnmatch
import logging
import threading
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Optional

from .config import ConfigStore, LibrarySettings
from .database import now_iso
from .indexer import TrackIndexer
from .models import PersistenceError
from .scan_progress import ProgressSnapshot, ScanProgress, ScanState
from .store import LibraryStore

logger = logging.getLogger(__name__)


class LibraryScanner:
    """Walks the configured roots and yields the audio files that should be indexed."""

    def __init__(self, settings: LibrarySettings) -> None:
        self.settings = settings

    @property
    def extensions(self) -> set[str]:
        return {ext.lower() for ext in self.settings.include_extensions}

    def iter_files(self, roots: Optional[Iterable[Path]] = None) -> Iterator[Path]:
        for root in roots if roots is not None else self.settings.roots:
            if not root.exists():
                logger.warning("Library root %s does not exist; skipping", root)
                continue
            for file_path in sorted(root.rglob("*")):
                if not file_path.is_file():
                    continue
                if not self.should_include(file_path):
                    continue
                yield file_path

    def should_include(self, path: Path) -> bool:
        if path.suffix.lower() not in self.extensions:
            return False
        rel = str(path)
        for pattern in self.settings.exclude_patterns:
            if fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(path.name, pattern):
                return False
        return True


class ScanController:
    """
    Runs library scans on a background thread.

    Only one scan runs at a time (``ScanProgress.begin`` enforces it). Stop
    requests are honoured between files; the file being indexed finishes.
    """

    def __init__(
        self,
        scanner: LibraryScanner,
        indexer: TrackIndexer,
        store: LibraryStore,
        config: Optional[ConfigStore] = None,
        progress: Optional[ScanProgress] = None,
    ) -> None:
        self.scanner = scanner
        self.indexer = indexer
        self.store = store
        self.config = config
        self.progress = progress or ScanProgress()
        self._thread: Optional[threading.Thread] = None

    def start(self, full: bool = False, roots: Optional[list[Path]] = None) -> None:
        """Begin a scan; raises ``ScanInProgress`` while another one runs."""
        self.progress.begin("Full scan starting" if full else "Scan starting")
        scan_roots = list(roots if roots is not None else self.scanner.settings.roots)
        self._thread = threading.Thread(
            target=self._run,
            args=(scan_roots, full),
            name="library-scan",
            daemon=True,
        )
        self._thread.start()

    def run(self, full: bool = False, roots: Optional[list[Path]] = None) -> ProgressSnapshot:
        """Scan on the calling thread and return the final snapshot."""
        self.progress.begin("Full scan starting" if full else "Scan starting")
        self._run(list(roots if roots is not None else self.scanner.settings.roots), full)
        return self.progress.snapshot()

    def stop(self) -> bool:
        return self.progress.request_stop()

    def wait(self, timeout: Optional[float] = None) -> ProgressSnapshot:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return self.progress.snapshot()

    def snapshot(self) -> ProgressSnapshot:
        return self.progress.snapshot()

    def _run(self, roots: list[Path], full: bool) -> None:
        try:
            if full:
                self.progress.set_status("Clearing previous index")
                for root in roots:
                    self.progress.record_removed(self.store.delete_tracks_under(root))
            self.progress.set_status("Collecting files")
            files = list(self.scanner.iter_files(roots))
            self.progress.set_total(len(files), f"Scanning {len(files)} file(s)")
            logger.info("Scanning %d file(s) under %d root(s)", len(files), len(roots))
            for path in files:
                if self.progress.stop_requested():
                    logger.info("Scan stopped by request")
                    self.progress.finish(ScanState.STOPPED, "Scan stopped")
                    return
                self._index_one(path)
        except Exception as exc:
            logger.exception("Library scan failed")
            self.progress.finish(ScanState.FAILED, f"Scan failed: {exc}")
            return
        snapshot = self.progress.snapshot()
        summary = snapshot.results_summary
        status = f"Scan complete: {summary['added']} added, {summary['updated']} updated, {summary['failed']} failed"
        logger.info(status)
        if self.config is not None:
            try:
                self.config.record_last_scan(now_iso())
            except OSError as exc:
                logger.warning("Could not record last scan time: %s", exc)
        self.progress.finish(ScanState.COMPLETED, status)

    def _index_one(self, path: Path) -> None:
        self.progress.file_started(str(path))
        try:
            result = self.indexer.index_file(path)
        except (PersistenceError, OSError) as exc:
            logger.warning("Failed to index %s: %s", path, exc)
            self.progress.file_done(error=f"{path}: {exc}")
            return
        except Exception as exc:
            logger.exception("Unexpected error indexing %s", path)
            self.progress.file_done(error=f"{path}: {exc}")
            return
        self.progress.file_done(created=result.created, fallback=not result.extracted)
