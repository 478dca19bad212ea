from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler

from .models import ChangeKind, FileChange

logger = logging.getLogger(__name__)


class WatchHandler(FileSystemEventHandler):
    """Translates watchdog callbacks into ``FileChange`` events on an asyncio queue."""

    def __init__(
        self,
        queue: asyncio.Queue[FileChange],
        exts: Iterable[str],
        *,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        super().__init__()
        self.queue = queue
        self.exts = {ext.lower() for ext in exts}
        self.loop = loop

    def on_created(self, event: FileSystemEvent) -> None:
        self._maybe_enqueue(event, ChangeKind.ADDED)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._maybe_enqueue(event, ChangeKind.CHANGED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._maybe_enqueue(event, ChangeKind.REMOVED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._enqueue(_as_path(event.src_path), ChangeKind.REMOVED)
        self._enqueue(_as_path(event.dest_path), ChangeKind.ADDED)

    def _maybe_enqueue(self, event: FileSystemEvent, kind: ChangeKind) -> None:
        if event.is_directory:
            return
        self._enqueue(_as_path(event.src_path), kind)

    def _enqueue(self, path: Path, kind: ChangeKind) -> None:
        if path.suffix.lower() not in self.exts:
            return
        logger.debug("Queued %s change: %s", kind.value, path)
        self.loop.call_soon_threadsafe(self.queue.put_nowait, FileChange(kind=kind, path=path))


def _as_path(value: str | bytes) -> Path:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return Path(value)
