from __future__ import annotations

import asyncio
import logging
from typing import Optional

from watchdog.observers import Observer

from .indexer import TrackIndexer
from .models import ChangeKind, FileChange, PersistenceError
from .scanner import LibraryScanner
from .watchdog_handler import WatchHandler

logger = logging.getLogger(__name__)


class LibraryWatcher:
    """
    Keeps the index in step with the filesystem between full scans.

    Watchdog callbacks arrive on the observer thread and are funnelled into a
    single asyncio queue. Exactly one worker drains it, so changes to the same
    path are applied in arrival order and never race each other.
    """

    def __init__(self, scanner: LibraryScanner, indexer: TrackIndexer) -> None:
        self.scanner = scanner
        self.indexer = indexer
        self.queue: asyncio.Queue[FileChange] = asyncio.Queue()
        self.observer: Observer | None = None
        self._worker_task: asyncio.Task[None] | None = None

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        logger.debug("Starting library watcher")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._bootstrap_watchdog, loop)
        self.start_worker()
        try:
            if stop is None:
                while True:
                    await asyncio.sleep(3600)
            else:
                await stop.wait()
        except (asyncio.CancelledError, KeyboardInterrupt):
            logger.debug("Watcher stopping")
        finally:
            if self.observer:
                self.observer.stop()
                self.observer.join()
                self.observer = None
            await self.stop_worker()

    def start_worker(self) -> asyncio.Task[None]:
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.create_task(self._worker())
        return self._worker_task

    async def stop_worker(self) -> None:
        task = self._worker_task
        self._worker_task = None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def _bootstrap_watchdog(self, loop: asyncio.AbstractEventLoop) -> None:
        handler = WatchHandler(self.queue, self.scanner.extensions, loop=loop)
        observer = Observer()
        for root in self.scanner.settings.roots:
            if not root.exists():
                logger.warning("Not watching missing root %s", root)
                continue
            observer.schedule(handler, str(root), recursive=True)
        observer.start()
        self.observer = observer

    async def _worker(self) -> None:
        while True:
            change = await self.queue.get()
            try:
                await asyncio.get_running_loop().run_in_executor(None, self.apply, change)
            except Exception:  # pragma: no cover - logged and ignored
                logger.exception("Watcher failed to apply %s for %s", change.kind.value, change.path)
            finally:
                self.queue.task_done()

    def apply(self, change: FileChange) -> None:
        path = change.path
        if change.kind is ChangeKind.REMOVED:
            self.indexer.remove_file(path)
            return
        if not path.is_file() or not self.scanner.should_include(path):
            logger.debug("Ignoring %s change for %s", change.kind.value, path)
            return
        try:
            result = self.indexer.index_file(path)
        except (PersistenceError, OSError) as exc:
            logger.warning("Failed to index %s: %s", path, exc)
            return
        logger.info("%s %s", "Added" if result.created else "Updated", path)
