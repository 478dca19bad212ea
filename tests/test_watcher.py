import asyncio
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace

from audio_library.config import LibrarySettings
from audio_library.daemon import LibraryWatcher
from audio_library.models import ChangeKind, FileChange, PersistenceError
from audio_library.scanner import LibraryScanner
from audio_library.watchdog_handler import WatchHandler


class _Event:
    def __init__(self, src_path, *, dest_path=None, is_directory: bool = False) -> None:
        self.src_path = src_path
        self.dest_path = dest_path
        self.is_directory = is_directory


class _RecordingIndexer:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Path]] = []

    def index_file(self, path: Path):
        self.calls.append(("index", path))
        return SimpleNamespace(created=True)

    def remove_file(self, path: Path) -> bool:
        self.calls.append(("remove", path))
        return True


class TestWatchHandler(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.queue: asyncio.Queue[FileChange] = asyncio.Queue()
        self.handler = WatchHandler(self.queue, exts=[".mp3", ".flac"], loop=asyncio.get_running_loop())

    async def _drain(self, count: int) -> list[FileChange]:
        return [await asyncio.wait_for(self.queue.get(), timeout=1.0) for _ in range(count)]

    async def test_created_modified_deleted(self) -> None:
        self.handler.on_created(_Event("/music/a.mp3"))  # type: ignore[arg-type]
        self.handler.on_modified(_Event("/music/a.mp3"))  # type: ignore[arg-type]
        self.handler.on_deleted(_Event("/music/a.mp3"))  # type: ignore[arg-type]
        changes = await self._drain(3)
        self.assertEqual([c.kind for c in changes], [ChangeKind.ADDED, ChangeKind.CHANGED, ChangeKind.REMOVED])
        self.assertTrue(all(c.path == Path("/music/a.mp3") for c in changes))

    async def test_move_becomes_remove_then_add(self) -> None:
        self.handler.on_moved(_Event("/music/old.mp3", dest_path="/music/new.mp3"))  # type: ignore[arg-type]
        changes = await self._drain(2)
        self.assertEqual(
            changes,
            [
                FileChange(ChangeKind.REMOVED, Path("/music/old.mp3")),
                FileChange(ChangeKind.ADDED, Path("/music/new.mp3")),
            ],
        )

    async def test_ignores_directories_and_other_extensions(self) -> None:
        self.handler.on_created(_Event("/music/Album", is_directory=True))  # type: ignore[arg-type]
        self.handler.on_created(_Event("/music/cover.jpg"))  # type: ignore[arg-type]
        self.handler.on_created(_Event(b"/music/B.FLAC"))  # type: ignore[arg-type]
        changes = await self._drain(1)
        self.assertEqual(changes[0].path, Path("/music/B.FLAC"))
        self.assertTrue(self.queue.empty())


class TestLibraryWatcher(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.scanner = LibraryScanner(LibrarySettings(roots=[str(self.root)], exclude_patterns=["*.part.mp3"]))
        self.indexer = _RecordingIndexer()
        self.watcher = LibraryWatcher(self.scanner, self.indexer)  # type: ignore[arg-type]

    async def asyncTearDown(self) -> None:
        await self.watcher.stop_worker()
        self._tmp.cleanup()

    def _file(self, name: str) -> Path:
        path = self.root / name
        path.write_bytes(b"\x00")
        return path

    async def test_worker_applies_changes_in_arrival_order(self) -> None:
        path = self._file("a.mp3")
        self.watcher.start_worker()
        for kind in (ChangeKind.ADDED, ChangeKind.CHANGED, ChangeKind.REMOVED):
            self.watcher.queue.put_nowait(FileChange(kind, path))
        await asyncio.wait_for(self.watcher.queue.join(), timeout=2.0)
        self.assertEqual(self.indexer.calls, [("index", path), ("index", path), ("remove", path)])

    def test_apply_skips_vanished_and_excluded_files(self) -> None:
        excluded = self._file("x.part.mp3")
        self.watcher.apply(FileChange(ChangeKind.ADDED, self.root / "gone.mp3"))
        self.watcher.apply(FileChange(ChangeKind.CHANGED, excluded))
        self.assertEqual(self.indexer.calls, [])

    def test_apply_logs_persistence_errors(self) -> None:
        path = self._file("a.mp3")

        class _Failing(_RecordingIndexer):
            def index_file(self, path: Path):
                raise PersistenceError("locked")

        watcher = LibraryWatcher(self.scanner, _Failing())  # type: ignore[arg-type]
        with self.assertLogs("audio_library.daemon", level="WARNING"):
            watcher.apply(FileChange(ChangeKind.ADDED, path))

    async def test_worker_survives_unexpected_errors(self) -> None:
        path = self._file("a.mp3")

        class _Exploding(_RecordingIndexer):
            def index_file(self, path: Path):
                raise RuntimeError("bug")

        indexer = _Exploding()
        watcher = LibraryWatcher(self.scanner, indexer)  # type: ignore[arg-type]
        watcher.start_worker()
        try:
            with self.assertLogs("audio_library.daemon", level="ERROR"):
                watcher.queue.put_nowait(FileChange(ChangeKind.ADDED, path))
                await asyncio.wait_for(watcher.queue.join(), timeout=2.0)
            watcher.queue.put_nowait(FileChange(ChangeKind.REMOVED, path))
            await asyncio.wait_for(watcher.queue.join(), timeout=2.0)
            self.assertEqual(indexer.calls, [("remove", path)])
        finally:
            await watcher.stop_worker()

    async def test_run_stops_on_event(self) -> None:
        stop = asyncio.Event()
        task = asyncio.create_task(self.watcher.run(stop))
        await asyncio.sleep(0.2)
        stop.set()
        await asyncio.wait_for(task, timeout=5.0)
        self.assertIsNone(self.watcher.observer)


if __name__ == "__main__":
    unittest.main()
