import tempfile
import threading
import unittest
from pathlib import Path
from types import SimpleNamespace

from audio_library.config import ConfigStore, LibrarySettings, Settings
from audio_library.database import Database
from audio_library.entity_index import EntityIndex
from audio_library.indexer import TrackIndexer
from audio_library.models import ExtractionError, PersistenceError, RawMetadata, ScanInProgress
from audio_library.scan_progress import ScanProgress, ScanState
from audio_library.scanner import LibraryScanner, ScanController
from audio_library.store import LibraryStore


class _FilenameOnlyReader:
    def extract(self, path: Path) -> RawMetadata:
        raise ExtractionError("no tags")


class _BlockingReader:
    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def extract(self, path: Path) -> RawMetadata:
        self.entered.set()
        self.release.wait(5)
        return RawMetadata(title=path.stem, artist="Blocker")


class ScanTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.settings = Settings.model_validate({"library": {"roots": [str(self.root)]}, "database": {"path": ":memory:"}})
        self.config = ConfigStore(self.settings)
        self.db = Database(":memory:")
        self.store = LibraryStore(self.db)
        self.scanner = LibraryScanner(self.settings.library)

    def tearDown(self) -> None:
        self.db.close()
        self._tmp.cleanup()

    def _file(self, relative: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x00" * 16)
        return path

    def _controller(self, reader) -> ScanController:
        indexer = TrackIndexer(self.store, EntityIndex(self.db), reader=reader)
        return ScanController(self.scanner, indexer, self.store, config=self.config)


class TestLibraryScanner(ScanTestCase):
    def test_extension_allow_list_and_excludes(self) -> None:
        self._file("Artist/a.mp3")
        self._file("Artist/b.FLAC")
        self._file("Artist/cover.jpg")
        self._file("Artist/.Trash/c.mp3")
        self.settings.library.exclude_patterns = ["*/.Trash/*"]
        found = [p.name for p in self.scanner.iter_files()]
        self.assertEqual(sorted(found), ["a.mp3", "b.FLAC"])

    def test_missing_root_is_skipped(self) -> None:
        self.assertEqual(list(self.scanner.iter_files([self.root / "nope"])), [])

    def test_extensions_are_normalized(self) -> None:
        settings = LibrarySettings(include_extensions=["MP3", ".Ogg"])
        self.assertEqual(LibraryScanner(settings).extensions, {".mp3", ".ogg"})


class TestScanController(ScanTestCase):
    def test_completed_scan_summary(self) -> None:
        self._file("Eagles - Hotel California.mp3")
        self._file("Album/01 - Song.flac")
        snapshot = self._controller(_FilenameOnlyReader()).run()
        self.assertEqual(snapshot.state, ScanState.COMPLETED)
        self.assertFalse(snapshot.is_scanning)
        self.assertEqual(snapshot.progress, 100)
        self.assertEqual(snapshot.results_summary["added"], 2)
        self.assertEqual(snapshot.results_summary["fallback"], 2)
        self.assertIsNotNone(self.settings.library.last_scan_at)

    def test_second_scan_updates_instead_of_adding(self) -> None:
        self._file("a.mp3")
        controller = self._controller(_FilenameOnlyReader())
        controller.run()
        snapshot = controller.run()
        self.assertEqual(snapshot.results_summary["added"], 0)
        self.assertEqual(snapshot.results_summary["updated"], 1)
        self.assertEqual(self.db.count("tracks"), 1)

    def test_start_while_scanning_raises_and_leaves_progress_alone(self) -> None:
        self._file("a.mp3")
        self._file("b.mp3")
        reader = _BlockingReader()
        controller = self._controller(reader)
        controller.start()
        try:
            self.assertTrue(reader.entered.wait(5))
            before = controller.snapshot()
            with self.assertRaises(ScanInProgress):
                controller.start(full=True)
            self.assertEqual(controller.snapshot(), before)
        finally:
            reader.release.set()
        final = controller.wait(5)
        self.assertEqual(final.state, ScanState.COMPLETED)
        self.assertEqual(final.results_summary["added"], 2)

    def test_stop_is_honoured_between_files(self) -> None:
        for idx in range(3):
            self._file(f"{idx}.mp3")
        reader = _BlockingReader()
        controller = self._controller(reader)
        controller.start()
        self.assertTrue(reader.entered.wait(5))
        self.assertTrue(controller.stop())
        reader.release.set()
        final = controller.wait(5)
        self.assertEqual(final.state, ScanState.STOPPED)
        self.assertEqual(final.processed_files, 1)
        self.assertEqual(self.db.count("tracks"), 1)
        self.assertIsNone(self.settings.library.last_scan_at)

    def test_stop_when_idle_is_refused(self) -> None:
        self.assertFalse(self._controller(_FilenameOnlyReader()).stop())

    def test_full_scan_drops_existing_rows_first(self) -> None:
        self._file("a.mp3")
        controller = self._controller(_FilenameOnlyReader())
        controller.run()
        track = self.store.find_track_by_path(self.root / "a.mp3")
        self.store.set_favorite(track.id, True)
        snapshot = controller.run(full=True)
        self.assertEqual(snapshot.results_summary["removed"], 1)
        self.assertEqual(snapshot.results_summary["added"], 1)
        self.assertFalse(self.store.find_track_by_path(self.root / "a.mp3").favorite)

    def test_persistence_failures_are_counted_not_fatal(self) -> None:
        self._file("a.mp3")
        self._file("b.mp3")

        class _FlakyIndexer:
            def index_file(self, path: Path):
                raise PersistenceError("disk full")

        controller = ScanController(self.scanner, _FlakyIndexer(), self.store, config=self.config)
        snapshot = controller.run()
        self.assertEqual(snapshot.state, ScanState.COMPLETED)
        self.assertEqual(snapshot.results_summary["failed"], 2)
        self.assertEqual(len(snapshot.results_summary["errors"]), 2)

    def test_unexpected_per_file_error_is_counted(self) -> None:
        self._file("a.mp3")
        self._file("b.mp3")

        class _BrokenIndexer:
            def index_file(self, path: Path):
                if path.name == "a.mp3":
                    raise RuntimeError("bug")
                return SimpleNamespace(created=True, extracted=True)

        with self.assertLogs("audio_library.scanner", level="ERROR"):
            snapshot = ScanController(self.scanner, _BrokenIndexer(), self.store).run()
        self.assertEqual(snapshot.state, ScanState.COMPLETED)
        self.assertEqual(snapshot.results_summary["failed"], 1)
        self.assertEqual(snapshot.results_summary["added"], 1)
        self.assertIn("bug", snapshot.results_summary["errors"][0])

    def test_walk_failure_fails_the_scan(self) -> None:
        class _BrokenScanner:
            def iter_files(self, roots):
                raise RuntimeError("walk exploded")

        with self.assertLogs("audio_library.scanner", level="ERROR"):
            snapshot = ScanController(_BrokenScanner(), SimpleNamespace(), self.store).run(roots=[self.root])
        self.assertEqual(snapshot.state, ScanState.FAILED)
        self.assertIn("walk exploded", snapshot.status_text)


class TestScanProgress(unittest.TestCase):
    def test_begin_refuses_while_scanning(self) -> None:
        progress = ScanProgress()
        progress.begin()
        progress.set_total(4)
        progress.file_done(created=True)
        before = progress.snapshot()
        with self.assertRaises(ScanInProgress):
            progress.begin()
        self.assertEqual(progress.snapshot(), before)
        self.assertEqual(before.progress, 25)

    def test_terminal_state_visible_until_next_begin(self) -> None:
        progress = ScanProgress()
        progress.begin()
        progress.finish(ScanState.COMPLETED, "done")
        self.assertEqual(progress.snapshot().state, ScanState.COMPLETED)
        progress.begin()
        snapshot = progress.snapshot()
        self.assertEqual(snapshot.state, ScanState.SCANNING)
        self.assertEqual(snapshot.results_summary["added"], 0)

    def test_to_record(self) -> None:
        record = ScanProgress().snapshot().to_record()
        self.assertEqual(record["state"], "idle")
        self.assertFalse(record["is_scanning"])


if __name__ == "__main__":
    unittest.main()
