import io
import logging
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from types import SimpleNamespace

from audio_library.cli import ShortPathFormatter, WarningBufferHandler, build_parser
from audio_library.commands import library as cmd_library
from audio_library.commands.output import format_duration, table


class TestParser(unittest.TestCase):
    def test_search_arguments(self) -> None:
        args = build_parser().parse_args(["search", "Numb", "Linkin Park", "--plugin", "qq", "--json"])
        self.assertEqual((args.command, args.title, args.artist, args.plugin, args.json), ("search", "Numb", "Linkin Park", "qq", True))

    def test_library_defaults_to_list(self) -> None:
        args = build_parser().parse_args(["library"])
        self.assertEqual(args.action, "list")
        self.assertIsNone(args.path)

    def test_tracks_paging(self) -> None:
        args = build_parser().parse_args(["tracks", "--page", "3", "--page-size", "50", "--desc", "--favorite"])
        self.assertEqual((args.page, args.page_size, args.desc, args.favorite), (3, 50, True, True))


class TestLoggingHelpers(unittest.TestCase):
    def _record(self, msg: str, level: int = logging.WARNING) -> logging.LogRecord:
        return logging.LogRecord("audio_library.scanner", level, __file__, 1, msg, None, None)

    def test_short_path_strips_longest_root_first(self) -> None:
        formatter = ShortPathFormatter("%(message)s", [Path("/music"), Path("/music/lossless")])
        self.assertEqual(formatter.format(self._record("Failed /music/lossless/a.flac")), "Failed a.flac")
        self.assertEqual(formatter.format(self._record("Failed /music/b.mp3")), "Failed b.mp3")

    def test_warning_buffer_keeps_warnings_only(self) -> None:
        handler = WarningBufferHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logger = logging.getLogger("audio_library.tests.cli")
        logger.propagate = False
        logger.addHandler(handler)
        try:
            logger.warning("first")
            logger.info("skipped")
            logger.error("second")
        finally:
            logger.removeHandler(handler)
        self.assertEqual(handler.records, ["WARNING first", "ERROR second"])


class TestOutput(unittest.TestCase):
    def test_format_duration(self) -> None:
        self.assertEqual(format_duration(None), "--:--")
        self.assertEqual(format_duration(185.4), "3:05")
        self.assertEqual(format_duration(3725), "1:02:05")

    def test_table_alignment(self) -> None:
        rendered = table([("a", None), ("long", 12)], ["Name", "N"])
        self.assertEqual(rendered.splitlines()[0], "Name  N ")
        self.assertEqual(rendered.splitlines()[3], "long  12")


class TestLibraryCommands(unittest.TestCase):
    def test_favorite_unknown_track_exits_nonzero(self) -> None:
        app = SimpleNamespace(upsert_favorite=lambda track_id, favorite: False)
        with redirect_stdout(io.StringIO()):
            self.assertEqual(cmd_library.favorite(app, "missing", on=True), 1)


if __name__ == "__main__":
    unittest.main()
