from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from .app import AudioLibraryApp
from .commands import library as cmd_library
from .commands import online as cmd_online
from .config import ConfigStore, find_config

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}


class ShortPathFormatter(logging.Formatter):
    """Drops the library root prefix from paths so log lines stay readable."""

    def __init__(self, fmt: str, roots: list[Path]) -> None:
        super().__init__(fmt)
        # Longest first so nested roots are stripped before their parents.
        self.roots = sorted((str(root) for root in roots if root), key=len, reverse=True)

    def _shorten(self, message: str) -> str:
        for root in self.roots:
            if not message:
                break
            message = message.replace(f"{root}/", "")
            message = message.replace(root, "")
        return message

    def format(self, record: logging.LogRecord) -> str:
        return self._shorten(super().format(record))


class ColorFormatter(ShortPathFormatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{C_RESET}"


class WarningBufferHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:  # pragma: no cover
            msg = record.getMessage()
        self.records.append(msg)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Local music library indexer")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    parser.add_argument(
        "--warnings-log",
        type=Path,
        default=Path.cwd() / "audio-library-warnings.log",
        help="Where to write warnings and errors from this run",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    scan_parser = subparsers.add_parser("scan", help="Scan the configured library roots")
    scan_parser.add_argument(
        "--full",
        action="store_true",
        help="Drop existing rows under the roots first (loses favorites and play counts)",
    )
    subparsers.add_parser("watch", help="Keep the index in sync with filesystem changes")

    search_parser = subparsers.add_parser("search", help="Look a track up with the online providers")
    search_parser.add_argument("title")
    search_parser.add_argument("artist")
    search_parser.add_argument("--plugin", default=None, help="Only query this provider")
    search_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    lyrics_parser = subparsers.add_parser("lyrics", help="Fetch the best matching lyrics")
    lyrics_parser.add_argument("title")
    lyrics_parser.add_argument("artist")
    lyrics_parser.add_argument("--plugin", default=None, help="Only query this provider")

    subparsers.add_parser("plugins", help="List the enabled online providers")

    tracks_parser = subparsers.add_parser("tracks", help="List indexed tracks")
    tracks_parser.add_argument("--page", type=int, default=1)
    tracks_parser.add_argument("--page-size", type=int, default=20)
    tracks_parser.add_argument("--sort", default=None, help="Column to sort by (unknown columns fall back to the default)")
    tracks_parser.add_argument("--desc", action="store_true", help="Sort descending")
    tracks_parser.add_argument("--favorite", action="store_true", help="Only favorites")
    tracks_parser.add_argument("--artist", default=None, help="Artist name contains this text")
    tracks_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    favorite_parser = subparsers.add_parser("favorite", help="Mark or unmark a favorite track")
    favorite_parser.add_argument("track_id")
    favorite_parser.add_argument("--off", action="store_true", help="Remove the favorite mark")

    for name, help_text in (("artists", "List artists"), ("albums", "List albums")):
        entity_parser = subparsers.add_parser(name, help=help_text)
        entity_parser.add_argument("--page", type=int, default=1)
        entity_parser.add_argument("--page-size", type=int, default=20)
        entity_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    shuffle_parser = subparsers.add_parser("shuffle", help="Pick random tracks")
    shuffle_parser.add_argument("--count", type=int, default=20)
    shuffle_parser.add_argument("--favorite", action="store_true", help="Only favorites")

    play_parser = subparsers.add_parser("play", help="Record a play for a track")
    play_parser.add_argument("track_id")

    stats_parser = subparsers.add_parser("stats", help="Show library totals")
    stats_parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")

    library_parser = subparsers.add_parser("library", help="Manage library root folders")
    library_parser.add_argument("action", choices=("list", "add", "remove"), nargs="?", default="list")
    library_parser.add_argument("path", nargs="?")
    return parser


def configure_logging(level: str, roots: list[Path], warnings_log: Path) -> WarningBufferHandler:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    display_roots = [root.resolve() for root in roots]

    color_handler = logging.StreamHandler()
    color_handler.setFormatter(ColorFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(color_handler)

    warn_buffer = WarningBufferHandler()
    warn_buffer.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(warn_buffer)

    file_handler = logging.FileHandler(warnings_log, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(file_handler)

    logging.getLogger("musicbrainzngs").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    return warn_buffer


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    config_path = find_config(args.config)
    config = ConfigStore.open(config_path)
    warn_buffer = configure_logging(args.log_level, config.settings.library.roots, args.warnings_log)

    if args.command == "library" and args.action != "list" and not args.path:
        parser.error(f"library {args.action} needs a path")

    app = AudioLibraryApp.create(config)
    exit_code = 0
    try:
        match args.command:
            case "scan":
                exit_code = cmd_library.scan(app, full=args.full)
            case "watch":
                try:
                    asyncio.run(app.get_watcher().run())
                except KeyboardInterrupt:
                    pass
            case "search":
                exit_code = cmd_online.search(app, args.title, args.artist, plugin=args.plugin, json_output=args.json)
            case "lyrics":
                exit_code = cmd_online.lyrics(app, args.title, args.artist, plugin=args.plugin)
            case "plugins":
                cmd_online.plugins(app)
            case "tracks":
                cmd_library.tracks(
                    app,
                    page=args.page,
                    page_size=args.page_size,
                    sort=args.sort,
                    order="DESC" if args.desc else "ASC",
                    favorite=args.favorite,
                    artist=args.artist,
                    json_output=args.json,
                )
            case "favorite":
                exit_code = cmd_library.favorite(app, args.track_id, on=not args.off)
            case "artists":
                cmd_library.artists(app, page=args.page, page_size=args.page_size, json_output=args.json)
            case "albums":
                cmd_library.albums(app, page=args.page, page_size=args.page_size, json_output=args.json)
            case "shuffle":
                cmd_library.shuffle(app, count=args.count, favorite=args.favorite)
            case "play":
                exit_code = cmd_library.play(app, args.track_id)
            case "stats":
                cmd_library.stats(app, json_output=args.json)
            case "library":
                exit_code = cmd_library.libraries(app, action=args.action, path=args.path)
            case _:
                parser.error("Unknown command")
    finally:
        app.close()
        if warn_buffer.records:
            print("\n\033[33mWarnings/Errors summary:\033[0m")
            for line in warn_buffer.records:
                print(f" - {line}")
            print(f"\nFull warning log: {args.warnings_log}")
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
