from __future__ import annotations

from typing import Optional

from ..app import AudioLibraryApp
from ..models import SearchStatus
from .output import emit_json, format_duration, table


def search(
    app: AudioLibraryApp,
    title: str,
    artist: str,
    *,
    plugin: Optional[str] = None,
    json_output: bool = False,
) -> int:
    outcome = app.search_online(title, artist, plugin=plugin)
    if json_output:
        emit_json(outcome.to_record())
        return 0 if outcome.status is SearchStatus.OK else 1
    if outcome.failed_providers:
        print(f"Failed providers: {', '.join(outcome.failed_providers)}")
    if outcome.status is SearchStatus.EMPTY:
        print(f"No results ({outcome.reason}).")
        return 1
    rows = [
        (
            f"{candidate.score:.2f}",
            candidate.source,
            candidate.title,
            candidate.artist,
            candidate.album or "",
            candidate.year or "",
            format_duration(candidate.duration),
            "yes" if candidate.lyrics else "",
        )
        for candidate in outcome.candidates
    ]
    print(table(rows, ("score", "source", "title", "artist", "album", "year", "length", "lyrics")))
    if outcome.source == "cache":
        print("\n(served from cache)")
    return 0


def lyrics(app: AudioLibraryApp, title: str, artist: str, *, plugin: Optional[str] = None) -> int:
    result = app.search_lyrics(title, artist, plugin=plugin)
    best = result["best"]
    if not best:
        print("No lyrics found.")
        return 1
    print(f"# {best['title']} - {best['artist']} [{best['source']}, score {best['score']:.2f}]\n")
    print(best["lyrics"])
    others = len(result["results"]) - 1
    if others > 0:
        print(f"\n({others} other source(s) also had lyrics)")
    return 0


def plugins(app: AudioLibraryApp) -> None:
    infos = app.list_plugins()
    if not infos:
        print("No providers enabled.")
        return
    print(table(((name, info.name, info.version, info.description) for name, info in infos.items()), ("id", "name", "version", "description")))
