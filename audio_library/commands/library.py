from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from ..app import AudioLibraryApp
from ..database import Condition
from ..models import ScanInProgress
from .output import emit_json, format_duration, table

logger = logging.getLogger(__name__)

POLL_SECONDS = 1.0


def scan(app: AudioLibraryApp, *, full: bool = False) -> int:
    try:
        app.start_scan(full=full)
    except ScanInProgress:
        print("A scan is already running.")
        return 1
    last_status = None
    try:
        while True:
            progress = app.get_scan_progress()
            if progress["status_text"] != last_status:
                logger.info("[%3d%%] %s", progress["progress"], progress["status_text"])
                last_status = progress["status_text"]
            if not progress["is_scanning"]:
                break
            time.sleep(POLL_SECONDS)
    except KeyboardInterrupt:
        print("Stopping after the current file...")
        app.stop_scan()
    progress = app.wait_for_scan()
    summary = progress["results_summary"]
    print(
        f"{progress['state']}: {summary['scanned']} scanned, {summary['added']} added, "
        f"{summary['updated']} updated, {summary['fallback']} from filename, "
        f"{summary['failed']} failed, {summary['removed']} removed"
    )
    for error in summary.get("errors") or []:
        print(f"  ! {error}")
    return 0 if progress["state"] == "completed" else 1


def tracks(
    app: AudioLibraryApp,
    *,
    page: int = 1,
    page_size: int = 20,
    sort: Optional[str] = None,
    order: str = "ASC",
    favorite: bool = False,
    artist: Optional[str] = None,
    json_output: bool = False,
) -> None:
    filters: Dict[str, Any] = {}
    if favorite:
        filters["favorite"] = True
    if artist:
        filters["artist"] = Condition("LIKE", artist)
    result = app.list_tracks(filters or None, sort=sort, order=order, page=page, page_size=page_size)
    if json_output:
        emit_json(result)
        return
    rows = [
        (
            track["id"][:8],
            "*" if track.get("favorite") else "",
            track.get("title"),
            track.get("artist"),
            track.get("album") or "",
            format_duration(track.get("duration")),
        )
        for track in result["data"]
    ]
    if not rows:
        print("No tracks found.")
        return
    print(table(rows, ("id", "fav", "title", "artist", "album", "length")))
    info = result["pagination"]
    print(f"\nPage {info['page']}/{max(info['pages'], 1)} ({info['total']} track(s))")


def favorite(app: AudioLibraryApp, track_id: str, *, on: bool = True) -> int:
    if not app.upsert_favorite(track_id, on):
        print(f"No track with id {track_id}")
        return 1
    print(f"{'Marked' if on else 'Unmarked'} {track_id} as favorite")
    return 0


def stats(app: AudioLibraryApp, *, json_output: bool = False) -> None:
    data = app.stats()
    if json_output:
        emit_json(data)
        return
    print(f"Tracks:    {data['tracks']}")
    print(f"Artists:   {data['artists']}")
    print(f"Albums:    {data['albums']}")
    print(f"Favorites: {data['favorites']}")
    print(f"Played:    {data['played']}")
    print(f"Duration:  {format_duration(data['total_duration'])}")
    print(f"Size:      {data['total_size'] / (1024 * 1024):.1f} MiB")
    print(f"Libraries: {data['libraries']}")
    print(f"Last scan: {data['last_scan_at'] or 'never'}")


def libraries(app: AudioLibraryApp, *, action: str = "list", path: Optional[str] = None) -> int:
    if action == "add":
        try:
            added = app.add_library_path(path)
        except FileNotFoundError as exc:
            print(exc)
            return 1
        print(f"Added {path}" if added else f"{path} is already a library path")
        return 0
    if action == "remove":
        try:
            removed = app.remove_library_path(path)
        except KeyError as exc:
            print(exc.args[0])
            return 1
        print(f"Removed {path} ({removed} track(s) dropped)")
        return 0
    entries = app.list_libraries()
    if not entries:
        print("No library paths configured.")
        return 0
    print(table(((e["path"], "yes" if e["exists"] else "MISSING", e["tracks"]) for e in entries), ("path", "exists", "tracks")))
    return 0


def artists(app: AudioLibraryApp, *, page: int = 1, page_size: int = 20, json_output: bool = False) -> None:
    result = app.list_artists(page=page, page_size=page_size)
    if json_output:
        emit_json(result)
        return
    rows = [(a["id"][:8], a["name"], a["track_count"], a["album_count"]) for a in result["data"]]
    print(table(rows, ("id", "name", "tracks", "albums")) if rows else "No artists indexed.")


def albums(app: AudioLibraryApp, *, page: int = 1, page_size: int = 20, json_output: bool = False) -> None:
    result = app.list_albums(page=page, page_size=page_size)
    if json_output:
        emit_json(result)
        return
    rows = [(a["id"][:8], a["title"], a["artist"], a.get("year") or "", a["track_count"]) for a in result["data"]]
    print(table(rows, ("id", "title", "artist", "year", "tracks")) if rows else "No albums indexed.")


def shuffle(app: AudioLibraryApp, *, count: int = 20, favorite: bool = False) -> None:
    result = app.random_tracks({"favorite": True} if favorite else None, page_size=count)
    for track in result["data"]:
        print(f"{track['id'][:8]}  {track.get('artist')} - {track.get('title')}")


def play(app: AudioLibraryApp, track_id: str) -> int:
    if not app.record_play(track_id):
        print(f"No track with id {track_id}")
        return 1
    return 0
