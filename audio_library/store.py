from __future__ import annotations

import logging
import os
import uuid
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .core.text import canonical_key
from .database import Condition, Database, Page, Raw, now_iso
from .models import Track

logger = logging.getLogger(__name__)

# Written by the user or the player, never by a re-scan.
USER_FIELDS = ("favorite", "play_count", "last_played")
PROTECTED_FIELDS = ("id", "path", "created_at") + USER_FIELDS


def under_root(root: Path | str) -> Raw:
    prefix = str(root).rstrip(os.sep) + os.sep
    return Raw(
        "(substr(path, 1, length(:root_prefix)) = :root_prefix OR path = :root_path)",
        {"root_prefix": prefix, "root_path": str(root)},
    )


class LibraryStore:
    """Track, artist and album repository on top of ``Database``."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # --- tracks ----------------------------------------------------------

    def find_track_by_path(self, path: Path | str) -> Optional[Track]:
        row = self.db.query_one("tracks", {"path": str(path)})
        return Track.from_row(row) if row else None

    def get_track(self, track_id: str) -> Optional[Track]:
        row = self.db.query_one("tracks", {"id": track_id})
        return Track.from_row(row) if row else None

    def upsert_track_by_path(self, fields: Mapping[str, Any]) -> tuple[Track, bool]:
        """
        Insert or refresh the track stored at ``fields["path"]``.

        On update only derived tag fields are overwritten; favorite, play
        count and last played survive any number of re-scans.
        """
        path = str(fields["path"])
        stamp = now_iso()
        with self.db.transaction():
            existing = self.db.query_one("tracks", {"path": path})
            if existing:
                changes = {k: v for k, v in fields.items() if k not in PROTECTED_FIELDS}
                changes["updated_at"] = stamp
                self.db.update("tracks", changes, {"id": existing["id"]})
                track_id = existing["id"]
                created = False
            else:
                record = {k: v for k, v in fields.items() if k not in USER_FIELDS and k != "id"}
                record.update(
                    {
                        "id": uuid.uuid4().hex,
                        "path": path,
                        "favorite": False,
                        "play_count": 0,
                        "created_at": stamp,
                        "updated_at": stamp,
                    }
                )
                self.db.insert("tracks", record)
                track_id = record["id"]
                created = True
            row = self.db.query_one("tracks", {"id": track_id})
        return Track.from_row(row), created

    def delete_track_by_path(self, path: Path | str) -> bool:
        return self.db.delete("tracks", {"path": str(path)}) > 0

    def delete_tracks_under(self, root: Path | str) -> int:
        removed = self.db.delete("tracks", {"path": under_root(root)})
        logger.info("Removed %d track(s) under %s", removed, root)
        return removed

    def count_tracks_under(self, root: Path | str) -> int:
        return self.db.count("tracks", {"path": under_root(root)})

    def list_tracks(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = None,
        order: str = "ASC",
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        return self.db.page("tracks", page=page, page_size=page_size, sort=sort, order=order, filters=filters)

    def random_tracks(self, page: int = 1, page_size: int = 20, filters: Optional[Mapping[str, Any]] = None) -> Page:
        return self.db.random_page("tracks", page=page, page_size=page_size, filters=filters)

    def set_favorite(self, track_id: str, favorite: bool) -> bool:
        return self.db.update("tracks", {"favorite": bool(favorite), "updated_at": now_iso()}, {"id": track_id}) > 0

    def record_play(self, track_id: str) -> bool:
        with self.db.transaction():
            found = self.db.increment("tracks", {"id": track_id}, play_count=1)
            if found:
                self.db.update("tracks", {"last_played": now_iso()}, {"id": track_id})
        return found > 0

    # --- entities --------------------------------------------------------

    def list_artists(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = "name",
        order: str = "ASC",
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        return self.db.page("artists", page=page, page_size=page_size, sort=sort, order=order, filters=filters)

    def list_albums(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = "title",
        order: str = "ASC",
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        return self.db.page("albums", page=page, page_size=page_size, sort=sort, order=order, filters=filters)

    def stats(self) -> Dict[str, Any]:
        with self.db.transaction():
            totals = self.db.execute(
                "SELECT COUNT(*) AS tracks, COALESCE(SUM(duration), 0) AS duration, "
                "COALESCE(SUM(size), 0) AS size FROM tracks"
            ).fetchone()
            return {
                "tracks": int(totals["tracks"]),
                "artists": self.db.count("artists"),
                "albums": self.db.count("albums"),
                "favorites": self.db.count("tracks", {"favorite": True}),
                "played": self.db.count("tracks", {"play_count": Condition(">", 0)}),
                "total_duration": float(totals["duration"]),
                "total_size": int(totals["size"]),
            }

    def recount(self) -> None:
        """Rebuild artist and album counts from the rows that exist right now."""
        artist_tracks: Counter[str] = Counter()
        album_tracks: Counter[str] = Counter()
        with self.db.transaction():
            for track in self.db.iterate("tracks"):
                for artist_id in dict.fromkeys(track.get("artist_ids") or []):
                    artist_tracks[artist_id] += 1
                if track.get("album_id"):
                    album_tracks[track["album_id"]] += 1
            artist_albums: Counter[str] = Counter()
            artists_by_key = {row["normalized_name"]: row["id"] for row in self.db.query_all("artists")}
            for album in self.db.query_all("albums"):
                keys = {canonical_key(name) for name in album.get("artists") or []}
                for key in keys:
                    if key in artists_by_key:
                        artist_albums[artists_by_key[key]] += 1
                self.db.update("albums", {"track_count": album_tracks.get(album["id"], 0)}, {"id": album["id"]})
            for artist_id in artists_by_key.values():
                self.db.update(
                    "artists",
                    {
                        "track_count": artist_tracks.get(artist_id, 0),
                        "album_count": artist_albums.get(artist_id, 0),
                    },
                    {"id": artist_id},
                )
        logger.info("Recounted %d artist(s) and %d album(s)", len(artists_by_key), len(album_tracks))
