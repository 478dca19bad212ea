from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Sequence

from .core.text import canonical_key, split_artists
from .database import Condition, Database, now_iso
from .models import Album, Artist

logger = logging.getLogger(__name__)


class EntityIndex:
    """
    Resolves raw artist and album strings to canonical entities.

    Entities are keyed by ``canonical_key``, so "The Beatles", "the beatles"
    and "TheBeatles" share one row whose display name is the first form seen.
    Creation goes through the unique constraints (insert, ignore the
    conflict, re-read) so repeated or concurrent resolution never duplicates
    a row. Counts only move when the caller says the track is new.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def resolve_artists(self, raw: Optional[str], is_new_track: bool) -> List[Artist]:
        resolved: List[Artist] = []
        seen: set[str] = set()
        with self.db.transaction():
            for name in split_artists(raw):
                key = canonical_key(name)
                if not key or key in seen:
                    continue
                seen.add(key)
                resolved.append(self._get_or_create_artist(name, key))
            if is_new_track and resolved:
                ids = [artist.id for artist in resolved]
                self.db.increment("artists", {"id": Condition("IN", ids)}, track_count=1)
                resolved = [self._reload_artist(artist) for artist in resolved]
        return resolved

    def resolve_album(
        self,
        title: Optional[str],
        artists: Sequence[Artist],
        year: Optional[int] = None,
        cover: Optional[str] = None,
        is_new_track: bool = False,
    ) -> Optional[Album]:
        key = canonical_key(title)
        if not key:
            return None
        primary = artists[0].name if artists else ""
        stamp = now_iso()
        missing: dict = {}
        with self.db.transaction():
            created = self.db.insert(
                "albums",
                {
                    "id": uuid.uuid4().hex,
                    "title": title.strip(),
                    "normalized_title": key,
                    "artist": primary,
                    "artists": [artist.name for artist in artists],
                    "track_count": 0,
                    "year": year,
                    "cover_image": cover,
                    "created_at": stamp,
                    "updated_at": stamp,
                },
                ignore_conflicts=True,
            )
            row = self.db.query_one("albums", {"normalized_title": key, "artist": primary})
            album = Album.from_row(row)
            if created:
                logger.debug("Created album %s by %s", album.title, primary or "<unknown>")
                if artists:
                    self.db.increment(
                        "artists",
                        {"id": Condition("IN", [artist.id for artist in artists])},
                        album_count=1,
                    )
            else:
                if not album.year and year:
                    missing["year"] = year
                if not album.cover_image and cover:
                    missing["cover_image"] = cover
                if missing:
                    missing["updated_at"] = stamp
                    self.db.update("albums", missing, {"id": album.id})
            if is_new_track:
                self.db.increment("albums", {"id": album.id}, track_count=1)
            if is_new_track or missing:
                album = Album.from_row(self.db.query_one("albums", {"id": album.id}))
        return album

    def find_artist(self, name: str) -> Optional[Artist]:
        key = canonical_key(name)
        if not key:
            return None
        row = self.db.query_one("artists", {"normalized_name": key})
        return Artist.from_row(row) if row else None

    def find_album(self, title: str, artist: str) -> Optional[Album]:
        row = self.db.query_one("albums", {"normalized_title": canonical_key(title), "artist": artist})
        return Album.from_row(row) if row else None

    def _get_or_create_artist(self, name: str, key: str) -> Artist:
        stamp = now_iso()
        created = self.db.insert(
            "artists",
            {
                "id": uuid.uuid4().hex,
                "name": name,
                "normalized_name": key,
                "track_count": 0,
                "album_count": 0,
                "social_media": [],
                "created_at": stamp,
                "updated_at": stamp,
            },
            ignore_conflicts=True,
        )
        if created:
            logger.debug("Created artist %s", name)
        row = self.db.query_one("artists", {"normalized_name": key})
        return Artist.from_row(row)

    def _reload_artist(self, artist: Artist) -> Artist:
        row = self.db.query_one("artists", {"id": artist.id})
        return Artist.from_row(row) if row else artist
