from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .core.text import normalize_artist, normalize_text, normalize_title
from .entity_index import EntityIndex
from .heuristics import guess_from_filename
from .models import ExtractionError, RawMetadata, Track
from .store import LibraryStore
from .tagging import TagReader

logger = logging.getLogger(__name__)

UNKNOWN_ARTIST = "Unknown"


@dataclass(slots=True)
class IndexResult:
    track: Track
    created: bool
    extracted: bool


class TrackIndexer:
    """Turns one file on disk into a Track row plus its artist and album entities."""

    def __init__(self, store: LibraryStore, entities: EntityIndex, reader: Optional[TagReader] = None) -> None:
        self.store = store
        self.entities = entities
        self.reader = reader or TagReader()

    def index_file(self, path: Path) -> IndexResult:
        # An unreadable stat is a hard failure for this file; the caller counts it.
        size = path.stat().st_size
        guess = guess_from_filename(path)
        extracted = True
        try:
            raw = self.reader.extract(path)
        except ExtractionError as exc:
            logger.warning("Falling back to filename for %s: %s", path, exc)
            raw = RawMetadata()
            extracted = False

        raw_title = normalize_text(raw.title) or guess.title or path.stem
        raw_artist = normalize_text(raw.artist) or guess.artist or UNKNOWN_ARTIST
        raw_album = normalize_text(raw.album) or (None if extracted else guess.album)
        title = normalize_title(raw_title)
        album_title = normalize_title(raw_album) if raw_album else None
        cover = _data_uri(raw.cover_image, raw.cover_mime)

        fields: Dict[str, Any] = {
            "path": str(path),
            "filename": path.name,
            "title": title,
            "artist": raw_artist,
            "album": album_title,
            "album_artist": normalize_text(raw.album_artist) or normalize_artist(raw_artist),
            "genre": normalize_text(raw.genre) or None,
            "year": raw.year,
            "track_number": raw.track_number if raw.track_number is not None else guess.track_number,
            "disc_number": raw.disc_number,
            "duration": raw.duration,
            "bitrate": raw.bitrate,
            "sample_rate": raw.sample_rate,
            "channels": raw.channels,
            "size": size,
            "cover_image": cover,
            "lyrics": normalize_text(raw.lyrics) or None,
        }

        # The existence check, entity counts and the row write form one unit.
        with self.store.db.transaction():
            is_new = self.store.find_track_by_path(path) is None
            artists = self.entities.resolve_artists(raw_artist, is_new_track=is_new)
            album = self.entities.resolve_album(album_title, artists, raw.year, cover, is_new_track=is_new)
            fields["artists"] = [artist.name for artist in artists]
            fields["artist_ids"] = [artist.id for artist in artists]
            fields["album_id"] = album.id if album else None
            track, created = self.store.upsert_track_by_path(fields)
        logger.debug("%s %s", "Indexed" if created else "Refreshed", path)
        return IndexResult(track=track, created=created, extracted=extracted)

    def remove_file(self, path: Path) -> bool:
        removed = self.store.delete_track_by_path(path)
        if removed:
            logger.info("Removed %s from the library", path)
        return removed


def _data_uri(data: Optional[bytes], mime: Optional[str]) -> Optional[str]:
    if not data:
        return None
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime or 'image/jpeg'};base64,{encoded}"
