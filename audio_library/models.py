from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class RawMetadata:
    """Tag data read from one file; every field may be missing."""

    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    duration: Optional[float] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    cover_image: Optional[bytes] = None
    cover_mime: Optional[str] = None
    lyrics: Optional[str] = None


@dataclass(slots=True)
class Track:
    path: str
    id: Optional[str] = None
    filename: Optional[str] = None
    title: Optional[str] = None
    artist: Optional[str] = None
    artists: List[str] = field(default_factory=list)
    artist_ids: List[str] = field(default_factory=list)
    album: Optional[str] = None
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    duration: Optional[float] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    size: Optional[int] = None
    favorite: bool = False
    play_count: int = 0
    last_played: Optional[str] = None
    cover_image: Optional[str] = None
    lyrics: Optional[str] = None
    album_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Track":
        data = {key: row[key] for key in TRACK_FIELDS if key in row}
        data["favorite"] = bool(data.get("favorite") or 0)
        data["play_count"] = int(data.get("play_count") or 0)
        data["artists"] = _json_list(data.get("artists"))
        data["artist_ids"] = _json_list(data.get("artist_ids"))
        return cls(**data)

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Artist:
    name: str
    normalized_name: str
    id: Optional[str] = None
    track_count: int = 0
    album_count: int = 0
    photo: Optional[str] = None
    bio: Optional[str] = None
    country: Optional[str] = None
    genre: Optional[str] = None
    website: Optional[str] = None
    social_media: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Artist":
        data = {key: row[key] for key in ARTIST_FIELDS if key in row}
        data["social_media"] = _json_list(data.get("social_media"))
        data["track_count"] = int(data.get("track_count") or 0)
        data["album_count"] = int(data.get("album_count") or 0)
        return cls(**data)

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Album:
    title: str
    normalized_title: str
    artist: str
    id: Optional[str] = None
    artists: List[str] = field(default_factory=list)
    track_count: int = 0
    year: Optional[int] = None
    cover_image: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Album":
        data = {key: row[key] for key in ALBUM_FIELDS if key in row}
        data["artists"] = _json_list(data.get("artists"))
        data["track_count"] = int(data.get("track_count") or 0)
        return cls(**data)

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class OnlineCandidate:
    title: str
    artist: str
    source: str
    artist_aliases: List[str] = field(default_factory=list)
    album: Optional[str] = None
    album_id: Optional[str] = None
    source_id: Optional[str] = None
    year: Optional[int] = None
    duration: Optional[float] = None
    cover_image: Optional[str] = None
    lyrics: Optional[str] = None
    score: float = 0.0

    def merge_missing(self, other: "OnlineCandidate") -> None:
        """Fill fields this candidate lacks from a lower-ranked duplicate."""
        if not self.cover_image and other.cover_image:
            self.cover_image = other.cover_image
        if not self.lyrics and other.lyrics:
            self.lyrics = other.lyrics
        if not self.year and other.year:
            self.year = other.year
        if not self.duration and other.duration:
            self.duration = other.duration

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class MatchReference:
    """What the caller knows about the track being looked up."""

    title: Optional[str]
    artist: Optional[str]
    duration: Optional[float] = None
    year: Optional[int] = None


@dataclass(slots=True)
class PluginInfo:
    name: str
    description: str
    version: str


class SearchStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"


@dataclass(slots=True)
class SearchOutcome:
    status: SearchStatus
    candidates: List[OnlineCandidate] = field(default_factory=list)
    source: str = "online"
    reason: Optional[str] = None
    failed_providers: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "source": self.source,
            "reason": self.reason,
            "failed_providers": list(self.failed_providers),
            "candidates": [candidate.to_record() for candidate in self.candidates],
        }


class ChangeKind(str, Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


@dataclass(slots=True, frozen=True)
class FileChange:
    kind: ChangeKind
    path: Path


TRACK_FIELDS = tuple(Track.__dataclass_fields__)
ARTIST_FIELDS = tuple(Artist.__dataclass_fields__)
ALBUM_FIELDS = tuple(Album.__dataclass_fields__)


class ExtractionError(Exception):
    """Raised when a file's container cannot be read; callers fall back to the filename."""


class ScanInProgress(Exception):
    """Raised when a scan is requested while another one is running."""


class ProviderError(Exception):
    """Raised by a provider when its remote lookup fails."""


class PersistenceError(Exception):
    """Raised when a storage operation fails."""


def _json_list(value: object) -> List[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return [value]
        return decoded if isinstance(decoded, list) else [decoded]
    return [value]


def parse_int(value: object) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (list, tuple)):
        return parse_int(value[0]) if value else None
    cleaned = str(value).strip()
    if "/" in cleaned:
        cleaned = cleaned.split("/", 1)[0].strip()
    if "-" in cleaned and len(cleaned) >= 4 and cleaned[:4].isdigit():
        cleaned = cleaned[:4]
    if cleaned.isdigit():
        return int(cleaned)
    return None
