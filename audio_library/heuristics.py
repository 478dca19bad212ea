from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

TRACK_PATTERN = re.compile(r"^(?P<num>\d{1,3})\s*[._-]\s*(?P<rest>.+)$")
# Tried in order; spaced separators first so "Jay-Z - Song" splits on the spaced dash.
ARTIST_TITLE_PATTERNS = [
    re.compile(r"^(?P<artist>.+?)\s+[-–—~～]\s+(?P<title>.+)$"),
    re.compile(r"^(?P<artist>.+?)\s*[-_]\s*(?P<title>.+)$"),
    re.compile(r"^(?P<artist>.+?)\s*–\s*(?P<title>.+)$"),
    re.compile(r"^(?P<artist>.+?)\s*—\s*(?P<title>.+)$"),
    re.compile(r"^(?P<artist>.+?)\s*[~～]\s*(?P<title>.+)$"),
]


@dataclass(slots=True)
class PathGuess:
    artist: Optional[str] = None
    album: Optional[str] = None
    title: Optional[str] = None
    track_number: Optional[int] = None

    def confidence(self) -> float:
        score = 0.0
        if self.artist:
            score += 0.25
        if self.album:
            score += 0.25
        if self.title:
            score += 0.25
        if self.track_number is not None:
            score += 0.25
        return score


def split_artist_title(stem: str) -> tuple[Optional[str], str]:
    """Split an "Artist - Title" style name; returns (None, stem) when no separator matches."""
    for pattern in ARTIST_TITLE_PATTERNS:
        match = pattern.match(stem)
        if match:
            artist = _clean(match.group("artist"))
            title = _clean(match.group("title"))
            if artist and title:
                return artist, title
    return None, stem.strip()


def guess_from_filename(path: Path) -> PathGuess:
    guess = PathGuess()
    stem = path.stem
    track_match = TRACK_PATTERN.match(stem)
    if track_match:
        guess.track_number = int(track_match.group("num"))
        stem = track_match.group("rest")
    artist, title = split_artist_title(stem)
    guess.artist = artist
    guess.title = _clean(title) or path.stem

    parent_parts = path.parts[:-1]
    if len(parent_parts) >= 2:
        guess.album = _clean(parent_parts[-1])
    return guess


def _clean(value: str | None) -> Optional[str]:
    if not value:
        return None
    cleaned = value.replace("_", " ").strip(" ._-")
    return cleaned or None
