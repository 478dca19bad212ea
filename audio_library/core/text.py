"""
Text normalization for titles and artist names.

Handles Latin and CJK input alike:
- display cleanup (decorations, brackets, featuring clauses)
- artist splitting on multi-artist separators
- canonical keys used for entity identity
- match text used for candidate deduplication

All functions are pure and accept ``None``.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

AUDIO_EXTENSIONS = ("mp3", "flac", "wav", "m4a", "ogg", "aac", "wma", "ape", "opus", "aiff", "alac")

# "Artist - Title" prefix; the separator must be spaced so hyphenated words survive.
ARTIST_PREFIX = re.compile(r"^.+?\s+[-–—~～]\s+(?=\S)")
BRACKETS = [
    re.compile(r"[(（][^)）]*[)）]"),
    re.compile(r"\[[^\]]*\]"),
    re.compile(r"【[^】]*】"),
    re.compile(r"\{[^}]*\}"),
]
DECORATION_SUFFIX = re.compile(
    r"(?:\s+(?:remix|live|ost|original|official|lyrics?)|\s*(?:官方版|纯音乐|伴奏|现场版|无损|高品质|原声|原曲|铃声))\s*$",
    re.IGNORECASE,
)
TRACK_NUMBER_PREFIX = re.compile(r"^\s*\d{1,2}\s*[-_.]\s*")
EXTENSION_SUFFIX = re.compile(r"\.(?:%s)$" % "|".join(AUDIO_EXTENSIONS), re.IGNORECASE)
WHITESPACE = re.compile(r"\s+")

FEATURING_CLAUSE = re.compile(
    r"\s*(?:\b(?:featuring|feat|ft)\b\.?|&|,|，|、).*$",
    re.IGNORECASE,
)

# Applied in order; every pass splits all names produced by the previous ones.
ARTIST_SEPARATORS = [
    re.compile(r"/"),
    re.compile(r"、"),
    re.compile(r","),
    re.compile(r"，"),
    re.compile(r"&amp;"),
    re.compile(r"&"),
    re.compile(r"\bfeaturing\b", re.IGNORECASE),
    re.compile(r"\bfeat\b\.?", re.IGNORECASE),
    re.compile(r"\bft\b\.?", re.IGNORECASE),
    re.compile(r"\bvs\b\.?", re.IGNORECASE),
]
NAME_EDGE_CHARS = " \t()（）[]【】"

GARBLED_RATIO = 0.35


def collapse_whitespace(value: str) -> str:
    return WHITESPACE.sub(" ", value).strip()


def normalize_title(raw: Optional[str]) -> str:
    """
    Clean a song title for display and matching.

    Examples:
        "Hotel California (Live)" → "Hotel California"
        "Eagles - Hotel California.mp3" → "Hotel California"
        "03. Take Five" → "Take Five"
        "晴天 (官方版)" → "晴天"

    Falls back to the whitespace-collapsed input when cleanup would leave
    nothing (e.g. a title that is entirely bracketed).
    """
    if not raw:
        return ""
    original = collapse_whitespace(str(raw))
    cleaned = EXTENSION_SUFFIX.sub("", original)
    cleaned = ARTIST_PREFIX.sub("", cleaned)
    for pattern in BRACKETS:
        cleaned = pattern.sub(" ", cleaned)
    cleaned = collapse_whitespace(cleaned)
    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = DECORATION_SUFFIX.sub("", cleaned).strip()
    cleaned = TRACK_NUMBER_PREFIX.sub("", cleaned)
    cleaned = collapse_whitespace(cleaned)
    return cleaned or original


def normalize_artist(raw: Optional[str]) -> str:
    """
    Reduce an artist credit to its lead artist.

    "Tom feat. Jerry" → "Tom", "A & B" → "A", "Adele (UK)" → "Adele".
    """
    if not raw:
        return ""
    original = collapse_whitespace(str(raw))
    cleaned = FEATURING_CLAUSE.sub("", original)
    for pattern in BRACKETS:
        cleaned = pattern.sub(" ", cleaned)
    cleaned = collapse_whitespace(cleaned)
    return cleaned or original


def split_artists(raw: Optional[str]) -> list[str]:
    """
    Split a multi-artist credit into individual names.

    Separators are applied pass by pass over the growing list, so the result
    does not depend on which separator appears first in the string:

        "A/B&C" → ["A", "B", "C"]
        "周杰伦、费玉清" → ["周杰伦", "费玉清"]

    Duplicates are removed by exact string comparison, keeping first-seen
    order. Names that only differ by case or spacing are merged later, at the
    canonical key stage.
    """
    if not raw or not isinstance(raw, str):
        return []
    names = [raw]
    for separator in ARTIST_SEPARATORS:
        next_names: list[str] = []
        for name in names:
            for part in separator.split(name):
                part = collapse_whitespace(part.strip(NAME_EDGE_CHARS))
                if part:
                    next_names.append(part)
        names = next_names
    unique: list[str] = []
    for name in names:
        if name not in unique:
            unique.append(name)
    return unique


def canonical_key(name: Optional[str]) -> str:
    """
    Identity key for grouping artists and albums.

    Lower-cased, NFKC-folded, with everything but letters and digits removed.
    CJK ideographs, kana and hangul count as letters.

        "The Beatles" → "thebeatles"
        "AC/DC" → "acdc"
        "周 杰 伦" → "周杰伦"
    """
    if not name:
        return ""
    folded = unicodedata.normalize("NFKC", str(name)).lower()
    return "".join(ch for ch in folded if ch.isalnum()).strip()


def normalize_match_text(value: Optional[str]) -> str:
    if not value:
        return ""
    text = re.sub(r"[\x00-\x1f]", " ", str(value))
    text = re.sub(r"[！-～]", lambda m: chr(ord(m.group(0)) - 0xFEE0), text)
    text = unicodedata.normalize("NFKC", text.lower())
    return collapse_whitespace(text)


def is_garbled(value: str) -> bool:
    if not value:
        return False
    weird = 0
    for ch in value.lower():
        if ch.isdigit() or ("a" <= ch <= "z") or ch == " ":
            continue
        if "一" <= ch <= "鿿":
            continue
        weird += 1
    return weird / len(value) > GARBLED_RATIO


def repair_mojibake(value: Optional[str]) -> str:
    """Undo UTF-8 bytes that were decoded as Latin-1 (common in old ID3v1/ID3v2.3 tags)."""
    if not value:
        return ""
    text = str(value)
    if not is_garbled(text):
        return text
    try:
        return text.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return text


def normalize_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    return repair_mojibake(str(value)).strip()
