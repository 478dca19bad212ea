from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import mutagen
from mutagen import MutagenError
from mutagen.flac import FLAC
from mutagen.id3 import ID3, ID3NoHeaderError, TALB, TCON, TDRC, TIT2, TPE1, TPE2, TPOS, TRCK, USLT
from mutagen.mp4 import MP4

from .models import ExtractionError, RawMetadata, parse_int

logger = logging.getLogger(__name__)

EASY_KEYS = {
    "title": ("title",),
    "artist": ("artist",),
    "album": ("album",),
    "album_artist": ("albumartist", "album artist", "performer"),
    "genre": ("genre",),
    "year": ("date", "year", "originaldate"),
    "track_number": ("tracknumber",),
    "disc_number": ("discnumber",),
}


class TagReader:
    """Reads text tags, stream info, cover art and lyrics with mutagen."""

    def extract(self, path: Path) -> RawMetadata:
        try:
            audio = mutagen.File(path)
            easy = mutagen.File(path, easy=True)
        except (MutagenError, OSError) as exc:
            raise ExtractionError(f"{path}: {exc}") from exc
        if audio is None:
            raise ExtractionError(f"{path}: unsupported or unrecognised container")

        meta = RawMetadata()
        self._read_text(meta, easy if easy is not None else audio)
        info = getattr(audio, "info", None)
        if info is not None:
            length = getattr(info, "length", None)
            meta.duration = round(float(length), 3) if length else None
            meta.bitrate = getattr(info, "bitrate", None) or None
            meta.sample_rate = getattr(info, "sample_rate", None) or None
            meta.channels = getattr(info, "channels", None) or None
        try:
            cover = self._read_cover(audio)
            if cover:
                meta.cover_image, meta.cover_mime = cover
            meta.lyrics = self._read_lyrics(audio)
        except (MutagenError, KeyError, ValueError, TypeError) as exc:  # pragma: no cover - depends on local files
            logger.debug("Failed to read artwork/lyrics for %s: %s", path, exc)
        return meta

    def _read_text(self, meta: RawMetadata, audio: Any) -> None:
        tags = getattr(audio, "tags", None)
        if not tags:
            return
        for attr, keys in EASY_KEYS.items():
            value = None
            for key in keys:
                value = self._first(tags, key)
                if value:
                    break
            if not value:
                continue
            if attr in {"year", "track_number", "disc_number"}:
                setattr(meta, attr, parse_int(value))
            else:
                setattr(meta, attr, value)

    @staticmethod
    def _first(tags: Any, key: str) -> Optional[str]:
        try:
            value = tags.get(key)
        except (KeyError, ValueError, TypeError):
            return None
        if not value:
            return None
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return str(value).strip() or None

    @staticmethod
    def _read_cover(audio: Any) -> Optional[tuple[bytes, str]]:
        pictures = getattr(audio, "pictures", None)
        if pictures:
            return pictures[0].data, pictures[0].mime or "image/jpeg"
        tags = getattr(audio, "tags", None)
        if tags is None:
            return None
        if isinstance(tags, ID3):
            frames = tags.getall("APIC")
            if frames:
                return frames[0].data, frames[0].mime or "image/jpeg"
            return None
        if isinstance(audio, MP4):
            covers = tags.get("covr")
            if covers:
                cover = covers[0]
                mime = "image/png" if getattr(cover, "imageformat", None) == cover.FORMAT_PNG else "image/jpeg"
                return bytes(cover), mime
        return None

    @staticmethod
    def _read_lyrics(audio: Any) -> Optional[str]:
        tags = getattr(audio, "tags", None)
        if tags is None:
            return None
        if isinstance(tags, ID3):
            frames = tags.getall("USLT")
            return frames[0].text if frames else None
        if isinstance(audio, MP4):
            value = tags.get("\xa9lyr")
            return str(value[0]) if value else None
        for key in ("LYRICS", "UNSYNCEDLYRICS", "lyrics"):
            try:
                value = tags.get(key)
            except (KeyError, ValueError, TypeError):
                continue
            if value:
                return str(value[0]) if isinstance(value, list) else str(value)
        return None


class TagWriter:
    """Writes text tags back to mp3, flac and m4a files."""

    SUPPORTED_EXTS = {".mp3", ".flac", ".m4a"}

    def write(self, path: Path, fields: Mapping[str, Any]) -> bool:
        handlers = {
            ".mp3": self._apply_mp3,
            ".flac": self._apply_flac,
            ".m4a": self._apply_mp4,
        }
        handler = handlers.get(path.suffix.lower())
        if not handler:
            logger.debug("Skipping unsupported extension %s", path)
            return False
        try:
            handler(path, self._stringify(fields))
        except (MutagenError, OSError) as exc:
            logger.warning("Failed to write tags for %s: %s", path, exc)
            return False
        return True

    def _apply_mp3(self, path: Path, fields: Dict[str, str]) -> None:
        try:
            tags = ID3(path)
        except ID3NoHeaderError:
            tags = ID3()
        self._set_frame(tags, TIT2, fields.get("title"))
        self._set_frame(tags, TALB, fields.get("album"))
        self._set_frame(tags, TPE1, fields.get("artist"))
        self._set_frame(tags, TPE2, fields.get("album_artist"))
        self._set_frame(tags, TCON, fields.get("genre"))
        self._set_frame(tags, TDRC, fields.get("year"))
        self._set_frame(tags, TRCK, fields.get("track_number"))
        self._set_frame(tags, TPOS, fields.get("disc_number"))
        lyrics = fields.get("lyrics")
        if lyrics:
            tags.setall("USLT", [USLT(encoding=3, lang="eng", desc="", text=lyrics)])
        tags.save(path)

    def _apply_flac(self, path: Path, fields: Dict[str, str]) -> None:
        audio = FLAC(path)
        mapping = {
            "TITLE": fields.get("title"),
            "ARTIST": fields.get("artist"),
            "ALBUM": fields.get("album"),
            "ALBUMARTIST": fields.get("album_artist"),
            "GENRE": fields.get("genre"),
            "DATE": fields.get("year"),
            "TRACKNUMBER": fields.get("track_number"),
            "DISCNUMBER": fields.get("disc_number"),
            "LYRICS": fields.get("lyrics"),
        }
        for key, value in mapping.items():
            if value:
                audio[key] = value
        audio.save()

    def _apply_mp4(self, path: Path, fields: Dict[str, str]) -> None:
        audio = MP4(path)
        mapping = {
            "\xa9nam": fields.get("title"),
            "\xa9alb": fields.get("album"),
            "\xa9ART": fields.get("artist"),
            "aART": fields.get("album_artist"),
            "\xa9gen": fields.get("genre"),
            "\xa9day": fields.get("year"),
            "\xa9lyr": fields.get("lyrics"),
        }
        for key, value in mapping.items():
            if value:
                audio[key] = [value]
        track_number = fields.get("track_number")
        disc_number = fields.get("disc_number")
        if track_number and track_number.isdigit():
            audio["trkn"] = [(int(track_number), 0)]
        if disc_number and disc_number.isdigit():
            audio["disk"] = [(int(disc_number), 0)]
        audio.save()

    def _set_frame(self, tags: ID3, frame_cls, value: str | None) -> None:
        if value:
            tags.setall(frame_cls.__name__, [frame_cls(encoding=3, text=value)])

    @staticmethod
    def _stringify(fields: Mapping[str, Any]) -> Dict[str, str]:
        result: Dict[str, str] = {}
        for key, value in (fields or {}).items():
            if value is None:
                continue
            result[str(key)] = value if isinstance(value, str) else str(value)
        return result
