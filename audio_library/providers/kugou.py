from __future__ import annotations

import base64
import binascii
import logging
import math
import random
import string
import time
from typing import Optional

from ..core.similarity import similarity
from ..models import OnlineCandidate, ProviderError
from .base import HttpProvider, ProviderKind, clean_lyrics

logger = logging.getLogger(__name__)

SEARCH_URL = "http://mobilecdn.kugou.com/api/v3/search/song"
CANDIDATES_URL = "https://krcs.kugou.com/search"
DOWNLOAD_URL = "http://lyrics.kugou.com/download"
COVER_URL = "https://wwwapi.kugou.com/yy/index.php"
MIN_RATIO = 0.2
MAX_ATTEMPTS = 3


class KugouProvider(HttpProvider):
    name = ProviderKind.KUGOU.value
    display_name = "Kugou Music"
    description = "Kugou lyric search"

    def search_lyrics(self, title: str, artist: str) -> Optional[OnlineCandidate]:
        keyword = " ".join(part for part in (title, artist) if part and part.strip())
        if not keyword:
            return None
        data = self._request(
            SEARCH_URL,
            params={"format": "json", "keyword": keyword, "page": 1, "pagesize": 10, "showtype": 1},
        )
        songs = ((data or {}).get("data") or {}).get("info") or []
        ranked = []
        for song in songs:
            ratio = self._ratio(title, artist, song.get("songname") or "", song.get("singername") or "")
            if ratio >= MIN_RATIO:
                ranked.append((ratio, song))
        ranked.sort(key=lambda item: item[0], reverse=True)
        for _, song in ranked[:MAX_ATTEMPTS]:
            lyrics = self._lyrics_for(song.get("hash"))
            if not lyrics:
                continue
            return OnlineCandidate(
                title=song.get("songname") or "",
                artist=song.get("singername") or "",
                album=song.get("album_name") or None,
                album_id=str(song["album_id"]) if song.get("album_id") else None,
                source_id=song.get("hash"),
                duration=float(song["duration"]) if song.get("duration") else None,
                cover_image=self._cover_for(song.get("hash"), song.get("album_id")),
                lyrics=lyrics,
                source=self.name,
            )
        return None

    @staticmethod
    def _ratio(title: str, artist: str, song_title: str, song_artist: str) -> float:
        title_ratio = similarity(title.lower(), song_title.lower())
        artist_ratio = similarity((artist or "").lower(), song_artist.lower())
        return math.sqrt(title_ratio * (artist_ratio + 1) / 2)

    def _lyrics_for(self, song_hash: Optional[str]) -> Optional[str]:
        if not song_hash:
            return None
        found = self._request(
            CANDIDATES_URL,
            params={"ver": 1, "man": "yes", "client": "mobi", "keyword": "", "duration": "", "hash": song_hash},
        )
        candidates = (found or {}).get("candidates") or []
        if not candidates:
            return None
        first = candidates[0]
        payload = self._request(
            DOWNLOAD_URL,
            params={
                "ver": 1,
                "client": "pc",
                "id": first.get("id"),
                "accesskey": first.get("accesskey"),
                "fmt": "lrc",
                "charset": "utf8",
            },
        )
        content = (payload or {}).get("content")
        if not content:
            return None
        try:
            return clean_lyrics(base64.b64decode(content).decode("utf-8", errors="replace")) or None
        except (binascii.Error, ValueError):
            logger.debug("Kugou returned undecodable lyrics for %s", song_hash)
            return None

    def _cover_for(self, song_hash: Optional[str], album_id: Optional[str]) -> Optional[str]:
        if not song_hash:
            return None
        alphabet = string.ascii_lowercase + string.digits
        try:
            data = self._request(
                COVER_URL,
                params={
                    "r": "play/getdata",
                    "hash": song_hash,
                    "dfid": "".join(random.choices(alphabet, k=23)),
                    "mid": "".join(random.choices(alphabet, k=23)),
                    "album_id": album_id or "",
                    "_": int(time.time() * 1000),
                },
            )
        except ProviderError as exc:
            logger.debug("Kugou cover lookup failed: %s", exc)
            return None
        return ((data or {}).get("data") or {}).get("img") or None
