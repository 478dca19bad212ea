from __future__ import annotations

import hashlib
import logging
from typing import Optional

from ..models import OnlineCandidate, ProviderError
from .base import HttpProvider, ProviderKind, clean_lyrics, pick_best

logger = logging.getLogger(__name__)

SEARCH_URL = "https://m.music.migu.cn/migu/remoting/scr_search_tag"
LYRICS_URL = "https://music.migu.cn/v3/api/music/audioPlayer/getLyric"


class MiguProvider(HttpProvider):
    name = ProviderKind.MIGU.value
    display_name = "Migu Music"
    description = "Migu Music lyric search"
    referer = "https://m.music.migu.cn/"

    def search_lyrics(self, title: str, artist: str) -> Optional[OnlineCandidate]:
        keyword = f"{title} {artist}".strip()
        if not keyword:
            return None
        data = self._request(SEARCH_URL, params={"rows": 10, "type": 2, "keyword": keyword, "pgc": 1})
        songs = (data or {}).get("musics") or []
        picked = pick_best(songs, title, artist, lambda song: (song.get("songName"), song.get("singerName")))
        if not picked:
            logger.debug("Migu: no match for %s / %s", title, artist)
            return None
        song, _ = picked
        lyrics = self._lyrics_for(song.get("copyrightId"))
        if not lyrics:
            return None
        identity = f"title:{song.get('songName')};artists:{song.get('singerName')};album:{song.get('albumName')}"
        return OnlineCandidate(
            title=song.get("songName") or "",
            artist=song.get("singerName") or "",
            album=song.get("albumName") or None,
            album_id=str(song["albumId"]) if song.get("albumId") else None,
            source_id=song.get("copyrightId") or hashlib.md5(identity.encode("utf-8")).hexdigest(),
            cover_image=song.get("cover") or None,
            lyrics=lyrics,
            source=self.name,
        )

    def _lyrics_for(self, copyright_id: Optional[str]) -> Optional[str]:
        if not copyright_id:
            return None
        try:
            data = self._request(LYRICS_URL, params={"copyrightId": copyright_id})
        except ProviderError as exc:
            logger.debug("Migu lyric lookup failed for %s: %s", copyright_id, exc)
            return None
        return clean_lyrics((data or {}).get("lyric")) or None
