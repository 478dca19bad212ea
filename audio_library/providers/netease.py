from __future__ import annotations

import logging
from typing import Any, Optional

from ..models import OnlineCandidate
from .base import HttpProvider, ProviderKind, clean_lyrics, pick_best

logger = logging.getLogger(__name__)

SEARCH_URL = "https://music.163.com/api/search/get/web"
LYRICS_URL = "https://music.163.com/api/song/lyric"


class NeteaseProvider(HttpProvider):
    name = ProviderKind.NETEASE.value
    display_name = "NetEase Cloud Music"
    description = "NetEase Cloud Music lyric search"
    referer = "https://music.163.com/"

    def search_lyrics(self, title: str, artist: str) -> Optional[OnlineCandidate]:
        keyword = f"{title} {artist}".strip()
        if not keyword:
            return None
        data = self._request(
            SEARCH_URL,
            form={"s": keyword, "type": 1, "offset": 0, "total": "true", "limit": 10},
        )
        songs = ((data or {}).get("result") or {}).get("songs") or []
        picked = pick_best(songs, title, artist, lambda song: (song.get("name"), _artists(song)))
        if not picked:
            logger.debug("NetEase: no match for %s / %s", title, artist)
            return None
        song, _ = picked
        lyric_data = self._request(LYRICS_URL, params={"id": song.get("id"), "lv": -1, "tv": -1})
        lyrics = ((lyric_data or {}).get("lrc") or {}).get("lyric") or ((lyric_data or {}).get("tlyric") or {}).get("lyric")
        lyrics = clean_lyrics(lyrics)
        if not lyrics:
            return None
        album = song.get("album") or {}
        return OnlineCandidate(
            title=song.get("name") or "",
            artist=_artists(song),
            artist_aliases=[a.get("name") for a in song.get("artists") or [] if a.get("name")],
            album=album.get("name"),
            album_id=str(album["id"]) if album.get("id") is not None else None,
            source_id=str(song.get("id")),
            duration=(song.get("duration") or 0) / 1000 or None,
            cover_image=album.get("picUrl"),
            lyrics=lyrics,
            source=self.name,
        )


def _artists(song: dict[str, Any]) -> str:
    return ", ".join(a.get("name", "") for a in song.get("artists") or [] if a.get("name"))
