from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Optional

from ..models import OnlineCandidate
from .base import HttpProvider, ProviderKind, clean_lyrics, pick_best

logger = logging.getLogger(__name__)

SEARCH_URL = "https://c.y.qq.com/soso/fcgi-bin/search_for_qq_cp"
LYRICS_URL = "https://c.y.qq.com/lyric/fcgi-bin/fcg_query_lyric_new.fcg"
JSONP = re.compile(r"^\s*\w+\((.*)\)\s*;?\s*$", re.DOTALL)


class QQMusicProvider(HttpProvider):
    name = ProviderKind.QQ.value
    display_name = "QQ Music"
    description = "QQ Music lyric search"
    referer = "https://y.qq.com/"

    def search_lyrics(self, title: str, artist: str) -> Optional[OnlineCandidate]:
        keyword = f"{title} {artist}".strip()
        if not keyword:
            return None
        data = self._request(
            SEARCH_URL,
            params={
                "_": int(time.time() * 1000),
                "g_tk": 5381,
                "uin": 0,
                "format": "json",
                "inCharset": "utf-8",
                "outCharset": "utf-8",
                "notice": 0,
                "platform": "h5",
                "needNewCode": 1,
                "w": keyword,
                "zhidaqu": 1,
                "catZhida": 1,
                "t": 0,
                "flag": 1,
                "ie": "utf-8",
                "sem": 1,
                "aggr": 0,
                "perpage": 10,
                "n": 10,
                "p": 1,
                "remoteplace": "txt.mqq.all",
            },
        )
        songs = (((data or {}).get("data") or {}).get("song") or {}).get("list") or []
        picked = pick_best(songs, title, artist, lambda song: (song.get("songname"), _singers(song)))
        if not picked:
            logger.debug("QQ Music: no match for %s / %s", title, artist)
            return None
        song, _ = picked
        lyrics = self._lyrics_for(song.get("songmid"))
        if not lyrics:
            return None
        album_mid = song.get("albummid")
        return OnlineCandidate(
            title=song.get("songname") or "",
            artist=_singers(song),
            artist_aliases=[s.get("name") for s in song.get("singer") or [] if s.get("name")],
            album=song.get("albumname") or None,
            album_id=album_mid or None,
            source_id=song.get("songmid"),
            duration=float(song["interval"]) if song.get("interval") else None,
            cover_image=f"https://y.gtimg.cn/music/photo_new/T002R300x300M000{album_mid}.jpg" if album_mid else None,
            lyrics=lyrics,
            source=self.name,
        )

    def _lyrics_for(self, songmid: Optional[str]) -> Optional[str]:
        if not songmid:
            return None
        text = self._request_text(
            LYRICS_URL,
            params={
                "_": int(time.time() * 1000),
                "g_tk": 5381,
                "uin": 0,
                "format": "json",
                "inCharset": "utf-8",
                "outCharset": "utf-8",
                "notice": 0,
                "platform": "yqq.json",
                "needNewCode": 0,
                "songmid": songmid,
                "hostUin": 0,
                "loginUin": 0,
                "songtype": 0,
                "nobase64": 1,
                "callback": "callback",
            },
        )
        payload = parse_jsonp(text)
        if not payload:
            logger.debug("QQ Music returned malformed lyric payload for %s", songmid)
            return None
        return clean_lyrics(payload.get("lyric")) or None


def parse_jsonp(text: str) -> Optional[dict[str, Any]]:
    match = JSONP.match(text or "")
    body = match.group(1) if match else text
    try:
        decoded = json.loads(body)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _singers(song: dict[str, Any]) -> str:
    return ", ".join(s.get("name", "") for s in song.get("singer") or [] if s.get("name"))
