from __future__ import annotations

import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Protocol, TypeVar

from ..core.similarity import similarity
from ..models import OnlineCandidate, PluginInfo, ProviderError

logger = logging.getLogger(__name__)

BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/116.0.0.0 Safari/537.36"
MATCH_THRESHOLD = 0.3
BLANK_LINES = re.compile(r"\n\s*\n")

T = TypeVar("T")


class ProviderKind(str, Enum):
    NETEASE = "netease"
    KUGOU = "kugou"
    QQ = "qq"
    MIGU = "migu"
    MUSICBRAINZ = "musicbrainz"


class LyricsProvider(Protocol):
    name: str

    def search_lyrics(self, title: str, artist: str) -> Optional[OnlineCandidate]: ...

    def get_info(self) -> PluginInfo: ...


def match_score(title: str, artist: str, found_title: Optional[str], found_artist: Optional[str]) -> float:
    """Provider-side pre-filter: 0.6 title + 0.4 artist similarity."""
    score = 0.0
    if title and found_title:
        score += similarity(found_title, title) * 0.6
    if artist and found_artist:
        score += similarity(found_artist, artist) * 0.4
    return score


def pick_best(
    items: Iterable[T],
    title: str,
    artist: str,
    fields: Callable[[T], tuple[Optional[str], Optional[str]]],
    threshold: float = MATCH_THRESHOLD,
) -> Optional[tuple[T, float]]:
    best: Optional[T] = None
    best_score = 0.0
    for item in items:
        found_title, found_artist = fields(item)
        score = match_score(title, artist, found_title, found_artist)
        if score > best_score:
            best, best_score = item, score
    if best is None or best_score <= threshold:
        return None
    return best, best_score


def clean_lyrics(text: Optional[str]) -> str:
    if not text:
        return ""
    return BLANK_LINES.sub("\n", text).strip()


class HttpProvider:
    """Shared urllib transport for the JSON-speaking lyric sites."""

    name = ""
    display_name = ""
    description = ""
    version = "1.0.0"
    referer: Optional[str] = None

    def __init__(self, credential: Optional[str] = None, timeout: float = 10.0, useragent: str = BROWSER_UA) -> None:
        self.credential = credential
        self.timeout = timeout
        self.useragent = useragent

    def get_info(self) -> PluginInfo:
        return PluginInfo(name=self.display_name or self.name, description=self.description, version=self.version)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": self.useragent,
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
        }
        if self.referer:
            headers["Referer"] = self.referer
        if self.credential:
            headers["Cookie"] = self.credential
        return headers

    def _request_text(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        form: Optional[Mapping[str, Any]] = None,
    ) -> str:
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        data = None
        headers = self._headers()
        if form is not None:
            data = urllib.parse.urlencode(form).encode("utf-8")
            headers["Content-Type"] = "application/x-www-form-urlencoded"
        req = urllib.request.Request(url, data=data, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                charset = resp.headers.get_content_charset() or "utf-8"
                return resp.read().decode(charset, errors="replace")
        except urllib.error.HTTPError as exc:
            logger.debug("%s HTTP error %s for %s: %s", self.name, exc.code, url, exc)
            raise ProviderError(f"{self.name}: HTTP {exc.code}") from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            logger.debug("%s request failed for %s: %s", self.name, url, exc)
            raise ProviderError(f"{self.name}: {exc}") from exc

    def _request(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        form: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        text = self._request_text(url, params=params, form=form)
        try:
            return json.loads(text)
        except ValueError as exc:
            raise ProviderError(f"{self.name}: invalid JSON response") from exc
