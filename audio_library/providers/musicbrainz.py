from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import musicbrainzngs

from ..models import OnlineCandidate, PluginInfo, ProviderError
from .base import ProviderKind, pick_best

logger = logging.getLogger(__name__)

COVER_ART_URL = "https://coverartarchive.org/release/{release_id}/front"


class MusicBrainzProvider:
    """Metadata-only lookups; MusicBrainz carries no lyrics but is the most reliable tag source."""

    name = ProviderKind.MUSICBRAINZ.value
    display_name = "MusicBrainz"
    description = "MusicBrainz recording search"
    version = "1.0.0"

    def __init__(self, credential: Optional[str] = None, timeout: float = 10.0, useragent: str = "") -> None:
        self.credential = credential
        self.timeout = timeout
        app, _, rest = (useragent or "audio-library/0.1").partition("/")
        app_version, _, contact = rest.partition(" ")
        musicbrainzngs.set_useragent(
            app or "audio-library",
            app_version or "0.1",
            contact=contact.strip(" ()") or None,
        )

    def get_info(self) -> PluginInfo:
        return PluginInfo(name=self.display_name, description=self.description, version=self.version)

    def search_lyrics(self, title: str, artist: str) -> Optional[OnlineCandidate]:
        if not title:
            return None
        query: Dict[str, Any] = {"recording": title, "limit": 10}
        if artist:
            query["artist"] = artist
        try:
            response = musicbrainzngs.search_recordings(**query)
        except musicbrainzngs.WebServiceError as exc:
            raise ProviderError(f"{self.name}: {exc}") from exc
        recordings = response.get("recording-list", [])
        picked = pick_best(recordings, title, artist, lambda rec: (rec.get("title"), rec.get("artist-credit-phrase")))
        if not picked:
            logger.debug("MusicBrainz: no match for %s / %s", title, artist)
            return None
        recording, _ = picked
        release = _first_release(recording)
        release_id = release.get("id") if release else None
        length = recording.get("length")
        return OnlineCandidate(
            title=recording.get("title") or "",
            artist=recording.get("artist-credit-phrase") or "",
            artist_aliases=_credit_names(recording),
            album=release.get("title") if release else None,
            album_id=release_id,
            source_id=recording.get("id"),
            year=_year(release.get("date") if release else None),
            duration=int(length) / 1000 if length else None,
            cover_image=COVER_ART_URL.format(release_id=release_id) if release_id else None,
            source=self.name,
        )


def _first_release(recording: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    releases = recording.get("release-list") or []
    return releases[0] if releases else None


def _credit_names(recording: Dict[str, Any]) -> List[str]:
    names = []
    for credit in recording.get("artist-credit") or []:
        if isinstance(credit, dict):
            name = (credit.get("artist") or {}).get("name") or credit.get("name")
            if name:
                names.append(name)
    return names


def _year(date: Optional[str]) -> Optional[int]:
    if date and len(date) >= 4 and date[:4].isdigit():
        return int(date[:4])
    return None
