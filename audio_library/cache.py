from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, Iterable, List, Optional

from .core.text import normalize_match_text
from .database import Database, Page, now_iso
from .models import OnlineCandidate

logger = logging.getLogger(__name__)


def query_key(title: Optional[str], artist: Optional[str]) -> str:
    return f"{normalize_match_text(title)}|{normalize_match_text(artist)}"


def candidate_key(candidate: OnlineCandidate) -> str:
    if candidate.source_id:
        basis = f"{candidate.source_id}|{candidate.album_id or ''}"
    else:
        basis = "|".join(
            normalize_match_text(value) for value in (candidate.title, candidate.artist, candidate.album)
        )
    return hashlib.md5(basis.encode("utf-8")).hexdigest()


def row_key(query: str, candidate: OnlineCandidate) -> str:
    """One cached row per query and candidate; the same song may answer several queries."""
    return hashlib.md5(f"{query}|{candidate_key(candidate)}".encode("utf-8")).hexdigest()


class CandidateCache:
    """Online search results kept in the ``online_music`` table, looked up by query."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def store(self, query: str, candidates: Iterable[OnlineCandidate]) -> int:
        stamp = now_iso()
        stored = 0
        with self.db.transaction():
            for candidate in candidates:
                stored += self.db.upsert(
                    "online_music",
                    {
                        "id": row_key(query, candidate),
                        "query": query,
                        "source": candidate.source,
                        "source_id": candidate.source_id,
                        "album_id": candidate.album_id,
                        "score": candidate.score,
                        "title": candidate.title or "",
                        "artist": candidate.artist or "",
                        "artist_aliases": list(candidate.artist_aliases),
                        "album": candidate.album,
                        "year": candidate.year,
                        "duration": candidate.duration,
                        "cover_image": candidate.cover_image,
                        "lyrics": candidate.lyrics,
                        "created_at": stamp,
                        "updated_at": stamp,
                    },
                )
        logger.debug("Cached %d candidate(s) for %s", stored, query)
        return stored

    def lookup(self, query: str) -> List[OnlineCandidate]:
        rows = self.db.query_all("online_music", {"query": query}, sort="score", order="DESC")
        return [self._to_candidate(row) for row in rows]

    def page(self, query: Optional[str] = None, page: int = 1, page_size: int = 20) -> Page:
        filters = {"query": query} if query else None
        return self.db.page("online_music", page=page, page_size=page_size, sort="score", order="DESC", filters=filters)

    @staticmethod
    def _to_candidate(row: Dict[str, Any]) -> OnlineCandidate:
        return OnlineCandidate(
            title=row.get("title") or "",
            artist=row.get("artist") or "",
            source=row.get("source") or "cache",
            artist_aliases=list(row.get("artist_aliases") or []),
            album=row.get("album"),
            album_id=row.get("album_id"),
            source_id=row.get("source_id"),
            year=row.get("year"),
            duration=row.get("duration"),
            cover_image=row.get("cover_image"),
            lyrics=row.get("lyrics"),
            score=float(row.get("score") or 0.0),
        )
