from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .cache import CandidateCache, query_key
from .config import ProviderSettings, SearchSettings
from .core.similarity import composite_score
from .core.text import normalize_match_text
from .database import Database
from .models import MatchReference, OnlineCandidate, SearchOutcome, SearchStatus
from .providers.manager import PluginManager
from .providers.registry import build_providers

logger = logging.getLogger(__name__)


class OnlineAggregator:
    """
    Fans a title/artist lookup out to the registered providers and merges the answers.

    Each provider runs in a worker thread with its own timeout; a provider that
    raises or times out contributes nothing and is listed in
    ``SearchOutcome.failed_providers``. Results are rescored against the query,
    deduplicated and optionally written to the candidate cache.
    """

    def __init__(
        self,
        manager: PluginManager,
        cache: Optional[CandidateCache] = None,
        search: Optional[SearchSettings] = None,
        timeout: float = 8.0,
        authoritative: Optional[str] = "musicbrainz",
    ) -> None:
        self.manager = manager
        self.cache = cache
        self.settings = search or SearchSettings()
        self.timeout = timeout
        self.authoritative = authoritative

    @classmethod
    def from_settings(
        cls,
        providers: ProviderSettings,
        search: SearchSettings,
        db: Optional[Database] = None,
    ) -> "OnlineAggregator":
        manager = PluginManager(build_providers(providers))
        cache = CandidateCache(db) if db is not None else None
        return cls(
            manager,
            cache=cache,
            search=search,
            timeout=providers.timeout_seconds,
            authoritative=providers.authoritative,
        )

    async def search(
        self,
        title: str,
        artist: str,
        duration: Optional[float] = None,
        year: Optional[int] = None,
        plugin: Optional[str] = None,
        limit: Optional[int] = None,
        use_cache: bool = True,
    ) -> SearchOutcome:
        limit = limit or self.settings.limit
        caching = use_cache and self.settings.cache_enabled and self.cache is not None
        key = query_key(title, artist)
        cached: List[OnlineCandidate] = []
        if caching:
            cached = self.cache.lookup(key)
            if len(cached) > self.settings.cache_min_hits:
                logger.debug("Serving %s from cache (%d hits)", key, len(cached))
                return SearchOutcome(status=SearchStatus.OK, candidates=cached[:limit], source="cache")

        if plugin:
            names = [plugin] if self.manager.get(plugin) is not None else []
        else:
            names = self.manager.available()
        if not names:
            return SearchOutcome(status=SearchStatus.EMPTY, reason="no providers")

        results = await self.manager.gather(title, artist, names=names, timeout=self.timeout)
        failed = [result.name for result in results if result.failed]
        online = [candidate for result in results for candidate in result.candidates]
        if failed:
            logger.info("Providers failed for %s / %s: %s", title, artist, ", ".join(failed))

        pool = online + cached
        if not pool:
            reason = "all providers failed" if len(failed) == len(names) else "no matches"
            return SearchOutcome(status=SearchStatus.EMPTY, reason=reason, failed_providers=failed)

        reference = MatchReference(title=title, artist=artist, duration=duration, year=year)
        ranked = rank_candidates(pool, reference, self.authoritative)
        if caching and online:
            self.cache.store(key, ranked)
        return SearchOutcome(status=SearchStatus.OK, candidates=ranked[:limit], failed_providers=failed)

    async def search_lyrics(
        self, title: str, artist: str, plugin: Optional[str] = None
    ) -> Tuple[Optional[OnlineCandidate], List[OnlineCandidate]]:
        """Best candidate carrying lyrics, plus every candidate that has them, best first."""
        outcome = await self.search(title, artist, plugin=plugin)
        with_lyrics = [candidate for candidate in outcome.candidates if candidate.lyrics]
        return (with_lyrics[0] if with_lyrics else None), with_lyrics

    async def best_lyrics(self, title: str, artist: str, plugin: Optional[str] = None) -> Optional[OnlineCandidate]:
        best, _ = await self.search_lyrics(title, artist, plugin=plugin)
        return best


def rank_candidates(
    candidates: List[OnlineCandidate],
    reference: MatchReference,
    authoritative: Optional[str] = None,
) -> List[OnlineCandidate]:
    """Score against ``reference``, sort best first and fold duplicates into the survivor."""
    for candidate in candidates:
        candidate.score = composite_score(candidate, reference, authoritative)
    ordered = sorted(candidates, key=lambda c: c.score, reverse=True)
    kept: Dict[Tuple[str, str, str], OnlineCandidate] = {}
    for candidate in ordered:
        identity = (
            normalize_match_text(candidate.title),
            normalize_match_text(candidate.artist),
            normalize_match_text(candidate.album),
        )
        survivor = kept.get(identity)
        if survivor is None:
            kept[identity] = candidate
        else:
            survivor.merge_missing(candidate)
    return list(kept.values())
