from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..models import OnlineCandidate, PluginInfo

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProviderResult:
    name: str
    candidates: List[OnlineCandidate] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class PluginManager:
    """
    Keeps the registered providers and fans a lookup out to them.

    A provider's ``search_lyrics`` may return one candidate, a list of them or
    None. Every candidate that comes back is stamped with the name it was
    registered under.
    """

    def __init__(self, providers: Optional[Iterable[Any]] = None) -> None:
        self._providers: Dict[str, Any] = {}
        for provider in providers or []:
            self.register(getattr(provider, "name", ""), provider)

    def register(self, name: str, plugin: Any) -> bool:
        if not name or not callable(getattr(plugin, "search_lyrics", None)):
            logger.warning("Rejecting plugin %r: it has no name or search_lyrics()", plugin)
            return False
        if name in self._providers:
            logger.warning("Plugin %s already registered; replacing it", name)
        self._providers[name] = plugin
        return True

    def unregister(self, name: str) -> bool:
        return self._providers.pop(name, None) is not None

    def available(self) -> List[str]:
        return list(self._providers)

    def get(self, name: str) -> Optional[Any]:
        return self._providers.get(name)

    def info(self, name: str) -> Optional[PluginInfo]:
        plugin = self._providers.get(name)
        if plugin is None:
            return None
        get_info = getattr(plugin, "get_info", None)
        if callable(get_info):
            return get_info()
        return PluginInfo(name=name, description="", version="unknown")

    def describe(self) -> Dict[str, PluginInfo]:
        return {name: info for name in self._providers if (info := self.info(name)) is not None}

    def search_one(self, name: str, title: str, artist: str) -> List[OnlineCandidate]:
        """Synchronous lookup against one provider; failures are logged and yield no results."""
        provider = self._providers.get(name)
        if provider is None:
            logger.warning("Unknown provider %s", name)
            return []
        try:
            found = provider.search_lyrics(title, artist)
        except Exception as exc:
            logger.warning("Provider %s failed for %s / %s: %s", name, title, artist, exc)
            return []
        return _stamp(name, found)

    async def gather(
        self,
        title: str,
        artist: str,
        names: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
    ) -> List[ProviderResult]:
        """Query providers concurrently; one failing or timing out never cancels the others."""
        selected = [name for name in (names if names is not None else self.available()) if name in self._providers]
        if not selected:
            return []
        loop = asyncio.get_running_loop()
        # Released without joining, so a provider past its timeout keeps only its own thread.
        executor = ThreadPoolExecutor(max_workers=len(selected), thread_name_prefix="provider")

        async def _call(name: str) -> Any:
            future = loop.run_in_executor(executor, self._providers[name].search_lyrics, title, artist)
            if timeout:
                return await asyncio.wait_for(future, timeout)
            return await future

        try:
            outcomes = await asyncio.gather(*(_call(name) for name in selected), return_exceptions=True)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        results: List[ProviderResult] = []
        for name, outcome in zip(selected, outcomes):
            if isinstance(outcome, asyncio.TimeoutError):
                logger.warning("Provider %s timed out after %.1fs", name, timeout or 0)
                results.append(ProviderResult(name=name, error="timeout"))
            elif isinstance(outcome, BaseException):
                logger.warning("Provider %s failed: %s", name, outcome)
                results.append(ProviderResult(name=name, error=str(outcome) or outcome.__class__.__name__))
            else:
                results.append(ProviderResult(name=name, candidates=_stamp(name, outcome)))
        return results

    async def search_all(self, title: str, artist: str, timeout: Optional[float] = None) -> List[OnlineCandidate]:
        results = await self.gather(title, artist, timeout=timeout)
        return [candidate for result in results for candidate in result.candidates]


def _stamp(name: str, found: Any) -> List[OnlineCandidate]:
    if found is None:
        return []
    candidates = list(found) if isinstance(found, (list, tuple)) else [found]
    for candidate in candidates:
        candidate.source = name
    return candidates
