from __future__ import annotations

import logging
from importlib import metadata
from typing import Any, Callable, Dict, Iterable, List

from ..config import ProviderSettings
from .base import ProviderKind
from .kugou import KugouProvider
from .migu import MiguProvider
from .musicbrainz import MusicBrainzProvider
from .netease import NeteaseProvider
from .qq import QQMusicProvider

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "audio_library.providers"

FACTORIES: Dict[ProviderKind, Callable[..., Any]] = {
    ProviderKind.NETEASE: NeteaseProvider,
    ProviderKind.KUGOU: KugouProvider,
    ProviderKind.QQ: QQMusicProvider,
    ProviderKind.MIGU: MiguProvider,
    ProviderKind.MUSICBRAINZ: MusicBrainzProvider,
}


def build_providers(settings: ProviderSettings) -> List[Any]:
    """Instantiate every enabled built-in provider, then any installed via entry points."""
    providers: List[Any] = []
    for kind, factory in FACTORIES.items():
        if not settings.is_enabled(kind.value):
            logger.debug("Provider %s disabled", kind.value)
            continue
        providers.append(
            factory(
                credential=settings.credentials.get(kind.value),
                timeout=settings.timeout_seconds,
                useragent=settings.useragent,
            )
        )
    for plugin in _load_external():
        name = getattr(plugin, "name", None)
        if name and settings.is_enabled(name):
            providers.append(plugin)
    return providers


def _select_entry_points(group: str) -> Iterable[Any]:
    try:
        return metadata.entry_points().select(group=group)
    except Exception:  # pragma: no cover - depends on runtime packaging
        return []


def _load_external() -> List[Any]:
    plugins: List[Any] = []
    for ep in _select_entry_points(ENTRY_POINT_GROUP):
        try:
            loaded = ep.load()
            plugin = loaded() if callable(loaded) else loaded
            if plugin is not None:
                plugins.append(plugin)
        except Exception as exc:  # pragma: no cover - plugin errors
            logger.warning("Failed to load provider %s: %s", getattr(ep, "name", ep), exc)
    return plugins
