from .base import LyricsProvider, ProviderKind
from .manager import PluginManager, ProviderResult
from .registry import build_providers

__all__ = ["LyricsProvider", "PluginManager", "ProviderKind", "ProviderResult", "build_providers"]
