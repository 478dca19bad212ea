from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = [".mp3", ".wav", ".flac", ".m4a", ".ogg", ".aac", ".wma"]
PROVIDER_NAMES = ["netease", "kugou", "qq", "migu", "musicbrainz"]


class LibrarySettings(BaseModel):
    roots: List[Path] = Field(default_factory=list)
    include_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    exclude_patterns: List[str] = Field(default_factory=list)
    last_scan_at: Optional[str] = None

    @field_validator("roots", mode="before")
    @classmethod
    def _expand_roots(cls, values: Optional[List[str]]) -> List[Path]:
        return [Path(v).expanduser().resolve() for v in values or []]

    @field_validator("include_extensions", mode="before")
    @classmethod
    def _dot_extensions(cls, values: Optional[List[str]]) -> List[str]:
        if not values:
            return list(DEFAULT_EXTENSIONS)
        return [v.lower() if v.startswith(".") else f".{v.lower()}" for v in values]


class ProviderSettings(BaseModel):
    enabled: Dict[str, bool] = Field(default_factory=lambda: {name: True for name in PROVIDER_NAMES})
    credentials: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = 8.0
    authoritative: Optional[str] = "musicbrainz"
    useragent: str = "audio-library/0.1 (unknown@example.com)"

    def is_enabled(self, name: str) -> bool:
        return bool(self.enabled.get(name, True))


class SearchSettings(BaseModel):
    limit: int = 10
    cache_enabled: bool = True
    cache_min_hits: int = 5


class DatabaseSettings(BaseModel):
    path: Path = Path("./data/library.sqlite3")

    @field_validator("path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        if str(value) == ":memory:":
            return Path(":memory:")
        return Path(value).expanduser().resolve()


class Settings(BaseModel):
    library: LibrarySettings = Field(default_factory=LibrarySettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    search: SearchSettings = SearchSettings()
    database: DatabaseSettings = DatabaseSettings()

    @classmethod
    def load(cls, path: Path) -> "Settings":
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        return cls.model_validate(raw or {})


class ConfigStore:
    """Owns the settings file and the few values the library writes back to it."""

    def __init__(self, settings: Settings, path: Optional[Path] = None) -> None:
        self.settings = settings
        self.path = path
        self._lock = Lock()

    @classmethod
    def open(cls, path: Path) -> "ConfigStore":
        return cls(Settings.load(path), path)

    def record_last_scan(self, timestamp: str) -> None:
        with self._lock:
            self.settings.library.last_scan_at = timestamp
            self._save()

    def add_root(self, root: Path) -> bool:
        with self._lock:
            if root in self.settings.library.roots:
                return False
            self.settings.library.roots.append(root)
            self._save()
        return True

    def remove_root(self, root: Path) -> bool:
        with self._lock:
            if root not in self.settings.library.roots:
                return False
            self.settings.library.roots.remove(root)
            self._save()
        return True

    def _save(self) -> None:
        if self.path is None:
            return
        payload = self.settings.model_dump(mode="json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as fh:
            yaml.safe_dump(payload, fh, allow_unicode=True, sort_keys=False)
        logger.debug("Saved settings to %s", self.path)


def find_config(explicit_path: Optional[Path]) -> Path:
    if explicit_path:
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    raise FileNotFoundError("Could not find config.yaml - pass --config explicitly.")
