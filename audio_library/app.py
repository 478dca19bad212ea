from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .aggregator import OnlineAggregator
from .config import ConfigStore, Settings
from .daemon import LibraryWatcher
from .database import Database
from .entity_index import EntityIndex
from .indexer import IndexResult, TrackIndexer
from .models import PluginInfo, SearchOutcome
from .scanner import LibraryScanner, ScanController
from .store import LibraryStore
from .tagging import TagReader, TagWriter

logger = logging.getLogger(__name__)


@dataclass
class AudioLibraryApp:
    config: ConfigStore
    db: Database
    store: LibraryStore
    entities: EntityIndex
    scanner: LibraryScanner
    indexer: TrackIndexer
    scans: ScanController
    aggregator: OnlineAggregator
    writer: TagWriter
    _watcher: LibraryWatcher | None = None

    @classmethod
    def create(
        cls,
        config: ConfigStore | Settings,
        *,
        reader: Optional[TagReader] = None,
        aggregator: Optional[OnlineAggregator] = None,
    ) -> "AudioLibraryApp":
        if isinstance(config, Settings):
            config = ConfigStore(config)
        settings = config.settings
        db = Database(settings.database.path)
        store = LibraryStore(db)
        entities = EntityIndex(db)
        scanner = LibraryScanner(settings.library)
        indexer = TrackIndexer(store, entities, reader=reader)
        scans = ScanController(scanner, indexer, store, config=config)
        if aggregator is None:
            aggregator = OnlineAggregator.from_settings(settings.providers, settings.search, db=db)
        return cls(
            config=config,
            db=db,
            store=store,
            entities=entities,
            scanner=scanner,
            indexer=indexer,
            scans=scans,
            aggregator=aggregator,
            writer=TagWriter(),
        )

    @property
    def settings(self) -> Settings:
        return self.config.settings

    # --- scanning --------------------------------------------------------

    def start_scan(self, full: bool = False) -> bool:
        """Start a background scan; raises ``ScanInProgress`` when one is already running."""
        self.scans.start(full=full)
        return True

    def get_scan_progress(self) -> Dict[str, Any]:
        return self.scans.snapshot().to_record()

    def stop_scan(self) -> bool:
        return self.scans.stop()

    def wait_for_scan(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self.scans.wait(timeout).to_record()

    def get_watcher(self) -> LibraryWatcher:
        if self._watcher is None:
            self._watcher = LibraryWatcher(self.scanner, self.indexer)
        return self._watcher

    # --- tracks ----------------------------------------------------------

    def list_tracks(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[str] = None,
        order: str = "ASC",
        page: int = 1,
        page_size: int = 20,
    ) -> Dict[str, Any]:
        return self.store.list_tracks(filters, sort=sort, order=order, page=page, page_size=page_size).to_record()

    def random_tracks(self, filters: Optional[Mapping[str, Any]] = None, page_size: int = 20) -> Dict[str, Any]:
        return self.store.random_tracks(page_size=page_size, filters=filters).to_record()

    def list_artists(self, filters: Optional[Mapping[str, Any]] = None, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        return self.store.list_artists(filters, page=page, page_size=page_size).to_record()

    def list_albums(self, filters: Optional[Mapping[str, Any]] = None, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        return self.store.list_albums(filters, page=page, page_size=page_size).to_record()

    def record_play(self, track_id: str) -> bool:
        return self.store.record_play(track_id)

    def upsert_favorite(self, track_id: str, favorite: bool) -> bool:
        updated = self.store.set_favorite(track_id, favorite)
        if not updated:
            logger.warning("No track with id %s", track_id)
        return updated

    def write_tags(self, track_id: str, fields: Mapping[str, Any]) -> Optional[IndexResult]:
        """Write ``fields`` into the file's tags and re-index it; None when nothing was written."""
        track = self.store.get_track(track_id)
        if track is None:
            logger.warning("No track with id %s", track_id)
            return None
        path = Path(track.path)
        if not self.writer.write(path, fields):
            return None
        return self.indexer.index_file(path)

    def stats(self) -> Dict[str, Any]:
        stats = self.store.stats()
        stats["libraries"] = len(self.settings.library.roots)
        stats["last_scan_at"] = self.settings.library.last_scan_at
        return stats

    # --- online ----------------------------------------------------------

    def search_online(
        self,
        title: str,
        artist: str,
        plugin: Optional[str] = None,
        duration: Optional[float] = None,
        year: Optional[int] = None,
    ) -> SearchOutcome:
        return asyncio.run(self.aggregator.search(title, artist, duration=duration, year=year, plugin=plugin))

    def list_plugins(self) -> Dict[str, PluginInfo]:
        return self.aggregator.manager.describe()

    def search_lyrics(self, title: str, artist: str, plugin: Optional[str] = None) -> Dict[str, Any]:
        best, results = asyncio.run(self.aggregator.search_lyrics(title, artist, plugin=plugin))
        return {
            "best": best.to_record() if best else None,
            "results": [candidate.to_record() for candidate in results],
        }

    # --- library roots ---------------------------------------------------

    def add_library_path(self, path: Path | str) -> bool:
        root = Path(path).expanduser().resolve()
        if not root.is_dir():
            raise FileNotFoundError(f"Library path {root} does not exist or is not a directory")
        added = self.config.add_root(root)
        if not added:
            logger.info("%s is already a library path", root)
        return added

    def remove_library_path(self, path: Path | str) -> int:
        """Forget a root and drop its tracks; returns the number of tracks removed."""
        root = Path(path).expanduser().resolve()
        if not self.config.remove_root(root):
            raise KeyError(f"{root} is not a library path")
        return self.store.delete_tracks_under(root)

    def list_libraries(self) -> List[Dict[str, Any]]:
        return [
            {
                "path": str(root),
                "exists": root.exists(),
                "tracks": self.store.count_tracks_under(root),
            }
            for root in self.settings.library.roots
        ]

    def close(self) -> None:
        self.db.close()
