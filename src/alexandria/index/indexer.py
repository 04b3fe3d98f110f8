"""Incremental indexing of the library."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from alexandria.config import AppConfig
from alexandria.index.storage import ScrollIndex
from alexandria.ingestion.scroll_parser import load_scroll_file
from alexandria.utils.files import get_mod_time, iter_scroll_paths, touch

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexStats:
    indexed: int = 0
    unchanged: int = 0
    failed: int = 0
    new_index: bool = False
    processed_files: List[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "indexed":
            self.indexed += 1
        elif status == "unchanged":
            self.unchanged += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


class Indexer:
    """Keeps the search index in step with the library directory."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    def read_last_update(self) -> float:
        """Modification time of the freshness marker, or 0 if it cannot be read.

        Falling back to 0 only costs redundant work: every scroll is reindexed.
        """
        try:
            return get_mod_time(self.config.index_updated_path)
        except OSError as exc:
            LOGGER.warning("Could not read time of last index update: %s", exc)
            return 0.0

    def record_update_start(self) -> None:
        try:
            touch(self.config.index_updated_path)
        except OSError as exc:
            LOGGER.error("Could not record start of index update: %s", exc)

    def update(self) -> IndexStats:
        """Index every scroll created or modified since the last update.

        Deleted scrolls are *not* removed from the index, see :meth:`remove`.
        """
        index, is_new = ScrollIndex.open_or_create(self.config.index_path)
        with index:
            last_update = self.read_last_update()
            # Touched before the scan so scrolls edited during it are picked up next time.
            self.record_update_start()

            stats = IndexStats(new_index=is_new)
            extension = self.config.source_extension
            with index.batch() as batch:
                for path in iter_scroll_paths(self.config.knowledge_directory, extension):
                    if not is_new and self._is_older_than(path, last_update):
                        stats.increment("unchanged", path)
                        continue
                    try:
                        scroll = load_scroll_file(path, extension)
                        batch.index(scroll.id, scroll.index_fields())
                    except (OSError, UnicodeDecodeError, ValueError) as exc:
                        LOGGER.error("Failed to index %s: %s", path, exc)
                        stats.increment("failed", path)
                        continue
                    stats.increment("indexed", path)

        LOGGER.info(
            "Indexed %d scrolls, %d unchanged, %d failed",
            stats.indexed,
            stats.unchanged,
            stats.failed,
        )
        return stats

    def remove(self, scroll_id: str) -> bool:
        """Remove one scroll from the index.

        :meth:`update` cannot tell that a scroll was deleted, so this is the
        only way stale entries leave the index.
        """
        with ScrollIndex.open(self.config.index_path) as index:
            removed = index.delete(scroll_id)
        if removed:
            LOGGER.info("Removed %s from the index", scroll_id)
        return removed

    def _is_older_than(self, path: Path, timestamp: float) -> bool:
        try:
            return get_mod_time(path) < timestamp
        except OSError as exc:
            LOGGER.error("Could not stat %s: %s", path, exc)
            return True
