"""Full-text search interface."""

from __future__ import annotations

import logging
from typing import List, Sequence

from alexandria.config import AppConfig
from alexandria.errors import IndexUnavailableError, QuerySyntaxError
from alexandria.index.query import parse_query, translate_prefixes
from alexandria.index.storage import ScrollIndex, SearchHits
from alexandria.ingestion.scroll_parser import load_scroll
from alexandria.models import Scroll, SearchResults, Statistics
from alexandria.render.pipeline import Renderer
from alexandria.render.scheduler import render_scrolls
from alexandria.utils.files import library_size

LOGGER = logging.getLogger(__name__)


class Searcher:
    """High-level API to query the index and render the matching scrolls."""

    def __init__(self, config: AppConfig, renderer: Renderer) -> None:
        self.config = config
        self.renderer = renderer

    def search_index(self, query: str) -> SearchHits:
        """Run ``query`` against the index. Invalid queries match nothing."""
        translated = translate_prefixes(query)
        with ScrollIndex.open(self.config.index_path) as index:
            try:
                return index.search(parse_query(translated), limit=self.config.max_results)
            except QuerySyntaxError as exc:
                LOGGER.warning("Invalid query string: %r (%s)", translated, exc)
                return SearchHits()

    def search(self, query: str) -> SearchResults:
        """Search without rendering.

        The index only locates scrolls; their content is read from the
        library so results never show stale text. ``total`` is the raw
        number of index hits.
        """
        hits = self.search_index(query)
        return SearchResults(scrolls=self._load(hits.ids), total=hits.total)

    def find(self, query: str) -> SearchResults:
        """Search, render the hits and drop those that no longer exist.

        Rendering a hit whose source was deleted takes the missing-scroll
        path of the pipeline, which removes the stale index entry.
        """
        hits = self.search_index(query)
        render_scrolls(hits.ids, self.renderer, self.config)
        scrolls = self._load(hits.ids)
        if len(scrolls) < len(hits.ids):
            LOGGER.debug("Dropped %d deleted scrolls from results", len(hits.ids) - len(scrolls))
        return SearchResults(scrolls=scrolls, total=len(scrolls))

    def statistics(self) -> Statistics:
        """Count the scrolls in the index and compute the library's size."""
        _, size = library_size(self.config.knowledge_directory, self.config.source_extension)
        try:
            with ScrollIndex.open(self.config.index_path) as index:
                count = index.doc_count()
        except IndexUnavailableError as exc:
            LOGGER.debug("%s", exc)
            count = 0
        return Statistics(num_scrolls=count, total_size=size)

    def _load(self, ids: Sequence[str]) -> List[Scroll]:
        scrolls: List[Scroll] = []
        for scroll_id in ids:
            try:
                scrolls.append(load_scroll(self.config, scroll_id))
            except FileNotFoundError:
                LOGGER.debug("Scroll %s is in the index but not in the library", scroll_id)
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.error("Could not load scroll %s: %s", scroll_id, exc)
        return scrolls
