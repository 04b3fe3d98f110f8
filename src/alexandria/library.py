"""Entry point wiring the render pipeline, the index and search together."""

from __future__ import annotations

import logging
from typing import Optional

from alexandria.config import AppConfig
from alexandria.errors import IndexUnavailableError
from alexandria.index.indexer import Indexer, IndexStats
from alexandria.index.search import Searcher
from alexandria.models import SearchResults, Statistics
from alexandria.render.pipeline import (
    Renderer,
    RenderResult,
    XelatexImagemagickRenderer,
    render_scroll,
)
from alexandria.render.scheduler import RenderReport, render_all_scrolls

LOGGER = logging.getLogger(__name__)


class Library:
    """The operations offered to user interfaces."""

    def __init__(self, config: AppConfig, renderer: Optional[Renderer] = None) -> None:
        self.config = config
        self.indexer = Indexer(config)
        self.renderer = renderer or XelatexImagemagickRenderer(config, on_missing=self._forget)
        self.searcher = Searcher(config, self.renderer)

    def render(self, scroll_id: str) -> RenderResult:
        return render_scroll(scroll_id, self.renderer, self.config)

    def render_all(self, *, keep_going: bool = False) -> RenderReport:
        return render_all_scrolls(self.renderer, self.config, keep_going=keep_going)

    def update_index(self) -> IndexStats:
        return self.indexer.update()

    def remove_from_index(self, scroll_id: str) -> bool:
        return self.indexer.remove(scroll_id)

    def find(self, query: str) -> SearchResults:
        return self.searcher.find(query)

    def statistics(self) -> Statistics:
        return self.searcher.statistics()

    def _forget(self, scroll_id: str) -> None:
        try:
            self.indexer.remove(scroll_id)
        except IndexUnavailableError:
            LOGGER.debug("No index to remove %s from", scroll_id)
