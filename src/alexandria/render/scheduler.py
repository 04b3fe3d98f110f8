"""Parallel rendering of many scrolls."""

from __future__ import annotations

import logging
from concurrent import futures
from dataclasses import dataclass, field
from typing import List, Sequence

from alexandria.config import AppConfig
from alexandria.errors import FatalRenderError
from alexandria.render.pipeline import Outcome, Renderer, RenderResult, render_scroll
from alexandria.utils.files import iter_scroll_paths, scroll_id_from_path

LOGGER = logging.getLogger(__name__)

_SEPARATOR = "#" * 60


@dataclass(slots=True)
class RenderReport:
    rendered: int = 0
    skipped: int = 0
    failed: List[RenderResult] = field(default_factory=list)

    def add(self, result: RenderResult) -> None:
        if result.outcome is Outcome.OK:
            self.rendered += 1
        elif result.outcome is Outcome.NOT_FOUND:
            self.skipped += 1
        else:
            self.failed.append(result)


def render_scrolls(
    ids: Sequence[str],
    renderer: Renderer,
    config: AppConfig,
    *,
    keep_going: bool = False,
) -> RenderReport:
    """Render ``ids`` with at most ``config.max_procs`` pipelines at a time.

    Missing scrolls are counted as skipped. Any other failure points at a
    broken installation (missing compiler, bad template, full disk) and
    raises :class:`FatalRenderError` after cancelling the pending work,
    unless ``keep_going`` is set, in which case failures are logged and
    collected in the report.
    """
    report = RenderReport()
    if not ids:
        return report

    workers = min(config.max_procs, len(ids))
    executor = futures.ThreadPoolExecutor(
        max_workers=workers, thread_name_prefix="alexandria-render"
    )
    try:
        pending = [executor.submit(render_scroll, scroll_id, renderer, config) for scroll_id in ids]
        for future in futures.as_completed(pending):
            result = future.result()
            report.add(result)
            if result.outcome is not Outcome.FAILED:
                continue
            if not keep_going:
                raise FatalRenderError(result.scroll_id, result.error) from result.error
            LOGGER.error("%s\nERROR\n%s\n%s\n%s", _SEPARATOR, _SEPARATOR, result.error, _SEPARATOR)
    finally:
        executor.shutdown(wait=True, cancel_futures=True)

    LOGGER.debug(
        "Rendered %d scrolls, skipped %d, failed %d",
        report.rendered,
        report.skipped,
        len(report.failed),
    )
    return report


def render_all_scrolls(
    renderer: Renderer, config: AppConfig, *, keep_going: bool = False
) -> RenderReport:
    """Render every scroll in the library ahead of time.

    This performs the expensive LaTeX -> PDF conversions before any query
    needs them.
    """
    extension = config.source_extension
    ids = [
        scroll_id_from_path(path, extension)
        for path in iter_scroll_paths(config.knowledge_directory, extension)
    ]
    LOGGER.info("Rendering %d scrolls with %d workers", len(ids), config.max_procs)
    return render_scrolls(ids, renderer, config, keep_going=keep_going)
