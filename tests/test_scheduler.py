"""Tests for parallel rendering."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from alexandria.errors import ExternalProcessError, FatalRenderError, LibraryError, TemplateError
from alexandria.render.pipeline import Outcome, XelatexImagemagickRenderer
from alexandria.render.scheduler import RenderReport, render_all_scrolls, render_scrolls


class TestRenderReport:
    """Test RenderReport tallying."""

    def test_defaults(self) -> None:
        report = RenderReport()
        assert report.rendered == 0
        assert report.skipped == 0
        assert report.failed == []


class TestRenderScrolls:
    """Test the bounded fan-out over many scrolls."""

    def test_empty_list(self, config, make_renderer) -> None:
        renderer = make_renderer()
        report = render_scrolls([], renderer, config)

        assert report.rendered == 0
        assert renderer.calls == []

    def test_counts_rendered_scrolls(self, config, write_scroll, make_renderer) -> None:
        for name in ("a", "b", "c"):
            write_scroll(name, name)

        report = render_scrolls(["a", "b", "c"], make_renderer(), config)

        assert report.rendered == 3
        assert report.skipped == 0

    def test_missing_scrolls_are_skipped(self, config, write_scroll, make_renderer) -> None:
        write_scroll("a", "a")

        report = render_scrolls(["a", "gone"], make_renderer(), config)

        assert report.rendered == 1
        assert report.skipped == 1
        assert report.failed == []

    def test_failure_is_fatal(self, config, write_scroll, make_renderer) -> None:
        """Any error other than a missing scroll aborts the batch."""
        write_scroll("a", "a")
        write_scroll("b", "b")
        renderer = make_renderer(fail_stage="latex_to_pdf", fail_ids={"b"})

        with pytest.raises(FatalRenderError) as excinfo:
            render_scrolls(["a", "b"], renderer, config)

        assert excinfo.value.scroll_id == "b"
        assert isinstance(excinfo.value.cause, ExternalProcessError)
        assert "b" in str(excinfo.value)

    def test_keep_going_collects_failures(self, config, write_scroll, make_renderer) -> None:
        write_scroll("a", "a")
        write_scroll("b", "b")
        renderer = make_renderer(fail_stage="latex_to_pdf", fail_ids={"b"})

        report = render_scrolls(["a", "b", "gone"], renderer, config, keep_going=True)

        assert report.rendered == 1
        assert report.skipped == 1
        assert [result.scroll_id for result in report.failed] == ["b"]
        assert report.failed[0].outcome is Outcome.FAILED

    def test_concurrency_is_bounded(self, config, write_scroll, make_renderer) -> None:
        """No more than max_procs pipelines run at the same time."""
        ids = [f"scroll{i}" for i in range(8)]
        for scroll_id in ids:
            write_scroll(scroll_id, scroll_id)
        config.max_procs = 3
        renderer = make_renderer(delay=0.05)

        report = render_scrolls(ids, renderer, config)

        assert report.rendered == 8
        assert 1 <= renderer.max_active <= 3

    def test_single_worker_runs_serially(self, config, write_scroll, make_renderer) -> None:
        ids = ["a", "b", "c"]
        for scroll_id in ids:
            write_scroll(scroll_id, scroll_id)
        config.max_procs = 1
        renderer = make_renderer(delay=0.01)

        render_scrolls(ids, renderer, config)

        assert renderer.max_active == 1


class TestRenderAllScrolls:
    """Test rendering the whole library."""

    def test_only_source_files_are_rendered(self, config, write_scroll, make_renderer) -> None:
        write_scroll("alpha", "a")
        write_scroll("beta", "b")
        (config.knowledge_directory / "notes.txt").write_text("not a scroll")
        renderer = make_renderer()

        report = render_all_scrolls(renderer, config)

        assert report.rendered == 2
        rendered = {scroll_id for name, scroll_id in renderer.calls if name == "pdf_to_png"}
        assert rendered == {"alpha", "beta"}

    def test_missing_library(self, config, make_renderer) -> None:
        config.knowledge_directory.rmdir()

        with pytest.raises(LibraryError):
            render_all_scrolls(make_renderer(), config)


class TestUndecodableInput:
    """Bytes that are not UTF-8 fail one scroll, never the whole batch."""

    @patch("alexandria.render.pipeline.subprocess.run")
    def test_bad_source_is_fatal_with_scroll_id(
        self, mock_run: MagicMock, config, templates
    ) -> None:
        config.source_path("bad").write_bytes(b"\xff\xfe broken")

        with pytest.raises(FatalRenderError) as excinfo:
            render_scrolls(["bad"], XelatexImagemagickRenderer(config), config)

        assert excinfo.value.scroll_id == "bad"
        assert isinstance(excinfo.value.cause, UnicodeDecodeError)
        mock_run.assert_not_called()

    @patch("alexandria.render.pipeline.subprocess.run")
    def test_keep_going_continues_past_bad_source(
        self, mock_run: MagicMock, config, templates, write_scroll
    ) -> None:
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="")
        config.source_path("bad").write_bytes(b"\xff\xfe broken")
        write_scroll("good", "Body")

        report = render_scrolls(
            ["bad", "good"], XelatexImagemagickRenderer(config), config, keep_going=True
        )

        assert report.rendered == 1
        assert [result.scroll_id for result in report.failed] == ["bad"]
        assert isinstance(report.failed[0].error, UnicodeDecodeError)

    def test_keep_going_with_bad_template(self, config, templates, write_scroll) -> None:
        (templates / "header.tex").write_bytes(b"\xff\xfe broken")
        write_scroll("a", "Body")

        report = render_all_scrolls(XelatexImagemagickRenderer(config), config, keep_going=True)

        assert report.rendered == 0
        assert len(report.failed) == 1
        assert isinstance(report.failed[0].error, TemplateError)
