"""Shared fixtures for the Alexandria test suite."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

import pytest

from alexandria.config import AppConfig
from alexandria.errors import ExternalProcessError, NoSuchScrollError
from alexandria.render.pipeline import RenderUnit, stage


class RecordingRenderer:
    """Renderer that records stage calls instead of running LaTeX."""

    def __init__(
        self,
        config: AppConfig,
        *,
        fail_stage: Optional[str] = None,
        fail_ids: Iterable[str] = (),
        delay: float = 0.0,
    ) -> None:
        self.config = config
        self.fail_stage = fail_stage
        self.fail_ids = set(fail_ids)
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def _record(self, name: str, unit: RenderUnit) -> None:
        with self._lock:
            self.calls.append((name, unit.scroll_id))
        if name == self.fail_stage and (not self.fail_ids or unit.scroll_id in self.fail_ids):
            raise ExternalProcessError(f"{name} of {unit.scroll_id}", 1, "boom")

    def stages_for(self, scroll_id: str) -> List[str]:
        return [name for name, called_id in self.calls if called_id == scroll_id]

    @stage
    def scroll_to_latex(self, unit: RenderUnit) -> RenderUnit:
        self._record("scroll_to_latex", unit)
        if not self.config.source_path(unit.scroll_id).exists():
            raise NoSuchScrollError(unit.scroll_id)
        return unit.append("latex")

    @stage
    def latex_to_pdf(self, unit: RenderUnit) -> RenderUnit:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            self._record("latex_to_pdf", unit)
        finally:
            with self._lock:
                self.active -= 1
        return unit

    @stage
    def pdf_to_png(self, unit: RenderUnit) -> RenderUnit:
        self._record("pdf_to_png", unit)
        png = self.config.png_path(unit.scroll_id)
        png.parent.mkdir(parents=True, exist_ok=True)
        png.write_bytes(b"\x89PNG")
        return unit

    def delete_temporary_files(self, unit: RenderUnit) -> RenderUnit:
        self.calls.append(("delete_temporary_files", unit.scroll_id))
        return unit

    def error(self, unit: RenderUnit) -> Optional[Exception]:
        return unit.error


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Configuration with every directory inside ``tmp_path``."""
    cfg = AppConfig(
        alexandria_directory=tmp_path / "alexandria",
        temp_directory=tmp_path / "tmp",
        max_procs=2,
        max_results=10,
    )
    cfg.ensure_directories()
    return cfg


@pytest.fixture
def write_scroll(config: AppConfig) -> Callable[..., Path]:
    """Write a scroll into the library, optionally with a fixed mtime."""

    def _write(scroll_id: str, text: str, *, mtime: Optional[float] = None) -> Path:
        path = config.source_path(scroll_id)
        path.write_text(text, encoding="utf-8")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _write


@pytest.fixture
def templates(config: AppConfig) -> Path:
    """Install a minimal set of templates for the default and note types."""
    directory = config.template_directory
    directory.mkdir(parents=True, exist_ok=True)
    for name, text in {
        "header": "H\n",
        "footer": "F\n",
        "default_header": "DH\n",
        "default_footer": "DF\n",
        "note_header": "NH\n",
        "note_footer": "NF\n",
    }.items():
        (directory / f"{name}.tex").write_text(text, encoding="utf-8")
    return directory


@pytest.fixture
def make_renderer(config: AppConfig) -> Callable[..., RecordingRenderer]:
    def _make(**kwargs) -> RecordingRenderer:
        return RecordingRenderer(config, **kwargs)

    return _make
