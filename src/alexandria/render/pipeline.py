"""LaTeX -> PDF -> PNG render pipeline.

Rendering one scroll runs four stages. Each stage takes a :class:`RenderUnit`
and returns a new one. Once a unit carries an error, the remaining stages
pass it through untouched, except for the cleanup stage which always runs.
"""

from __future__ import annotations

import functools
import glob
import logging
import subprocess
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence

from alexandria.config import AppConfig
from alexandria.errors import (
    AlexandriaError,
    ExternalProcessError,
    NoSuchScrollError,
    TemplateError,
)
from alexandria.ingestion.scroll_parser import parse_scroll, read_scroll

LOGGER = logging.getLogger(__name__)

MissingScrollHook = Callable[[str], object]


@dataclass(frozen=True, slots=True)
class RenderUnit:
    """State threaded through the stages of one pipeline run."""

    scroll_id: str
    document: str = ""
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def append(self, text: str) -> "RenderUnit":
        return replace(self, document=self.document + text)

    def fail(self, error: Exception) -> "RenderUnit":
        return replace(self, error=error)


class Outcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RenderResult:
    scroll_id: str
    outcome: Outcome
    error: Optional[Exception] = None
    rendered: bool = False

    @classmethod
    def from_error(cls, scroll_id: str, error: Optional[Exception]) -> "RenderResult":
        if error is None:
            return cls(scroll_id, Outcome.OK, rendered=True)
        if isinstance(error, NoSuchScrollError):
            return cls(scroll_id, Outcome.NOT_FOUND, error)
        return cls(scroll_id, Outcome.FAILED, error)

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK


class Renderer(Protocol):
    """A LaTeX -> PDF -> PNG backend."""

    def scroll_to_latex(self, unit: RenderUnit) -> RenderUnit:
        """Create a LaTeX file from the scroll and its templates in the temp directory."""

    def latex_to_pdf(self, unit: RenderUnit) -> RenderUnit:
        """Compile the LaTeX file to a PDF. Input and output live in the temp directory."""

    def pdf_to_png(self, unit: RenderUnit) -> RenderUnit:
        """Convert the PDF to a PNG stored in the cache directory."""

    def delete_temporary_files(self, unit: RenderUnit) -> RenderUnit:
        """Remove intermediate files. Must run even if an earlier stage failed."""

    def error(self, unit: RenderUnit) -> Optional[Exception]:
        """Return the error carried by the unit, or ``None`` if every stage succeeded."""


def stage(method: Callable[..., RenderUnit]) -> Callable[..., RenderUnit]:
    """Skip ``method`` for failed units and turn raised errors into a failed unit."""

    @functools.wraps(method)
    def wrapper(self, unit: RenderUnit) -> RenderUnit:
        if unit.failed:
            return unit
        try:
            return method(self, unit)
        except (AlexandriaError, OSError, UnicodeDecodeError) as exc:
            return unit.fail(exc)

    return wrapper


def run_command(description: str, command: Sequence[str]) -> str:
    """Run an external program and return its combined output."""
    LOGGER.debug("Running %s", " ".join(command))
    try:
        completed = subprocess.run(
            list(command),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            check=False,
        )
    except OSError as exc:
        raise ExternalProcessError(description, None, str(exc)) from exc
    if completed.returncode != 0:
        raise ExternalProcessError(description, completed.returncode, completed.stdout or "")
    return completed.stdout or ""


class XelatexImagemagickRenderer:
    """Uses XeLaTeX for LaTeX -> PDF and ImageMagick for PDF -> PNG."""

    def __init__(self, config: AppConfig, *, on_missing: MissingScrollHook | None = None) -> None:
        self.config = config
        self.on_missing = on_missing

    def read_template(self, name: str, scroll_id: str) -> str:
        try:
            return self.config.template_path(name).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise TemplateError(name, scroll_id) from exc

    @stage
    def scroll_to_latex(self, unit: RenderUnit) -> RenderUnit:
        scroll_id = unit.scroll_id
        try:
            text = read_scroll(self.config, scroll_id)
        except FileNotFoundError as exc:
            self._forget(scroll_id)
            raise NoSuchScrollError(scroll_id) from exc
        scroll = parse_scroll(scroll_id, text)

        for part in (
            self.read_template("header", scroll_id),
            self.read_template(f"{scroll.type}_header", scroll_id),
            scroll.content,
            self.read_template(f"{scroll.type}_footer", scroll_id),
            self.read_template("footer", scroll_id),
        ):
            unit = unit.append(part)

        path = self.config.temp_path(scroll_id, ".tex")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(unit.document, encoding="utf-8")
        return unit

    @stage
    def latex_to_pdf(self, unit: RenderUnit) -> RenderUnit:
        run_command(
            f"XeLaTeX build of {unit.scroll_id}",
            [
                self.config.latex_command,
                "-interaction",
                "nonstopmode",
                "-output-directory",
                str(self.config.temp_directory),
                str(self.config.temp_path(unit.scroll_id, ".tex")),
            ],
        )
        return unit

    @stage
    def pdf_to_png(self, unit: RenderUnit) -> RenderUnit:
        png = self.config.png_path(unit.scroll_id)
        png.parent.mkdir(parents=True, exist_ok=True)
        run_command(
            f"PNG conversion of {unit.scroll_id}",
            [
                self.config.convert_command,
                "-trim",
                "-quality",
                str(self.config.quality),
                "-density",
                str(self.config.dpi),
                str(self.config.temp_path(unit.scroll_id, ".pdf")),
                str(png),
            ],
        )
        return unit

    def delete_temporary_files(self, unit: RenderUnit) -> RenderUnit:
        scroll_id = unit.scroll_id
        pattern = glob.escape(scroll_id) + ".*"
        for path in self.config.temp_directory.glob(pattern):
            # "a.*" also matches "a.b.tex", which belongs to scroll "a.b"
            if "." in path.name[len(scroll_id) + 1 :]:
                continue
            try:
                path.unlink()
            except OSError as exc:
                LOGGER.warning("Could not delete temporary file %s: %s", path, exc)
        return unit

    def error(self, unit: RenderUnit) -> Optional[Exception]:
        return unit.error

    def _forget(self, scroll_id: str) -> None:
        LOGGER.debug("Scroll %s no longer exists", scroll_id)
        if self.on_missing is None:
            return
        try:
            self.on_missing(scroll_id)
        except Exception as exc:
            LOGGER.warning("Could not remove %s from the index: %s", scroll_id, exc)


def is_up_to_date(config: AppConfig, scroll_id: str) -> bool:
    """Whether the cached PNG exists and is at least as new as the source."""
    try:
        png_mtime = config.png_path(scroll_id).stat().st_mtime
        source_mtime = config.source_path(scroll_id).stat().st_mtime
    except OSError:
        return False
    return png_mtime >= source_mtime


def render_scroll(scroll_id: str, renderer: Renderer, config: AppConfig) -> RenderResult:
    """Create a PNG image from a scroll unless the cached one is still fresh."""
    if is_up_to_date(config, scroll_id):
        return RenderResult(scroll_id, Outcome.OK)

    unit = RenderUnit(scroll_id)
    for step in (renderer.scroll_to_latex, renderer.latex_to_pdf, renderer.pdf_to_png):
        if renderer.error(unit) is not None:
            break
        unit = step(unit)
    unit = renderer.delete_temporary_files(unit)
    return RenderResult.from_error(scroll_id, renderer.error(unit))
