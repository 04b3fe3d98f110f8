"""Application configuration defaults."""

from __future__ import annotations

import os
import tempfile
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

DEFAULT_SOURCE_EXTENSION = ".tex"

_PATH_FIELDS = (
    "alexandria_directory",
    "knowledge_directory",
    "template_directory",
    "cache_directory",
    "temp_directory",
)
_INT_FIELDS = ("max_procs", "quality", "dpi", "max_results")
_STR_FIELDS = ("source_extension", "latex_command", "convert_command", *_PATH_FIELDS)


def _get_default_home() -> Path:
    """Get the Alexandria home directory, honouring ``ALEXANDRIA_HOME``."""
    override = os.environ.get("ALEXANDRIA_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".alexandria"


def default_config_path() -> Path:
    return _get_default_home() / "config.toml"


@dataclass(slots=True)
class AppConfig:
    alexandria_directory: Path | None = None
    knowledge_directory: Path | None = None
    template_directory: Path | None = None
    cache_directory: Path | None = None
    temp_directory: Path | None = None
    max_procs: int = os.cpu_count() or 1
    quality: int = 90
    dpi: int = 160
    max_results: int = 100
    source_extension: str = DEFAULT_SOURCE_EXTENSION
    latex_command: str = "xelatex"
    convert_command: str = "convert"

    def __post_init__(self) -> None:
        base = Path(self.alexandria_directory) if self.alexandria_directory else _get_default_home()
        self.alexandria_directory = base
        self.knowledge_directory = Path(self.knowledge_directory or base / "library")
        self.template_directory = Path(self.template_directory or base / "templates")
        self.cache_directory = Path(self.cache_directory or base / "cache")
        self.temp_directory = Path(
            self.temp_directory or Path(tempfile.gettempdir()) / "alexandria"
        )
        if self.max_procs < 1:
            raise ValueError(f"max_procs must be at least 1, got {self.max_procs}")
        if self.max_results < 1:
            raise ValueError(f"max_results must be at least 1, got {self.max_results}")
        if not self.source_extension.startswith("."):
            self.source_extension = "." + self.source_extension

    @classmethod
    def from_toml(cls, path: Path) -> "AppConfig":
        """Load configuration from a TOML file.

        Keys use the field names of this class. Unknown keys are rejected so
        typos do not silently fall back to defaults.
        """
        with Path(path).open("rb") as handle:
            data = tomllib.load(handle)
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "AppConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        for name in _INT_FIELDS:
            value = data.get(name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        for name in _STR_FIELDS:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{name} must be a string, got {value!r}")
        values = dict(data)
        for name in _PATH_FIELDS:
            if values.get(name) is not None:
                values[name] = Path(values[name]).expanduser()
        return cls(**values)

    @property
    def index_path(self) -> Path:
        return self.alexandria_directory / "index.sqlite"

    @property
    def index_updated_path(self) -> Path:
        return self.alexandria_directory / "index_updated"

    def source_path(self, scroll_id: str) -> Path:
        return self.knowledge_directory / f"{scroll_id}{self.source_extension}"

    def png_path(self, scroll_id: str) -> Path:
        return self.cache_directory / f"{scroll_id}.png"

    def temp_path(self, scroll_id: str, suffix: str) -> Path:
        return self.temp_directory / f"{scroll_id}{suffix}"

    def template_path(self, name: str) -> Path:
        return self.template_directory / f"{name}.tex"

    def ensure_directories(self) -> None:
        for path in (
            self.alexandria_directory,
            self.knowledge_directory,
            self.cache_directory,
            self.temp_directory,
        ):
            path.mkdir(parents=True, exist_ok=True)
