"""Utility helpers for working with the library directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Tuple

from alexandria.errors import LibraryError

LOGGER = logging.getLogger(__name__)


def iter_scroll_paths(directory: Path, extension: str) -> Iterator[Path]:
    """Yield the source files in the library, sorted by name.

    Only regular files carrying ``extension`` are considered scrolls.
    """
    try:
        entries = sorted(Path(directory).iterdir())
    except OSError as exc:
        raise LibraryError(f"read knowledge directory {directory}: {exc}") from exc
    for entry in entries:
        if entry.name.endswith(extension) and len(entry.name) > len(extension) and entry.is_file():
            yield entry


def scroll_id_from_path(path: Path, extension: str) -> str:
    return path.name[: -len(extension)]


def get_mod_time(path: Path) -> float:
    return Path(path).stat().st_mtime


def touch(path: Path) -> None:
    """Set the modification time of ``path`` to now, creating it if needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)


def library_size(directory: Path, extension: str) -> Tuple[int, int]:
    """Count the scrolls in ``directory`` and sum their sizes in bytes."""
    count = 0
    size = 0
    if not Path(directory).is_dir():
        return count, size
    for path in iter_scroll_paths(directory, extension):
        try:
            size += path.stat().st_size
        except FileNotFoundError:
            LOGGER.debug("Scroll %s disappeared while computing statistics", path)
            continue
        count += 1
    return count, size
