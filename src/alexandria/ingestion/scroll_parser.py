"""Scroll loading and parsing utilities.

A scroll is a LaTeX fragment. Metadata lives in LaTeX comments of the form::

    %@type theorem
    %@tags algebra, groups
    %@source Lang, Algebra, p. 12

Recognised keys are ``type``, ``source``, ``tags`` (or ``tag``) and
``hidden``. Any other key is kept in the ``other`` field. Everything that is
not a metadata line is the scroll's content.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List

from alexandria.config import AppConfig
from alexandria.models import DEFAULT_TYPE, Scroll

LOGGER = logging.getLogger(__name__)

_METADATA_LINE = re.compile(r"^%\s*@(?P<key>\w+)\s*:?\s*(?P<value>.*?)\s*$")
_KEY_ALIASES = {"tag": "tags"}
_KNOWN_KEYS = ("type", "source", "tags", "hidden")


def parse_scroll(scroll_id: str, text: str) -> Scroll:
    """Turn the raw text of a scroll into a :class:`Scroll`."""
    metadata: Dict[str, List[str]] = {key: [] for key in _KNOWN_KEYS}
    other: List[str] = []
    content: List[str] = []

    for line in text.splitlines():
        match = _METADATA_LINE.match(line)
        if match is None:
            content.append(line)
            continue
        key = match.group("key").lower()
        key = _KEY_ALIASES.get(key, key)
        value = match.group("value")
        if key in metadata:
            if value:
                metadata[key].append(value)
        else:
            other.append(f"{key}: {value}" if value else key)

    scroll_type = metadata["type"][-1] if metadata["type"] else DEFAULT_TYPE
    return Scroll(
        id=scroll_id,
        type=scroll_type,
        content="\n".join(content).strip("\n"),
        source="\n".join(metadata["source"]),
        tags=", ".join(metadata["tags"]),
        hidden="\n".join(metadata["hidden"]),
        other="\n".join(other),
    )


def read_scroll(config: AppConfig, scroll_id: str) -> str:
    """Read the raw source of a scroll. Raises ``FileNotFoundError`` if absent."""
    return config.source_path(scroll_id).read_text(encoding="utf-8")


def load_scroll(config: AppConfig, scroll_id: str) -> Scroll:
    return parse_scroll(scroll_id, read_scroll(config, scroll_id))


def load_scroll_file(path: Path, extension: str) -> Scroll:
    """Load a scroll from a path inside the library."""
    scroll_id = path.name[: -len(extension)] if path.name.endswith(extension) else path.stem
    return parse_scroll(scroll_id, path.read_text(encoding="utf-8"))
