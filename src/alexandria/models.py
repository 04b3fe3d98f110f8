"""Core Alexandria data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List

DEFAULT_TYPE = "default"


@dataclass(slots=True)
class Scroll:
    """A single document of the knowledge base."""

    id: str
    type: str = DEFAULT_TYPE
    content: str = ""
    source: str = ""
    tags: str = ""
    hidden: str = ""
    other: str = ""

    def index_fields(self) -> Dict[str, str]:
        """Fields as they are stored in the search index."""
        return asdict(self)


@dataclass(slots=True)
class SearchResults:
    scrolls: List[Scroll] = field(default_factory=list)
    total: int = 0

    @property
    def ids(self) -> List[str]:
        return [scroll.id for scroll in self.scrolls]


@dataclass(slots=True)
class Statistics:
    num_scrolls: int = 0
    total_size: int = 0
