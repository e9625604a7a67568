"""
Abstract base for image-index search backends.
Every backend returns a SearchResultSet; the resolver and both
orchestrators don't care which backend is active.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


class SearchError(RuntimeError):
    """The search call failed: non-2xx, network error or unreadable payload."""


class SearchConfigError(RuntimeError):
    """No credentials configured for the search backend."""


@dataclass
class SearchItem:
    title: str = ""
    link: str = ""
    # Candidate image URLs in the order the index returned them.
    # Entries the index sent in a shape we can't use are kept as None.
    image_candidates: list[Optional[str]] = field(default_factory=list)

    @property
    def first_image(self) -> Optional[str]:
        """Only the first candidate of an item is ever considered."""
        if not self.image_candidates:
            return None
        return self.image_candidates[0]


@dataclass
class SearchResultSet:
    query: str
    items: list[SearchItem] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def first_images(self) -> list[Optional[str]]:
        return [item.first_image for item in self.items]


class SearchBackend(ABC):
    """All backends must implement this interface."""

    @abstractmethod
    async def search(self, query: str) -> SearchResultSet:
        """
        Run one search for `query`.
        Raises SearchError on any failure; an empty result set is not a failure.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name for logs/display."""
        ...
