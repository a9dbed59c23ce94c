"""
Data models for Media Rating Overlay.

Libraries, items and ratings are built from media server responses and live
for a single run. Logo specs exist only while a poster is being composited.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .constants import LOCAL_GUID_MARKER, MEDIA_TYPE_MOVIE


@dataclass
class Library:
    """A library exposed by a media service."""
    id: str
    name: str
    type: str = ''
    language: str = ''


@dataclass
class Filter:
    """Name/value pair applied to a media server item query."""
    name: str
    value: str


@dataclass
class Rating:
    name: str
    type: str
    score: float


@dataclass
class MediaFile:
    path: str


@dataclass
class Item:
    """A single movie; the unit of work."""
    id: str
    title: str
    guid: str = ''
    type: str = MEDIA_TYPE_MOVIE
    year: int = 0
    ratings: List[Rating] = field(default_factory=list)
    added_at: int = 0
    updated_at: int = 0
    poster_url: str = ''
    media: List[MediaFile] = field(default_factory=list)
    is_eligible: bool = False

    def has_rating(self, name: str) -> bool:
        return any(r.name == name for r in self.ratings)

    def add_rating(self, rating: Rating) -> bool:
        """Append a rating unless one with the same (name, type) exists."""
        for existing in self.ratings:
            if existing.name == rating.name and existing.type == rating.type:
                return False
        self.ratings.append(rating)
        return True

    def clone(self) -> 'Item':
        return copy.deepcopy(self)


def compute_eligibility(item_type: str, guid: str) -> bool:
    """Only movies matched by a real agent are worth processing."""
    return item_type == MEDIA_TYPE_MOVIE and LOCAL_GUID_MARKER not in guid


@dataclass
class PosterResult:
    """Outcome of one attempted item."""
    title: str
    original_path: str = ''
    overlay_path: str = ''
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class LogoDimensions:
    area_width: float
    area_height: float


@dataclass
class TextSpec:
    """Rendered score text for a badge."""
    value: str
    points: float = 0.0
    width: float = 0.0
    horizontal_margin: float = 0.0
    image: Any = None


@dataclass
class Logo:
    """Logo image plus score text; ``image`` is a Pillow RGBA image."""
    image_path: str
    image: Any
    text: TextSpec
    sum_width: int = 0
