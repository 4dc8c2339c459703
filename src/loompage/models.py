"""Data models for image queries, candidates and search results."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_QUERY_LENGTH = 200
PRINT_READY_WIDTH = 1800


class Orientation(str, Enum):
    """Requested image orientation."""
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"


class ImageSource(str, Enum):
    """Supported image search providers."""
    UNSPLASH = "unsplash"
    PIXABAY = "pixabay"
    PEXELS = "pexels"
    WIKIMEDIA = "wikimedia"
    # Only used in "nothing found" responses
    NONE = "none"

    @property
    def display_name(self) -> str:
        """Human readable provider name used in attributions."""
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ImageSource.UNSPLASH: "Unsplash",
    ImageSource.PIXABAY: "Pixabay",
    ImageSource.PEXELS: "Pexels",
    ImageSource.WIKIMEDIA: "Wikimedia Commons",
    ImageSource.NONE: "None",
}


DEFAULT_PROVIDER_PRIORITY: List[ImageSource] = [
    ImageSource.UNSPLASH,
    ImageSource.PIXABAY,
    ImageSource.PEXELS,
    ImageSource.WIKIMEDIA,
]


class ImageQuery(BaseModel):
    """A search request for a single image or a gallery of images."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1, max_length=MAX_QUERY_LENGTH, description="Raw query text")
    orientation: Orientation = Field(default=Orientation.LANDSCAPE, description="Requested orientation")
    topic: str | None = Field(default=None, description="Book topic used to anchor the query")
    excluded_urls: FrozenSet[str] = Field(default_factory=frozenset, description="URLs already used by the caller")
    for_cover: bool = Field(default=False, description="Result is destined for commercial cover use")

    @field_validator('topic')
    @classmethod
    def _blank_topic_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


class ImageCandidate(BaseModel):
    """An image returned by a provider adapter that passed its filters."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider-scoped identifier, e.g. 'unsplash-abc123'")
    source: ImageSource = Field(description="Provider that returned the image")
    image_url: str = Field(description="Full resolution URL")
    thumbnail_url: str = Field(description="Preview URL")
    width: int = Field(ge=0, description="Pixel width of the original image")
    height: int = Field(ge=0, description="Pixel height of the original image")
    attribution: str = Field(description="Attribution line for the book credits")
    license: str = Field(description="License label")
    is_print_ready: bool = Field(default=False, description="Width meets the print threshold")
    description: str = Field(default="", description="Alt text, description or slug")
    page_url: str | None = Field(default=None, description="Provider page for the image")
    download_location: str | None = Field(default=None, description="Download tracking endpoint")

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width

    def to_response(self) -> Dict[str, object]:
        """Serialize in the camelCase shape returned by the HTTP API."""
        return {
            'id': self.id,
            'imageUrl': self.image_url,
            'thumbnailUrl': self.thumbnail_url,
            'attribution': self.attribution,
            'source': self.source.value,
            'width': self.width,
            'height': self.height,
            'isPrintReady': self.is_print_ready,
            'license': self.license,
            'downloadLocation': self.download_location,
        }


class WaterfallResult(BaseModel):
    """Outcome of a single-result waterfall search."""
    candidate: ImageCandidate | None = Field(default=None, description="Winning image, if any")
    query: str = Field(default="", description="Cleaned query that was searched")
    attempts: int = Field(default=0, description="Number of provider calls made")
    message: str = Field(default="", description="Human readable outcome")

    @property
    def found(self) -> bool:
        return self.candidate is not None


class GalleryResult(BaseModel):
    """Outcome of a multi-result gallery search."""
    images: List[ImageCandidate] = Field(default_factory=list, description="Interleaved candidates")
    query: str = Field(default="", description="Cleaned query that was searched")
    sources: Dict[str, int] = Field(default_factory=dict, description="Candidate counts per provider")
    print_ready_count: int = Field(default=0, description="Number of print-ready images")
    has_verified_article_image: bool = Field(default=False, description="First image came from a Wikipedia article")
    message: str = Field(default="", description="Human readable outcome")
