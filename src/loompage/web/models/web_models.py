"""Request models for the image API."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from loompage.models import MAX_QUERY_LENGTH, ImageQuery, Orientation


class ImageSearchRequest(BaseModel):
    """Request model for a single-image search."""
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1, max_length=MAX_QUERY_LENGTH)
    orientation: Orientation = Orientation.LANDSCAPE
    exclude_urls: List[str] = Field(default_factory=list, alias="excludeUrls")
    book_topic: Optional[str] = Field(default=None, alias="bookTopic", max_length=MAX_QUERY_LENGTH)
    for_cover: bool = Field(default=False, alias="forCover")

    def to_query(self) -> ImageQuery:
        return ImageQuery(
            text=self.query,
            orientation=self.orientation,
            topic=self.book_topic,
            excluded_urls=frozenset(self.exclude_urls),
            for_cover=self.for_cover,
        )


class GallerySearchRequest(ImageSearchRequest):
    """Request model for a gallery search."""
    limit: int = Field(default=150, ge=1, le=300)


class TrackDownloadRequest(BaseModel):
    """Request model for an Unsplash download ping."""
    model_config = ConfigDict(populate_by_name=True)

    download_location: str = Field(min_length=1, alias="downloadLocation")


class DataUrlRequest(BaseModel):
    """Request model for converting an image URL to a data URL."""
    url: str = Field(min_length=1)
