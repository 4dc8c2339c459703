"""Runtime configuration for image search."""

import os
from typing import List

from pydantic import BaseModel, Field

from loompage.models import DEFAULT_PROVIDER_PRIORITY, ImageSource, PRINT_READY_WIDTH


DEFAULT_USER_AGENT = "LoomPageImageResolver/0.1 (set WIKIMEDIA_USER_AGENT to include contact details)"


class GallerySlot(BaseModel):
    """How much of the gallery fan-out a provider receives."""
    source: ImageSource
    pages: int = Field(default=1, ge=1, description="Pages requested concurrently")
    per_page: int = Field(default=30, ge=1, description="Results requested per page")
    weight: int = Field(default=1, ge=1, description="Results taken per interleave round")
    extra_queries: List[str] = Field(
        default_factory=list, description="Suffixes searched as extra first pages, e.g. \"scenic\""
    )

    @property
    def call_count(self) -> int:
        return self.pages + len(self.extra_queries)


DEFAULT_GALLERY_PLAN: List[GallerySlot] = [
    GallerySlot(source=ImageSource.UNSPLASH, pages=3, per_page=30, weight=3),
    GallerySlot(source=ImageSource.PEXELS, pages=2, per_page=80, weight=2),
    GallerySlot(source=ImageSource.PIXABAY, pages=1, per_page=200, weight=1),
    GallerySlot(source=ImageSource.WIKIMEDIA, pages=1, per_page=50, weight=1, extra_queries=["scenic"]),
]


class SearchContext(BaseModel):
    """Credentials, thresholds and tuning for the image resolver."""

    # API Configuration
    unsplash_access_key: str | None = Field(default=None, description="Unsplash API access key")
    pexels_api_key: str | None = Field(default=None, description="Pexels API key")
    pixabay_api_key: str | None = Field(default=None, description="Pixabay API key")
    wikimedia_user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent sent to Wikimedia APIs")

    # Network
    request_timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")

    # Quality thresholds
    gallery_min_width: int = Field(default=1200, description="Minimum width for gallery results")
    waterfall_min_width: int = Field(default=1600, description="Minimum width for single-result searches")
    print_ready_width: int = Field(default=PRINT_READY_WIDTH, description="Width for print-ready and strict Wikimedia use")

    # Ordering
    provider_priority: List[ImageSource] = Field(
        default_factory=lambda: list(DEFAULT_PROVIDER_PRIORITY),
        description="Waterfall precedence"
    )
    gallery_plan: List[GallerySlot] = Field(
        default_factory=lambda: [slot.model_copy() for slot in DEFAULT_GALLERY_PLAN],
        description="Gallery fan-out and interleave weights"
    )
    emergency_modifier: str = Field(default="landscape", description="Generic word appended in the emergency search")

    # Retry (image fetching only)
    max_attempts: int = Field(default=3, ge=1, description="Attempts for retryable fetches")
    retry_base_delay: float = Field(default=2.0, ge=0, description="Base delay for exponential backoff")

    model_config = {"extra": "allow"}

    def credential_for(self, source: ImageSource) -> str | None:
        """Return the configured credential for a provider."""
        return {
            ImageSource.UNSPLASH: self.unsplash_access_key,
            ImageSource.PEXELS: self.pexels_api_key,
            ImageSource.PIXABAY: self.pixabay_api_key,
        }.get(source)


def _parse_priority(value: str | None) -> List[ImageSource] | None:
    if not value:
        return None
    priority = []
    for name in value.split(','):
        name = name.strip().lower()
        if not name:
            continue
        source = ImageSource(name)
        if source is not ImageSource.NONE and source not in priority:
            priority.append(source)
    return priority or None


def get_default_context() -> SearchContext:
    """Get default context with environment variables."""
    overrides = {}

    timeout = os.getenv('LOOMPAGE_REQUEST_TIMEOUT')
    if timeout:
        overrides['request_timeout'] = float(timeout)

    priority = _parse_priority(os.getenv('LOOMPAGE_PROVIDER_PRIORITY'))
    if priority:
        overrides['provider_priority'] = priority

    user_agent = os.getenv('WIKIMEDIA_USER_AGENT')
    if user_agent:
        overrides['wikimedia_user_agent'] = user_agent

    return SearchContext(
        unsplash_access_key=os.getenv('UNSPLASH_ACCESS_KEY') or None,
        pexels_api_key=os.getenv('PEXELS_API_KEY') or None,
        pixabay_api_key=os.getenv('PIXABAY_API_KEY') or None,
        **overrides,
    )
