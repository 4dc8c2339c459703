"""Download selected images and encode them as data URLs for embedding."""

import asyncio
import base64
import io
import logging
from collections import OrderedDict

import aiohttp
from PIL import Image, UnidentifiedImageError

from loompage.context import SearchContext
from loompage.error_handling import ErrorCategory, ErrorRecoveryHandler, ProviderError


logger = logging.getLogger(__name__)


DEFAULT_CACHE_SIZE = 64


class DataUrlCache:
    """Least-recently-used cache of data URLs keyed by source URL."""

    def __init__(self, max_entries: int = DEFAULT_CACHE_SIZE):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, str]" = OrderedDict()

    def get(self, url: str) -> str | None:
        value = self._entries.get(url)
        if value is not None:
            self._entries.move_to_end(url)
        return value

    def put(self, url: str, data_url: str) -> None:
        self._entries[url] = data_url
        self._entries.move_to_end(url)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def sniff_mime_type(data: bytes) -> str | None:
    """Detect the image MIME type from the bytes themselves."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return Image.MIME.get(image.format or "")
    except (UnidentifiedImageError, OSError):
        return None


def to_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode('ascii')
    return f"data:{mime_type};base64,{encoded}"


class ImageFetcher:
    """Fetches images over HTTP with retry on transient failures."""

    def __init__(
        self,
        context: SearchContext | None = None,
        cache: DataUrlCache | None = None,
        recovery: ErrorRecoveryHandler | None = None,
    ):
        self.context = context or SearchContext()
        self.cache = cache
        self.recovery = recovery or ErrorRecoveryHandler(
            max_attempts=self.context.max_attempts,
            base_delay=self.context.retry_base_delay,
        )

    async def _download(self, url: str) -> tuple[bytes, str | None]:
        timeout = aiohttp.ClientTimeout(total=self.context.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    raise ProviderError("image", f"Failed to fetch image {url}", status=response.status)
                content_type = response.headers.get('Content-Type', '')
                return await response.read(), content_type

    async def fetch_bytes(self, url: str) -> tuple[bytes, str | None]:
        """Download ``url``; retryable failures are retried with backoff."""
        return await self.recovery.handle_with_recovery(self._download, (url,), context={'url': url})

    async def fetch_data_url(self, url: str) -> str:
        """Download an image and return it as ``data:{mime};base64,...``.

        Raises:
            ProviderError: When the image cannot be downloaded or is not an image.
        """
        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                return cached

        try:
            data, content_type = await self.fetch_bytes(url)
        except ProviderError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError("image", f"Failed to fetch image {url}: {e}") from e

        mime_type = (content_type or '').split(';', 1)[0].strip().lower()
        if not mime_type.startswith('image/'):
            mime_type = sniff_mime_type(data)
        if not mime_type:
            raise ProviderError(
                "image", f"Content at {url} is not an image", category=ErrorCategory.MALFORMED_RESPONSE
            )

        data_url = to_data_url(data, mime_type)
        logger.debug("Encoded %s (%d bytes, %s)", url, len(data), mime_type)

        if self.cache is not None:
            self.cache.put(url, data_url)
        return data_url
