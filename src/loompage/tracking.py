"""Download tracking pings sent after an image has been selected."""

import asyncio
import logging
from urllib.parse import urlsplit

import aiohttp

from loompage.context import SearchContext


logger = logging.getLogger(__name__)


UNSPLASH_API_HOST = "api.unsplash.com"


def is_unsplash_download_location(url: str | None) -> bool:
    """Only Unsplash API download endpoints may receive the access key."""
    if not url:
        return False
    parts = urlsplit(url)
    return parts.scheme == "https" and parts.hostname == UNSPLASH_API_HOST


class DownloadTracker:
    """Notifies Unsplash that a photo was used.

    Tracking is best effort: one request, no retries, and every failure is
    logged and dropped so the selection flow is never affected. Locations
    outside the Unsplash API are refused without a request.
    """

    def __init__(self, context: SearchContext | None = None):
        self.context = context or SearchContext()

    async def track(self, download_location: str | None) -> bool:
        if not download_location:
            return False
        if not is_unsplash_download_location(download_location):
            logger.warning("Refusing to track download at non-Unsplash location %s", download_location)
            return False

        headers = {}
        if self.context.unsplash_access_key:
            headers['Authorization'] = f'Client-ID {self.context.unsplash_access_key}'

        try:
            timeout = aiohttp.ClientTimeout(total=self.context.request_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(download_location, headers=headers) as response:
                    if response.status != 200:
                        logger.warning("Download tracking returned HTTP %s", response.status)
                        return False
        except asyncio.TimeoutError:
            logger.warning("Download tracking timed out")
            return False
        except aiohttp.ClientError as e:
            logger.warning("Download tracking failed: %s", e)
            return False

        logger.debug("Tracked download %s", download_location)
        return True
