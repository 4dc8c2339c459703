"""Image search providers for Unsplash, Pixabay, Pexels and Wikimedia Commons."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping
from urllib.parse import unquote

import aiohttp

from loompage.context import SearchContext
from loompage.error_handling import ErrorAnalyzer, ErrorCategory
from loompage.exclusion import ExclusionSet
from loompage.models import ImageCandidate, ImageSource, Orientation


logger = logging.getLogger(__name__)


UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
PIXABAY_SEARCH_URL = "https://pixabay.com/api/"
PEXELS_SEARCH_URL = "https://api.pexels.com/v1/search"
COMMONS_API_URL = "https://commons.wikimedia.org/w/api.php"
WIKIPEDIA_API_URL = "https://en.wikipedia.org/w/api.php"

UNSPLASH_RAW_PARAMS = "&w=2000&q=80&fm=jpg"

_HTML_TAGS = re.compile(r'<[^>]*>')
_SHARE_ALIKE = re.compile(r'by-sa|sharealike|gfdl|(?<![a-z])sa(?![a-z])')


def is_cover_safe_license(license_name: str) -> bool:
    """ShareAlike and GFDL licenses cannot be used on a commercial cover."""
    return not _SHARE_ALIKE.search((license_name or "").lower())


def strip_html(value: str | None) -> str:
    return _HTML_TAGS.sub('', value or '').strip()


@dataclass(frozen=True)
class SearchCriteria:
    """Filters a provider applies to every parsed candidate."""
    min_width: int = 1200
    orientation: Orientation = Orientation.LANDSCAPE
    exclude: ExclusionSet | None = field(default=None, compare=False)
    strict: bool = False
    for_cover: bool = False
    relevance_tokens: FrozenSet[str] = frozenset()


class ImageProvider(ABC):
    """Abstract base class for image search providers."""

    source: ImageSource
    max_per_page: int = 30
    first_page_size: int = 30

    def __init__(self, context: SearchContext, credential: str | None = None):
        self.context = context
        self.credential = credential if credential is not None else context.credential_for(self.source)
        self._reported_unavailable = False

    @property
    def display_name(self) -> str:
        return self.source.display_name

    @property
    def is_available(self) -> bool:
        """Whether the provider has the credential it needs."""
        return bool(self.credential)

    @abstractmethod
    async def fetch_hits(
        self,
        query: str,
        orientation: Orientation,
        per_page: int,
        page: int = 1,
    ) -> List[Dict[str, Any]]:
        """Run one search request and return the raw hits."""
        pass

    @abstractmethod
    def parse_hit(self, hit: Mapping[str, Any]) -> ImageCandidate | None:
        """Turn one raw hit into a candidate, or None when it is unusable."""
        pass

    def accepts(self, candidate: ImageCandidate, criteria: SearchCriteria) -> bool:
        """Width floor and exclusion checks shared by every provider."""
        if candidate.width < criteria.min_width:
            return False
        if criteria.exclude is not None and (
            candidate.image_url in criteria.exclude or candidate.thumbnail_url in criteria.exclude
        ):
            logger.debug("Skipping excluded %s image %s", self.display_name, candidate.id)
            return False
        return True

    async def search(
        self,
        query: str,
        orientation: Orientation = Orientation.LANDSCAPE,
        per_page: int | None = None,
        page: int = 1,
        criteria: SearchCriteria | None = None,
    ) -> List[ImageCandidate]:
        """Gallery mode: every accepted candidate of one page, in provider order."""
        if not self._check_available():
            return []

        per_page = min(per_page or self.max_per_page, self.max_per_page)
        criteria = criteria or SearchCriteria(
            min_width=self.context.gallery_min_width, orientation=orientation
        )

        hits = await self.fetch_hits(query, orientation, per_page, page)
        results: List[ImageCandidate] = []
        for hit in hits:
            candidate = self._parse(hit)
            if candidate is None or not self.accepts(candidate, criteria):
                continue
            results.append(candidate)
            if len(results) >= per_page:
                break

        logger.info(
            "%s returned %d usable images for '%s' (page %d, filtered from %d)",
            self.display_name, len(results), query, page, len(hits)
        )
        return results

    async def find_first(
        self,
        query: str,
        orientation: Orientation,
        criteria: SearchCriteria,
    ) -> ImageCandidate | None:
        """Single-result mode: the first accepted candidate, or None."""
        if not self._check_available():
            return None

        hits = await self.fetch_hits(query, orientation, min(self.first_page_size, self.max_per_page), 1)
        for hit in hits:
            candidate = self._parse(hit)
            if candidate is not None and self.accepts(candidate, criteria):
                logger.info(
                    "%s match for '%s': %s (%dx%d)",
                    self.display_name, query, candidate.id, candidate.width, candidate.height
                )
                return candidate

        logger.debug("%s had no acceptable image for '%s' (%d hits)", self.display_name, query, len(hits))
        return None

    def _check_available(self) -> bool:
        if self.is_available:
            return True
        if not self._reported_unavailable:
            logger.debug("%s is not configured, skipping", self.display_name)
            self._reported_unavailable = True
        return False

    def _parse(self, hit: Any) -> ImageCandidate | None:
        try:
            return self.parse_hit(hit)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug("Ignoring malformed %s hit: %s", self.display_name, e)
            return None

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.context.request_timeout)

    async def _get_json(
        self,
        url: str,
        params: Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
    ) -> Any | None:
        """One GET request; every failure is logged and reported as None."""
        try:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.get(url, params=dict(params), headers=dict(headers or {})) as response:
                    if response.status != 200:
                        category = ErrorAnalyzer.categorize_status(response.status)
                        logger.warning(
                            "%s API error: HTTP %s (%s)", self.display_name, response.status, category.value
                        )
                        return None
                    return await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.warning(
                "%s request timed out after %.1fs (%s)",
                self.display_name, self.context.request_timeout, ErrorCategory.TIMEOUT.value
            )
        except aiohttp.ClientError as e:
            logger.warning("%s request failed (%s): %s", self.display_name, ErrorCategory.NETWORK_ERROR.value, e)
        except ValueError as e:
            logger.warning("%s returned malformed JSON (%s): %s", self.display_name, ErrorCategory.MALFORMED_RESPONSE.value, e)
        return None

    def _attribution(self, name: str | None) -> str:
        name = (name or "").strip()
        if name:
            return f"Photo by {name} via {self.display_name}"
        return f"Source: {self.display_name}"

    def _is_print_ready(self, width: int) -> bool:
        return width >= self.context.print_ready_width


class UnsplashProvider(ImageProvider):
    """Unsplash photo search with Client-ID authentication."""

    source = ImageSource.UNSPLASH
    max_per_page = 30

    async def fetch_hits(self, query, orientation, per_page, page=1):
        params = {
            'query': query,
            'orientation': orientation.value,
            'per_page': min(per_page, self.max_per_page),
            'page': page,
        }
        headers = {'Authorization': f'Client-ID {self.credential}', 'Accept-Version': 'v1'}
        data = await self._get_json(UNSPLASH_SEARCH_URL, params, headers)
        if not isinstance(data, dict):
            return []
        return data.get('results') or []

    def parse_hit(self, hit):
        urls = hit.get('urls') or {}
        raw = urls.get('raw')
        image_url = f"{raw}{UNSPLASH_RAW_PARAMS}" if raw else (urls.get('full') or urls.get('regular'))
        if not image_url:
            return None

        user = hit.get('user') or {}
        width = int(hit.get('width') or 0)
        description = ' '.join(
            part for part in (
                hit.get('alt_description'),
                hit.get('description'),
                hit.get('slug'),
            ) if part
        )

        return ImageCandidate(
            id=f"unsplash-{hit['id']}",
            source=self.source,
            image_url=image_url,
            thumbnail_url=urls.get('small') or urls.get('thumb') or image_url,
            width=width,
            height=int(hit.get('height') or 0),
            attribution=self._attribution(user.get('name') or user.get('username')),
            license="Unsplash License",
            is_print_ready=self._is_print_ready(width),
            description=description,
            page_url=(hit.get('links') or {}).get('html'),
            download_location=(hit.get('links') or {}).get('download_location'),
        )

    def accepts(self, candidate, criteria):
        if not super().accepts(candidate, criteria):
            return False
        if criteria.relevance_tokens:
            text = candidate.description.lower().replace('-', ' ')
            if not any(token in text for token in criteria.relevance_tokens):
                logger.debug("Unsplash image %s is off-topic, skipping", candidate.id)
                return False
        return True


class PixabayProvider(ImageProvider):
    """Pixabay photo search; the key travels in the query string."""

    source = ImageSource.PIXABAY
    max_per_page = 200

    async def fetch_hits(self, query, orientation, per_page, page=1):
        params = {
            'key': self.credential,
            'q': query,
            'orientation': 'vertical' if orientation is Orientation.PORTRAIT else 'horizontal',
            'per_page': max(3, min(per_page, self.max_per_page)),
            'page': page,
            'image_type': 'photo',
            'safesearch': 'true',
        }
        data = await self._get_json(PIXABAY_SEARCH_URL, params)
        if not isinstance(data, dict):
            return []
        return data.get('hits') or []

    def parse_hit(self, hit):
        image_url = hit.get('largeImageURL') or hit.get('webformatURL')
        if not image_url:
            return None

        # imageWidth is the original upload, webformatWidth is a resize
        width = int(hit.get('imageWidth') or 0)
        return ImageCandidate(
            id=f"pixabay-{hit['id']}",
            source=self.source,
            image_url=image_url,
            thumbnail_url=hit.get('webformatURL') or hit.get('previewURL') or image_url,
            width=width,
            height=int(hit.get('imageHeight') or 0),
            attribution=self._attribution(hit.get('user')),
            license="Pixabay License",
            is_print_ready=self._is_print_ready(width),
            description=hit.get('tags') or '',
            page_url=hit.get('pageURL'),
        )


class PexelsProvider(ImageProvider):
    """Pexels photo search; the key is sent as the Authorization header."""

    source = ImageSource.PEXELS
    max_per_page = 80

    async def fetch_hits(self, query, orientation, per_page, page=1):
        params = {
            'query': query,
            'orientation': orientation.value,
            'per_page': min(per_page, self.max_per_page),
            'page': page,
        }
        data = await self._get_json(PEXELS_SEARCH_URL, params, {'Authorization': self.credential})
        if not isinstance(data, dict):
            return []
        return data.get('photos') or []

    def parse_hit(self, hit):
        src = hit.get('src') or {}
        image_url = src.get('large2x') or src.get('original') or src.get('large')
        if not image_url:
            return None

        width = int(hit.get('width') or 0)
        return ImageCandidate(
            id=f"pexels-{hit['id']}",
            source=self.source,
            image_url=image_url,
            thumbnail_url=src.get('medium') or src.get('small') or image_url,
            width=width,
            height=int(hit.get('height') or 0),
            attribution=self._attribution(hit.get('photographer')),
            license="Pexels License",
            is_print_ready=self._is_print_ready(width),
            description=hit.get('alt') or '',
            page_url=hit.get('url'),
        )


class WikimediaProvider(ImageProvider):
    """Wikimedia Commons file search, plus Wikipedia article lead images.

    Needs no credential but identifies itself with a descriptive User-Agent
    as the Wikimedia API policy requires.
    """

    source = ImageSource.WIKIMEDIA
    max_per_page = 50
    first_page_size = 50

    @property
    def is_available(self) -> bool:
        return True

    @property
    def _headers(self) -> Dict[str, str]:
        return {'User-Agent': self.context.wikimedia_user_agent}

    async def fetch_hits(self, query, orientation, per_page, page=1):
        limit = min(per_page, self.max_per_page)
        params = {
            'action': 'query',
            'format': 'json',
            'generator': 'search',
            'gsrnamespace': 6,
            'gsrsearch': query,
            'gsrlimit': limit,
            'prop': 'imageinfo',
            'iiprop': 'url|extmetadata|size|mime',
            'iiurlwidth': 1200,
            'origin': '*',
        }
        if page > 1:
            params['gsroffset'] = (page - 1) * limit

        data = await self._get_json(COMMONS_API_URL, params, self._headers)
        if not isinstance(data, dict):
            return []
        pages = (data.get('query') or {}).get('pages') or {}
        # Keep search rank order
        return sorted(pages.values(), key=lambda p: p.get('index', 0))

    def parse_hit(self, hit):
        info = (hit.get('imageinfo') or [None])[0]
        if not info:
            return None
        if not (info.get('mime') or '').startswith('image/'):
            return None

        image_url = info.get('url') or info.get('thumburl')
        if not image_url:
            return None

        metadata = info.get('extmetadata') or {}
        artist = strip_html((metadata.get('Artist') or {}).get('value'))
        license_name = (
            (metadata.get('LicenseShortName') or {}).get('value')
            or (metadata.get('License') or {}).get('value')
            or 'CC'
        )
        description = strip_html((metadata.get('ImageDescription') or {}).get('value')) or hit.get('title', '')

        width = int(info.get('width') or 0)
        return ImageCandidate(
            id=f"wikimedia-{hit['pageid']}",
            source=self.source,
            image_url=image_url,
            thumbnail_url=info.get('thumburl') or image_url,
            width=width,
            height=int(info.get('height') or 0),
            attribution=self._attribution(artist),
            license=license_name,
            is_print_ready=self._is_print_ready(width),
            description=description,
            page_url=info.get('descriptionurl'),
        )

    def accepts(self, candidate, criteria):
        if not super().accepts(candidate, criteria):
            return False
        if criteria.strict:
            if candidate.width < self.context.print_ready_width:
                return False
            if criteria.orientation is Orientation.LANDSCAPE and candidate.is_portrait:
                logger.debug("Rejecting portrait Wikimedia image %s for landscape use", candidate.id)
                return False
        if criteria.for_cover and not is_cover_safe_license(candidate.license):
            logger.info("Skipping Wikimedia image %s with license '%s' for cover", candidate.id, candidate.license)
            return False
        return True

    async def find_article_image(self, query: str, for_cover: bool = False) -> ImageCandidate | None:
        """Lead image of the best matching English Wikipedia article.

        Only returned when it is print ready (and cover-safe when asked).
        """
        search = await self._get_json(WIKIPEDIA_API_URL, {
            'action': 'query',
            'format': 'json',
            'list': 'search',
            'srsearch': query,
            'srlimit': 3,
            'origin': '*',
        }, self._headers)
        articles = ((search or {}).get('query') or {}).get('search') or []
        if not articles:
            logger.debug("No Wikipedia article found for '%s'", query)
            return None

        title = articles[0].get('title')
        if not title:
            return None

        page_data = await self._get_json(WIKIPEDIA_API_URL, {
            'action': 'query',
            'format': 'json',
            'titles': title,
            'prop': 'pageimages',
            'piprop': 'original',
            'origin': '*',
        }, self._headers)
        pages = ((page_data or {}).get('query') or {}).get('pages') or {}
        original = next(iter(pages.values()), {}).get('original') or {}
        source_url = original.get('source')
        if not source_url:
            logger.debug("Wikipedia article '%s' has no lead image", title)
            return None

        width = int(original.get('width') or 0)
        height = int(original.get('height') or 0)
        image_url = source_url
        artist = ''
        license_name = 'Wikipedia'

        file_name = unquote(source_url.rsplit('/', 1)[-1].split('?', 1)[0])
        info_data = await self._get_json(COMMONS_API_URL, {
            'action': 'query',
            'format': 'json',
            'titles': f"File:{file_name}",
            'prop': 'imageinfo',
            'iiprop': 'url|extmetadata|size',
            'origin': '*',
        }, self._headers)
        info_pages = ((info_data or {}).get('query') or {}).get('pages') or {}
        info = (next(iter(info_pages.values()), {}).get('imageinfo') or [None])[0]
        if info:
            width = int(info.get('width') or width)
            height = int(info.get('height') or height)
            image_url = info.get('url') or image_url
            metadata = info.get('extmetadata') or {}
            artist = strip_html((metadata.get('Artist') or {}).get('value'))
            license_name = (
                (metadata.get('LicenseShortName') or {}).get('value')
                or (metadata.get('License') or {}).get('value')
                or license_name
            )

        if width < self.context.print_ready_width:
            logger.info("Wikipedia image for '%s' too small for print (%dpx)", title, width)
            return None
        if for_cover and not is_cover_safe_license(license_name):
            logger.info("Wikipedia image for '%s' has license '%s', not usable on a cover", title, license_name)
            return None

        logger.info("Verified Wikipedia article image for '%s' (%dx%d, %s)", title, width, height, license_name)
        slug = re.sub(r'\s+', '-', title).lower()
        return ImageCandidate(
            id=f"wikipedia-article-{slug}",
            source=self.source,
            image_url=image_url,
            thumbnail_url=source_url,
            width=width,
            height=height,
            attribution=self._attribution(artist),
            license=license_name,
            is_print_ready=True,
            description=title,
            page_url=f"https://en.wikipedia.org/wiki/{title.replace(' ', '_')}",
        )


class ProviderFactory:
    """Factory for creating image search providers."""

    _PROVIDERS = {
        ImageSource.UNSPLASH: UnsplashProvider,
        ImageSource.PIXABAY: PixabayProvider,
        ImageSource.PEXELS: PexelsProvider,
        ImageSource.WIKIMEDIA: WikimediaProvider,
    }

    @staticmethod
    def create_provider(source: ImageSource | str, context: SearchContext) -> ImageProvider:
        """Create a provider for ``source`` configured from ``context``."""
        if isinstance(source, str):
            source = ImageSource(source.lower())

        provider_class = ProviderFactory._PROVIDERS.get(source)
        if provider_class is None:
            raise ValueError(f"Unsupported image source: {source.value}")
        return provider_class(context)

    @staticmethod
    def create_all(context: SearchContext) -> List[ImageProvider]:
        """Create every provider, in the configured priority order."""
        ordered = list(context.provider_priority)
        ordered += [source for source in ProviderFactory._PROVIDERS if source not in ordered]
        return [ProviderFactory.create_provider(source, context) for source in ordered]
