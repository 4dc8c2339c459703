"""Multi-result gallery search: concurrent fan-out and weighted interleave."""

import asyncio
import logging
from typing import Dict, Iterable, List

from loompage.context import GallerySlot, SearchContext
from loompage.exclusion import normalize_url
from loompage.models import GalleryResult, ImageCandidate, ImageQuery, ImageSource
from loompage.providers import ImageProvider, SearchCriteria, WikimediaProvider
from loompage.query import anchor_query_to_topic, clean_query, is_query_usable, significant_tokens


logger = logging.getLogger(__name__)


DEFAULT_GALLERY_LIMIT = 150
MAX_GALLERY_LIMIT = 300


def interleave(groups: List[List[ImageCandidate]], weights: List[int], limit: int) -> List[ImageCandidate]:
    """Round-robin over ``groups`` taking ``weights[i]`` items from group i per round."""
    result: List[ImageCandidate] = []
    positions = [0] * len(groups)

    while len(result) < limit and any(pos < len(group) for pos, group in zip(positions, groups)):
        for index, group in enumerate(groups):
            for _ in range(weights[index]):
                if positions[index] >= len(group) or len(result) >= limit:
                    break
                result.append(group[positions[index]])
                positions[index] += 1

    return result


class GalleryAggregator:
    """Queries every provider concurrently and merges the results."""

    def __init__(self, providers: Iterable[ImageProvider], context: SearchContext | None = None):
        self.context = context or SearchContext()
        self.providers: Dict[ImageSource, ImageProvider] = {p.source: p for p in providers}

    def _criteria(self, slot: GallerySlot, query: ImageQuery, cleaned: str) -> SearchCriteria:
        return SearchCriteria(
            min_width=self.context.gallery_min_width,
            orientation=query.orientation,
            strict=query.for_cover and slot.source is ImageSource.WIKIMEDIA,
            for_cover=query.for_cover,
            relevance_tokens=significant_tokens(cleaned) if slot.source is ImageSource.UNSPLASH else frozenset(),
        )

    async def _article_image(self, cleaned: str, for_cover: bool) -> ImageCandidate | None:
        wikimedia = self.providers.get(ImageSource.WIKIMEDIA)
        if not isinstance(wikimedia, WikimediaProvider):
            return None
        return await wikimedia.find_article_image(cleaned, for_cover=for_cover)

    async def search(self, query: ImageQuery, limit: int = DEFAULT_GALLERY_LIMIT) -> GalleryResult:
        """Search all providers and return up to ``limit`` deduplicated images."""
        limit = max(1, min(limit, MAX_GALLERY_LIMIT))

        cleaned = clean_query(query.text)
        if not is_query_usable(cleaned):
            logger.info("Gallery query '%s' is empty after cleaning", query.text)
            return GalleryResult(query=cleaned, message="Query too short after cleaning")

        anchored = anchor_query_to_topic(cleaned, query.topic)

        slots: List[GallerySlot] = []
        calls = []
        for slot in self.context.gallery_plan:
            provider = self.providers.get(slot.source)
            if provider is None or not provider.is_available:
                continue
            slots.append(slot)
            criteria = self._criteria(slot, query, cleaned)
            for page in range(1, slot.pages + 1):
                calls.append(provider.search(
                    anchored, query.orientation, per_page=slot.per_page, page=page, criteria=criteria
                ))
            for suffix in slot.extra_queries:
                calls.append(provider.search(
                    f"{anchored} {suffix}", query.orientation, per_page=slot.per_page, criteria=criteria
                ))

        logger.info("Gallery search for '%s' across %d provider calls", anchored, len(calls))
        article, *pages = await asyncio.gather(
            self._article_image(cleaned, query.for_cover), *calls, return_exceptions=True
        )

        for outcome in (article, *pages):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome

        if isinstance(article, BaseException):
            logger.warning("Wikipedia article lookup failed: %s", article)
            article = None

        groups: List[List[ImageCandidate]] = []
        cursor = 0
        for slot in slots:
            group: List[ImageCandidate] = []
            for outcome in pages[cursor:cursor + slot.call_count]:
                if isinstance(outcome, BaseException):
                    logger.warning("%s gallery page failed: %s", slot.source.display_name, outcome)
                    continue
                group.extend(outcome)
            cursor += slot.call_count
            groups.append(group)

        seen = set()
        if article is not None:
            seen.add(normalize_url(article.image_url))

        deduped_groups = []
        for group in groups:
            unique = []
            for candidate in group:
                key = normalize_url(candidate.image_url)
                if key in seen:
                    continue
                seen.add(key)
                unique.append(candidate)
            deduped_groups.append(unique)

        remaining = limit - (1 if article is not None else 0)
        images = interleave(deduped_groups, [slot.weight for slot in slots], remaining)
        if article is not None:
            images.insert(0, article)

        sources = {slot.source.value: len(group) for slot, group in zip(slots, deduped_groups)}
        if article is not None:
            sources[ImageSource.WIKIMEDIA.value] = sources.get(ImageSource.WIKIMEDIA.value, 0) + 1

        print_ready_count = sum(1 for image in images if image.is_print_ready)
        logger.info(
            "Gallery for '%s': %d images (%s), %d print ready",
            anchored, len(images), sources, print_ready_count
        )

        return GalleryResult(
            images=images,
            query=cleaned,
            sources=sources,
            print_ready_count=print_ready_count,
            has_verified_article_image=article is not None,
            message="" if images else f"No images found for '{anchored}'",
        )
