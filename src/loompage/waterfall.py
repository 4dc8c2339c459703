"""Single-result waterfall search across the configured providers."""

import logging
from typing import Iterable, List, Set, Tuple

from loompage.context import SearchContext
from loompage.exclusion import ExclusionSet
from loompage.models import ImageQuery, ImageSource, WaterfallResult
from loompage.providers import ImageProvider, SearchCriteria
from loompage.query import (
    anchor_query_to_topic,
    clean_query,
    extract_topic_anchor,
    first_significant_token,
    generate_fallback_queries,
    is_landmark_query,
    is_query_usable,
)


logger = logging.getLogger(__name__)


NO_SUITABLE_QUERY = "No suitable query"


class WaterfallOrchestrator:
    """Tries providers in priority order and returns the first acceptable image.

    Each provider gets the anchored query and then its fallbacks before the
    next provider is asked. When every provider comes back empty a single
    emergency search (``"{anchor} landscape"``) is run against each of them.
    Nothing here raises for "no image": the result carries ``candidate=None``.
    """

    def __init__(self, providers: Iterable[ImageProvider], context: SearchContext | None = None):
        self.context = context or SearchContext()
        self.providers: List[ImageProvider] = list(providers)

    def provider_order(self, landmark: bool = False) -> List[ImageProvider]:
        """Providers in configured priority; landmarks put Wikimedia first."""
        rank = {source: index for index, source in enumerate(self.context.provider_priority)}
        ordered = sorted(
            self.providers,
            key=lambda p: rank.get(p.source, len(rank) + self.providers.index(p))
        )
        if landmark:
            ordered.sort(key=lambda p: p.source is not ImageSource.WIKIMEDIA)
        return ordered

    def _criteria(
        self,
        provider: ImageProvider,
        query: ImageQuery,
        exclusions: ExclusionSet,
        strict: bool,
    ) -> SearchCriteria:
        return SearchCriteria(
            min_width=self.context.waterfall_min_width,
            orientation=query.orientation,
            exclude=exclusions,
            strict=strict and provider.source is ImageSource.WIKIMEDIA,
            for_cover=query.for_cover,
        )

    async def resolve(self, query: ImageQuery, exclude: ExclusionSet | None = None) -> WaterfallResult:
        """Resolve one query to at most one image.

        Args:
            query: The image request.
            exclude: Session-wide exclusions, merged with ``query.excluded_urls``.
        """
        cleaned = clean_query(query.text)
        if not is_query_usable(cleaned):
            logger.info("Query '%s' is empty after cleaning, skipping search", query.text)
            return WaterfallResult(query=cleaned, message=NO_SUITABLE_QUERY)

        anchored = anchor_query_to_topic(cleaned, query.topic)
        if exclude is not None:
            exclusions = exclude.union(query.excluded_urls)
        else:
            exclusions = ExclusionSet(query.excluded_urls)

        landmark = is_landmark_query(anchored)
        strict = landmark or query.for_cover
        order = [p for p in self.provider_order(landmark) if p.is_available]
        fallbacks = generate_fallback_queries(anchored)

        logger.info(
            "Waterfall search for '%s' (landmark=%s, cover=%s) across %s",
            anchored, landmark, query.for_cover, [p.source.value for p in order]
        )

        attempts = 0
        tried: Set[Tuple[ImageSource, str]] = set()

        for provider in order:
            criteria = self._criteria(provider, query, exclusions, strict)
            for text in [anchored, *fallbacks]:
                key = (provider.source, text.lower())
                if key in tried:
                    continue
                tried.add(key)
                attempts += 1

                candidate = await provider.find_first(text, query.orientation, criteria)
                if candidate is not None:
                    return WaterfallResult(
                        candidate=candidate,
                        query=anchored,
                        attempts=attempts,
                        message=f"Found on {provider.display_name} for '{text}'",
                    )
            logger.info("%s exhausted for '%s'", provider.display_name, anchored)

        anchor = extract_topic_anchor(query.topic) or first_significant_token(anchored)
        if anchor:
            emergency = f"{anchor} {self.context.emergency_modifier}"
            logger.info("All providers failed, trying emergency search '%s'", emergency)
            for provider in order:
                key = (provider.source, emergency.lower())
                if key in tried:
                    continue
                tried.add(key)
                attempts += 1

                criteria = self._criteria(provider, query, exclusions, strict)
                candidate = await provider.find_first(emergency, query.orientation, criteria)
                if candidate is not None:
                    return WaterfallResult(
                        candidate=candidate,
                        query=anchored,
                        attempts=attempts,
                        message=f"Found on {provider.display_name} with broad search '{emergency}'",
                    )

        logger.info("No image found for '%s' after %d attempts", anchored, attempts)
        return WaterfallResult(
            query=anchored,
            attempts=attempts,
            message=f"No suitable image found for '{anchored}'",
        )
