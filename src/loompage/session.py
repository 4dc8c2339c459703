"""A book-generation session that never reuses an image."""

import logging
from typing import Iterable, List, Tuple

from loompage.exclusion import ExclusionSet
from loompage.models import MAX_QUERY_LENGTH, ImageCandidate, ImageQuery, Orientation
from loompage.waterfall import WaterfallOrchestrator


logger = logging.getLogger(__name__)


def _fit_query_text(text: str | None) -> str:
    """Blank text becomes ""; long text is cut at a word boundary to the query limit."""
    text = ' '.join((text or '').split())
    if len(text) <= MAX_QUERY_LENGTH:
        return text
    head = text[:MAX_QUERY_LENGTH + 1]
    if ' ' in head:
        return head.rsplit(' ', 1)[0]
    return text[:MAX_QUERY_LENGTH]


class ImageSession:
    """Resolves the images of one book, excluding every URL already chosen."""

    def __init__(
        self,
        orchestrator: WaterfallOrchestrator,
        topic: str | None = None,
        for_cover: bool = False,
    ):
        self.orchestrator = orchestrator
        self.topic = topic
        self.for_cover = for_cover
        self.exclusions = ExclusionSet()

    async def resolve(
        self,
        text: str,
        orientation: Orientation = Orientation.LANDSCAPE,
    ) -> ImageCandidate | None:
        text = _fit_query_text(text)
        if not text:
            logger.info("Skipping empty image query")
            return None

        query = ImageQuery(
            text=text,
            orientation=orientation,
            topic=self.topic,
            for_cover=self.for_cover,
        )
        result = await self.orchestrator.resolve(query, exclude=self.exclusions)
        if result.candidate is None:
            logger.info("No image for '%s': %s", text, result.message)
            return None

        self.exclusions.add(result.candidate.image_url)
        return result.candidate

    async def resolve_many(
        self,
        requests: Iterable[str | Tuple[str, Orientation]],
    ) -> List[ImageCandidate | None]:
        """Resolve requests in order; missing images come back as None."""
        results: List[ImageCandidate | None] = []
        for request in requests:
            if isinstance(request, str):
                text, orientation = request, Orientation.LANDSCAPE
            else:
                text, orientation = request
            results.append(await self.resolve(text, orientation))

        found = sum(1 for r in results if r is not None)
        logger.info("Session resolved %d of %d images", found, len(results))
        return results
