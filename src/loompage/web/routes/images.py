"""API routes for image search, tracking and embedding."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from loompage.context import SearchContext
from loompage.error_handling import ProviderError
from loompage.gallery import GalleryAggregator
from loompage.media import ImageFetcher
from loompage.models import ImageSource
from loompage.providers import ImageProvider
from loompage.tracking import DownloadTracker, is_unsplash_download_location
from loompage.waterfall import WaterfallOrchestrator
from loompage.web.models.web_models import (
    DataUrlRequest,
    GallerySearchRequest,
    ImageSearchRequest,
    TrackDownloadRequest,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class ImageServices:
    """Everything the routes need, built once per application."""
    context: SearchContext
    providers: List[ImageProvider]
    orchestrator: WaterfallOrchestrator
    gallery: GalleryAggregator
    tracker: DownloadTracker
    fetcher: ImageFetcher


def get_services(request: Request) -> ImageServices:
    return request.app.state.services


@router.post("/search")
async def search_image(
    payload: ImageSearchRequest,
    services: ImageServices = Depends(get_services),
) -> Dict[str, Any]:
    """Find one image through the provider waterfall."""
    result = await services.orchestrator.resolve(payload.to_query())

    if result.candidate is None:
        return {
            "imageUrl": None,
            "attribution": "",
            "source": ImageSource.NONE.value,
            "message": result.message,
        }

    response = result.candidate.to_response()
    response["message"] = result.message
    return response


@router.post("/gallery")
async def search_gallery(
    payload: GallerySearchRequest,
    services: ImageServices = Depends(get_services),
) -> Dict[str, Any]:
    """Return many images from every provider, interleaved."""
    result = await services.gallery.search(payload.to_query(), limit=payload.limit)
    return {
        "images": [image.to_response() for image in result.images],
        "query": result.query,
        "sources": result.sources,
        "printReadyCount": result.print_ready_count,
        "hasVerifiedArticleImage": result.has_verified_article_image,
        "message": result.message,
    }


@router.post("/track-download")
async def track_download(
    payload: TrackDownloadRequest,
    background_tasks: BackgroundTasks,
    services: ImageServices = Depends(get_services),
) -> Dict[str, bool]:
    """Ping the provider's download endpoint without blocking the caller."""
    if not is_unsplash_download_location(payload.download_location):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="downloadLocation must be an https://api.unsplash.com URL"
        )
    background_tasks.add_task(services.tracker.track, payload.download_location)
    return {"scheduled": True}


@router.post("/data-url")
async def image_data_url(
    payload: DataUrlRequest,
    services: ImageServices = Depends(get_services),
) -> Dict[str, str]:
    """Download an image and return it as a base64 data URL."""
    try:
        data_url = await services.fetcher.fetch_data_url(payload.url)
    except ProviderError as e:
        logger.warning("Could not embed %s: %s", payload.url, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to fetch image: {e}"
        )
    return {"dataUrl": data_url}


@router.get("/fetch-stats")
async def image_fetch_stats(services: ImageServices = Depends(get_services)) -> Dict[str, Any]:
    """Retry statistics of the image fetcher behind ``/data-url``."""
    return services.fetcher.recovery.get_error_statistics()
