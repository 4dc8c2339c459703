"""FastAPI web application for the Loom & Page image resolver."""

import logging
import os
from typing import Iterable, List

import uvicorn
from dotenv import find_dotenv, load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from loompage import __version__
from loompage.context import SearchContext, get_default_context
from loompage.gallery import GalleryAggregator
from loompage.media import DataUrlCache, ImageFetcher
from loompage.providers import ImageProvider, ProviderFactory
from loompage.tracking import DownloadTracker
from loompage.waterfall import WaterfallOrchestrator
from loompage.web.routes import images
from loompage.web.routes.images import ImageServices


# Initialize logger
logger = logging.getLogger(__name__)

# Load environment variables from the nearest .env file
load_dotenv(find_dotenv(usecwd=True))

UNAUTHENTICATED_PATHS = ["/health", "/docs", "/openapi.json"]


def _get_valid_api_keys() -> List[str]:
    """Get list of valid API keys from environment variables."""
    api_keys = []

    # Check for comma-separated API keys
    keys_env = os.getenv('LOOMPAGE_API_KEYS', '')
    if keys_env:
        api_keys.extend([key.strip() for key in keys_env.split(',') if key.strip()])

    # Check for single API key
    single_key = os.getenv('LOOMPAGE_API_KEY', '')
    if single_key and single_key not in api_keys:
        api_keys.append(single_key)

    return api_keys


def build_services(
    context: SearchContext,
    providers: Iterable[ImageProvider] | None = None,
) -> ImageServices:
    """Wire providers, orchestrators and helpers for one application."""
    provider_list = list(providers) if providers is not None else ProviderFactory.create_all(context)
    return ImageServices(
        context=context,
        providers=provider_list,
        orchestrator=WaterfallOrchestrator(provider_list, context),
        gallery=GalleryAggregator(provider_list, context),
        tracker=DownloadTracker(context),
        fetcher=ImageFetcher(context, cache=DataUrlCache()),
    )


def create_app(
    context: SearchContext | None = None,
    providers: Iterable[ImageProvider] | None = None,
    api_keys: List[str] | None = None,
    services: ImageServices | None = None,
) -> FastAPI:
    """Create the API application.

    Args:
        context: Search configuration; read from the environment when omitted.
        providers: Provider adapters; built from ``context`` when omitted.
        api_keys: Accepted API keys; read from ``LOOMPAGE_API_KEYS`` when omitted.
            An empty list disables authentication.
        services: Fully wired services, overriding ``context`` and ``providers``.
    """
    context = context or get_default_context()

    api_app = FastAPI(
        title="Loom & Page Image Resolver",
        description="Multi-source image waterfall and gallery search for generated books",
        version=__version__,
    )
    api_app.state.services = services or build_services(context, providers)

    # Add CORS middleware
    api_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add API key authentication middleware if configured
    keys = _get_valid_api_keys() if api_keys is None else list(api_keys)
    if keys:
        @api_app.middleware("http")
        async def authenticate_api_key(request: Request, call_next):
            # Skip authentication for health check, docs and CORS preflight
            if request.url.path in UNAUTHENTICATED_PATHS or request.method == "OPTIONS":
                return await call_next(request)

            provided_key = request.headers.get("X-API-Key") or request.headers.get("Authorization", "").replace("Bearer ", "")

            if not provided_key or provided_key not in keys:
                return JSONResponse(
                    status_code=401,
                    content={"detail": "Invalid or missing API key"}
                )

            return await call_next(request)

    api_app.include_router(images.router, prefix="/api/images", tags=["images"])

    @api_app.get("/api/providers", tags=["providers"])
    async def list_providers():
        state: ImageServices = api_app.state.services
        return {
            "providers": [
                {
                    "source": provider.source.value,
                    "name": provider.display_name,
                    "available": provider.is_available,
                }
                for provider in state.providers
            ],
            "priority": [source.value for source in state.context.provider_priority],
        }

    # Health check
    @api_app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "loompage-image-resolver", "version": __version__}

    logger.debug("Created API app with %d providers", len(api_app.state.services.providers))
    return api_app


app = create_app()


def run_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Run the FastAPI server."""
    uvicorn.run(
        "loompage.web.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    run_server()
