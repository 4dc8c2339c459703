"""Unit tests for data models and configuration."""

import pytest
from pydantic import ValidationError

from loompage.context import SearchContext, get_default_context
from loompage.models import (
    GalleryResult,
    ImageQuery,
    ImageSource,
    Orientation,
    WaterfallResult,
)


class TestImageQuery:
    """Test the ImageQuery model."""

    def test_defaults(self):
        query = ImageQuery(text="mountain cabin")
        assert query.orientation == Orientation.LANDSCAPE
        assert query.topic is None
        assert query.excluded_urls == frozenset()
        assert query.for_cover is False

    def test_length_limits(self):
        with pytest.raises(ValidationError):
            ImageQuery(text="")
        with pytest.raises(ValidationError):
            ImageQuery(text="x" * 201)
        assert ImageQuery(text="x" * 200).text == "x" * 200

    def test_blank_topic_becomes_none(self):
        assert ImageQuery(text="cabin", topic="   ").topic is None

    def test_frozen(self):
        query = ImageQuery(text="mountain cabin", topic="Aspen")

        with pytest.raises(ValidationError):
            query.text = "changed"


class TestImageCandidate:
    """Test the ImageCandidate model."""

    def test_response_shape(self, candidate_factory):
        candidate = candidate_factory(ImageSource.PEXELS, "cabin", width=2400, height=1600)
        response = candidate.to_response()

        assert response["imageUrl"] == candidate.image_url
        assert response["thumbnailUrl"] == candidate.thumbnail_url
        assert response["source"] == "pexels"
        assert response["isPrintReady"] is True
        assert response["downloadLocation"] is None
        assert not candidate.is_portrait

    def test_display_names(self):
        assert ImageSource.WIKIMEDIA.display_name == "Wikimedia Commons"
        assert ImageSource.UNSPLASH.display_name == "Unsplash"


class TestResults:
    """Test result containers."""

    def test_waterfall_result_found(self, candidate_factory):
        assert not WaterfallResult(message="nothing").found
        assert WaterfallResult(candidate=candidate_factory()).found

    def test_gallery_result_defaults(self):
        result = GalleryResult()
        assert result.images == []
        assert result.sources == {}
        assert result.has_verified_article_image is False


class TestSearchContext:
    """Test configuration loading."""

    def test_defaults(self):
        context = SearchContext()
        assert context.request_timeout == 10.0
        assert context.gallery_min_width == 1200
        assert context.waterfall_min_width == 1600
        assert context.print_ready_width == 1800
        assert context.provider_priority == [
            ImageSource.UNSPLASH, ImageSource.PIXABAY, ImageSource.PEXELS, ImageSource.WIKIMEDIA
        ]
        assert [slot.weight for slot in context.gallery_plan] == [3, 2, 1, 1]

    def test_credential_for(self):
        context = SearchContext(unsplash_access_key="u", pexels_api_key="p")
        assert context.credential_for(ImageSource.UNSPLASH) == "u"
        assert context.credential_for(ImageSource.PEXELS) == "p"
        assert context.credential_for(ImageSource.PIXABAY) is None
        assert context.credential_for(ImageSource.WIKIMEDIA) is None

    def test_get_default_context_reads_environment(self, monkeypatch):
        monkeypatch.setenv("UNSPLASH_ACCESS_KEY", "unsplash-key")
        monkeypatch.setenv("PEXELS_API_KEY", "")
        monkeypatch.setenv("PIXABAY_API_KEY", "pixabay-key")
        monkeypatch.setenv("LOOMPAGE_REQUEST_TIMEOUT", "6")
        monkeypatch.setenv("LOOMPAGE_PROVIDER_PRIORITY", "pexels, wikimedia,pexels")
        monkeypatch.setenv("WIKIMEDIA_USER_AGENT", "TestAgent/1.0")

        context = get_default_context()

        assert context.unsplash_access_key == "unsplash-key"
        assert context.pexels_api_key is None
        assert context.pixabay_api_key == "pixabay-key"
        assert context.request_timeout == 6.0
        assert context.provider_priority == [ImageSource.PEXELS, ImageSource.WIKIMEDIA]
        assert context.wikimedia_user_agent == "TestAgent/1.0"

    def test_unknown_provider_in_priority(self, monkeypatch):
        monkeypatch.setenv("LOOMPAGE_PROVIDER_PRIORITY", "flickr")
        with pytest.raises(ValueError):
            get_default_context()
