"""Unit tests for the single-result waterfall search."""

from unittest.mock import AsyncMock

import pytest

from loompage.context import SearchContext
from loompage.exclusion import ExclusionSet
from loompage.models import ImageQuery, ImageSource, Orientation
from loompage.providers import WikimediaProvider
from loompage.waterfall import NO_SUITABLE_QUERY, WaterfallOrchestrator


U, X, P, W = ImageSource.UNSPLASH, ImageSource.PIXABAY, ImageSource.PEXELS, ImageSource.WIKIMEDIA


@pytest.fixture
def call_log():
    return []


@pytest.fixture
def build(fake_provider, call_log):
    """Build an orchestrator from ``{source: responses}``, returning it and the fakes."""

    def _build(responses=None, unavailable=(), context=None):
        responses = responses or {}
        context = context or SearchContext()
        fakes = {
            source: fake_provider(
                source,
                responses.get(source),
                available=source not in unavailable,
                context=context,
                log=call_log,
            )
            for source in (U, X, P, W)
        }
        return WaterfallOrchestrator(list(fakes.values()), context), fakes

    return _build


class TestWaterfallOrchestrator:
    """Test provider ordering, fallbacks and filters."""

    @pytest.mark.asyncio
    async def test_unusable_query_short_circuits(self, build, call_log):
        orchestrator, _ = build()

        result = await orchestrator.resolve(ImageQuery(text="no people, high quality"))

        assert result.candidate is None
        assert result.message == NO_SUITABLE_QUERY
        assert result.attempts == 0
        assert call_log == []

    @pytest.mark.asyncio
    async def test_primary_hit_stops_the_search(self, build, call_log, candidate_factory):
        hit = candidate_factory(U, "cabin")
        orchestrator, fakes = build({U: {"aspen mountain cabin": [hit]}})

        result = await orchestrator.resolve(
            ImageQuery(text="no people mountain cabin", topic="Aspen Colorado")
        )

        assert result.candidate == hit
        assert result.query == "Aspen mountain cabin"
        assert result.attempts == 1
        assert call_log == [(U, "Aspen mountain cabin")]

    @pytest.mark.asyncio
    async def test_scenario_mountain_cabin_takes_first_wide_landscape(self, build, candidate_factory):
        narrow = candidate_factory(U, "narrow", width=1500, height=1000)
        wide = candidate_factory(U, "wide", width=2400, height=1600)
        orchestrator, _ = build({U: {"aspen mountain cabin": [narrow, wide]}})

        result = await orchestrator.resolve(
            ImageQuery(text="no people mountain cabin", orientation=Orientation.LANDSCAPE, topic="Aspen Colorado")
        )

        assert result.candidate == wide
        assert result.candidate.width >= 1600

    @pytest.mark.asyncio
    async def test_fallbacks_exhausted_per_provider(self, build, call_log, candidate_factory):
        fallback_hit = candidate_factory(U, "fallback")
        exact_hit = candidate_factory(X, "exact")
        orchestrator, _ = build({
            U: {"aspen mountain": [fallback_hit]},
            X: {"aspen mountain cabin": [exact_hit]},
        })

        result = await orchestrator.resolve(ImageQuery(text="mountain cabin", topic="Aspen"))

        assert result.candidate == fallback_hit
        assert call_log == [(U, "Aspen mountain cabin"), (U, "Aspen mountain")]
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_landmark_routes_to_wikimedia_first(self, build, call_log):
        orchestrator, _ = build()

        result = await orchestrator.resolve(ImageQuery(text="Eiffel Tower"))

        assert result.candidate is None
        assert call_log == [
            (W, "eiffel tower"), (W, "eiffel"),
            (U, "eiffel tower"), (U, "eiffel"),
            (X, "eiffel tower"), (X, "eiffel"),
            (P, "eiffel tower"), (P, "eiffel"),
            (W, "eiffel landscape"), (U, "eiffel landscape"),
            (X, "eiffel landscape"), (P, "eiffel landscape"),
        ]
        assert result.attempts == 12

    @pytest.mark.asyncio
    async def test_landmark_falls_through_when_wikimedia_too_small(self, build, call_log, candidate_factory):
        # Fakes use the shared width floor; 1500px fails the 1600px waterfall minimum
        small = candidate_factory(W, "small", width=1500, height=1000)
        stock = candidate_factory(U, "stock", width=1700, height=1100)
        orchestrator, _ = build({W: {"*": [small]}, U: {"eiffel tower": [stock]}})

        result = await orchestrator.resolve(ImageQuery(text="Eiffel Tower"))

        assert result.candidate == stock
        assert [source for source, _ in call_log] == [W, W, U]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("width, expected", [(1700, U), (1900, W)])
    async def test_landmark_applies_print_width_to_real_wikimedia(self, build, candidate_factory, width, expected):
        stock = candidate_factory(U, "stock", width=2000, height=1300)
        orchestrator, fakes = build({U: {"eiffel tower": [stock]}})
        wikimedia = WikimediaProvider(SearchContext(wikimedia_user_agent="TestAgent/1.0"))
        wikimedia.fetch_hits = AsyncMock(return_value=[{
            'pageid': 7,
            'title': 'File:Eiffel_Tower.jpg',
            'imageinfo': [{
                'url': 'https://upload.wikimedia.org/wikipedia/commons/e/e1/Eiffel_Tower.jpg',
                'mime': 'image/jpeg',
                'width': width,
                'height': int(width * 0.66),
                'extmetadata': {'LicenseShortName': {'value': 'CC BY-SA 4.0'}},
            }],
        }])
        orchestrator = WaterfallOrchestrator(
            [fakes[U], fakes[X], fakes[P], wikimedia], orchestrator.context
        )

        result = await orchestrator.resolve(ImageQuery(text="Eiffel Tower", orientation=Orientation.LANDSCAPE))

        assert result.candidate.source is expected
        if expected is U:
            assert result.candidate == stock
            assert [c.args[0] for c in wikimedia.fetch_hits.await_args_list] == ["eiffel tower", "eiffel"]
        else:
            assert result.candidate.width == width
            assert fakes[U].calls == []

    @pytest.mark.asyncio
    async def test_excluded_url_is_never_returned(self, build, candidate_factory):
        only = candidate_factory(U, "only")
        orchestrator, _ = build({U: {"*": [only]}})
        query = ImageQuery(
            text="mountain cabin",
            excluded_urls=frozenset({only.image_url.split("?")[0] + "?w=400"}),
        )

        result = await orchestrator.resolve(query)

        assert result.candidate is None

    @pytest.mark.asyncio
    async def test_session_exclusions_are_merged(self, build, candidate_factory):
        first = candidate_factory(U, "first")
        second = candidate_factory(U, "second")
        third = candidate_factory(U, "third")
        orchestrator, _ = build({U: {"*": [first, second, third]}})
        session_exclusions = ExclusionSet([first.image_url])

        result = await orchestrator.resolve(
            ImageQuery(text="mountain cabin", excluded_urls=frozenset({second.image_url})),
            exclude=session_exclusions,
        )

        assert result.candidate == third
        # The session set itself is not modified by the query's own exclusions
        assert len(session_exclusions) == 1

    @pytest.mark.asyncio
    async def test_unavailable_providers_are_skipped(self, build, call_log, candidate_factory):
        hit = candidate_factory(P, "hit")
        orchestrator, _ = build({P: {"*": [hit]}}, unavailable=(U, X))

        result = await orchestrator.resolve(ImageQuery(text="sourdough"))

        assert result.candidate == hit
        assert call_log == [(P, "sourdough")]
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_emergency_search_uses_topic_anchor(self, build, call_log, candidate_factory):
        rescue = candidate_factory(X, "rescue")
        orchestrator, _ = build({X: {"aspen landscape": [rescue]}})

        result = await orchestrator.resolve(ImageQuery(text="quaint cabin", topic="Aspen Colorado"))

        assert result.candidate == rescue
        assert "broad search" in result.message
        assert call_log[-2:] == [(U, "Aspen landscape"), (X, "Aspen landscape")]

    @pytest.mark.asyncio
    async def test_configured_priority(self, build, call_log):
        context = SearchContext(provider_priority=[P, U])
        orchestrator, _ = build(context=context)

        await orchestrator.resolve(ImageQuery(text="sourdough"))

        assert [source for source, _ in call_log][:4] == [P, U, X, W]

    @pytest.mark.asyncio
    async def test_no_image_is_a_value(self, build):
        orchestrator, _ = build()

        result = await orchestrator.resolve(ImageQuery(text="mountain cabin"))

        assert result.candidate is None
        assert not result.found
        assert "No suitable image" in result.message
