"""Test configuration for path setup and shared fakes.

Ensures the `src` directory is on sys.path so the `loompage` package
can be imported without installing the project in editable mode.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from loompage.context import SearchContext  # noqa: E402
from loompage.models import ImageCandidate, ImageSource  # noqa: E402
from loompage.providers import ImageProvider  # noqa: E402


def make_candidate(
    source: ImageSource = ImageSource.UNSPLASH,
    name: str = "img",
    width: int = 2000,
    height: int = 1300,
    license: str = "Test License",
    description: str = "",
) -> ImageCandidate:
    return ImageCandidate(
        id=f"{source.value}-{name}",
        source=source,
        image_url=f"https://images.example.com/{source.value}/{name}.jpg?w=2000",
        thumbnail_url=f"https://images.example.com/{source.value}/{name}-thumb.jpg",
        width=width,
        height=height,
        attribution=f"Photo by Tester via {source.display_name}",
        license=license,
        is_print_ready=width >= 1800,
        description=description,
    )


class FakeProvider(ImageProvider):
    """Provider returning canned candidates per query and recording every call."""

    def __init__(self, source, responses=None, available=True, context=None, error=None, log=None):
        self.source = source
        super().__init__(context or SearchContext(), credential="fake-key" if available else "")
        self.responses = {k.lower(): v for k, v in (responses or {}).items()}
        self.default = self.responses.pop('*', [])
        self.error = error
        self.calls = []
        self.log = log

    async def fetch_hits(self, query, orientation, per_page, page=1):
        self.calls.append((query, page))
        if self.log is not None:
            self.log.append((self.source, query))
        if self.error is not None:
            raise self.error
        return list(self.responses.get(query.lower(), self.default))

    def parse_hit(self, hit):
        return hit

    @property
    def queries(self):
        return [query for query, _ in self.calls]


@pytest.fixture
def context():
    """Search context with no credentials and no retry delay."""
    return SearchContext(retry_base_delay=0)


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def fake_provider():
    """Factory for fake providers."""
    return FakeProvider
