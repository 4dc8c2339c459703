"""URL normalization and the per-session exclusion set."""

from typing import Iterable, Iterator, Set
from urllib.parse import urlsplit


def normalize_url(url: str) -> str:
    """Reduce a URL to scheme + host + path so resized variants compare equal."""
    if not url:
        return ""

    parts = urlsplit(url.strip())
    if not parts.netloc:
        return url.strip().split('?', 1)[0].split('#', 1)[0]

    scheme = (parts.scheme or 'https').lower()
    path = parts.path.rstrip('/') or '/'
    return f"{scheme}://{parts.netloc.lower()}{path}"


class ExclusionSet:
    """Normalized URLs already consumed during one generation session.

    The set only grows; it lives as long as the session that owns it.
    """

    def __init__(self, urls: Iterable[str] = ()):
        self._urls: Set[str] = set()
        self.update(urls)

    def add(self, url: str) -> None:
        normalized = normalize_url(url)
        if normalized:
            self._urls.add(normalized)

    def update(self, urls: Iterable[str]) -> None:
        for url in urls:
            self.add(url)

    def union(self, urls: Iterable[str]) -> "ExclusionSet":
        """Return a new set holding these URLs and ``urls``."""
        merged = ExclusionSet()
        merged._urls = set(self._urls)
        merged.update(urls)
        return merged

    def __contains__(self, url: object) -> bool:
        if not isinstance(url, str):
            return False
        return normalize_url(url) in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._urls))

    def __repr__(self) -> str:
        return f"ExclusionSet({len(self._urls)} urls)"
