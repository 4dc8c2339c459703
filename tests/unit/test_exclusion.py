"""Unit tests for URL normalization and exclusion sets."""

from loompage.exclusion import ExclusionSet, normalize_url


class TestNormalizeUrl:
    """Test URL normalization."""

    def test_strips_query_and_fragment(self):
        assert normalize_url("https://images.unsplash.com/photo-1?ixid=abc&w=2000#top") == \
            "https://images.unsplash.com/photo-1"

    def test_case_folds_scheme_and_host_only(self):
        assert normalize_url("HTTPS://Images.Example.COM/Path/Photo.JPG") == \
            "https://images.example.com/Path/Photo.JPG"

    def test_trailing_slash(self):
        assert normalize_url("https://example.com/a/") == normalize_url("https://example.com/a")

    def test_empty(self):
        assert normalize_url("") == ""


class TestExclusionSet:
    """Test the session exclusion set."""

    def test_resized_variants_are_excluded(self):
        exclusions = ExclusionSet(["https://images.pexels.com/photos/1/a.jpeg?w=1260"])
        assert "https://images.pexels.com/photos/1/a.jpeg?auto=compress&w=940" in exclusions
        assert "https://images.pexels.com/photos/2/b.jpeg" not in exclusions

    def test_grows_and_ignores_blanks(self):
        exclusions = ExclusionSet()
        exclusions.add("https://a.example/1.jpg")
        exclusions.add("")
        exclusions.update(["https://a.example/1.jpg?x=1", "https://a.example/2.jpg"])
        assert len(exclusions) == 2

    def test_union_returns_new_set(self):
        base = ExclusionSet(["https://a.example/1.jpg"])
        merged = base.union(["https://a.example/2.jpg"])

        assert len(base) == 1
        assert len(merged) == 2
        assert "https://a.example/1.jpg" in merged

    def test_non_string_membership(self):
        assert 42 not in ExclusionSet(["https://a.example/1.jpg"])

    def test_iteration_is_sorted(self):
        exclusions = ExclusionSet(["https://b.example/x", "https://a.example/y"])
        assert list(exclusions) == ["https://a.example/y", "https://b.example/x"]
