"""Unit tests for URL canonicalization."""

from src.store.url import (
    DEFAULT_STRIP_PARAMS,
    canonicalize_url,
    dedup_url_key,
)


class TestCanonicalizeUrl:
    """Tests for canonicalize_url function."""

    def test_empty_url(self) -> None:
        """Test empty URL returns empty."""
        assert canonicalize_url("") == ""

    def test_strips_utm_params(self) -> None:
        """Test UTM parameters are stripped."""
        url = "https://example.com/article?utm_source=twitter&utm_medium=social"
        assert canonicalize_url(url) == "https://example.com/article"

    def test_strips_any_utm_prefixed_param(self) -> None:
        """Test unknown utm_* parameters are stripped as well."""
        url = "https://example.com/article?utm_custom_thing=1"
        assert canonicalize_url(url) == "https://example.com/article"

    def test_strips_multiple_tracking_params(self) -> None:
        """Test multiple tracking parameters are stripped."""
        url = "https://example.com/article?utm_source=x&fbclid=abc&gclid=def"
        assert canonicalize_url(url) == "https://example.com/article"

    def test_preserves_and_sorts_other_params(self) -> None:
        """Test non-tracking parameters are preserved in sorted order."""
        url = "https://example.com/search?q=test&page=2&utm_source=google"
        assert canonicalize_url(url) == "https://example.com/search?page=2&q=test"

    def test_removes_fragments(self) -> None:
        """Test fragments are removed by default."""
        url = "https://example.com/article#section-1"
        assert canonicalize_url(url) == "https://example.com/article"

    def test_preserves_fragments_when_requested(self) -> None:
        """Test fragments can be preserved."""
        url = "https://example.com/article#section-1"
        result = canonicalize_url(url, preserve_fragments=True)
        assert result == "https://example.com/article#section-1"

    def test_removes_trailing_slash(self) -> None:
        """Test trailing slashes are removed."""
        assert canonicalize_url("https://example.com/article/") == (
            "https://example.com/article"
        )

    def test_preserves_root_slash(self) -> None:
        """Test root path slash is preserved."""
        assert canonicalize_url("https://example.com/") == "https://example.com/"

    def test_lowercase_scheme_and_host(self) -> None:
        """Test scheme and host are lowercased but the path is not."""
        result = canonicalize_url("HTTPS://Example.COM/Article")
        assert result == "https://example.com/Article"

    def test_custom_strip_params_replace_defaults(self) -> None:
        """Test an explicit strip list replaces the default list."""
        url = "https://example.com/a?ref=home&session=1"
        result = canonicalize_url(url, strip_params=["session"])
        assert result == "https://example.com/a?ref=home"

    def test_default_strip_params_cover_click_ids(self) -> None:
        """Test the default list includes common click identifiers."""
        assert {"fbclid", "gclid", "msclkid"} <= set(DEFAULT_STRIP_PARAMS)


class TestDedupUrlKey:
    """Tests for dedup_url_key function."""

    def test_folds_scheme_and_www(self) -> None:
        """Test http/https and www. variants collapse to one key."""
        a = dedup_url_key("http://www.example.com/post/")
        b = dedup_url_key("https://example.com/post?utm_source=rss")
        assert a == b == "https://example.com/post"

    def test_root_path_collapses(self) -> None:
        """Test a bare host and its root path produce the same key."""
        assert dedup_url_key("https://example.com/") == dedup_url_key(
            "https://example.com"
        )

    def test_different_paths_differ(self) -> None:
        """Test distinct articles keep distinct keys."""
        assert dedup_url_key("https://example.com/a") != dedup_url_key(
            "https://example.com/b"
        )
