import pytest

from siteaudit.services import url_utils


def test_has_protocol_requires_scheme_and_host() -> None:
    assert url_utils.has_protocol("https://www.example.com/a")
    assert not url_utils.has_protocol("/a")
    assert not url_utils.has_protocol("www.example.com/a")
    assert not url_utils.has_protocol("https://www.example.com/a b")
    assert not url_utils.has_protocol("")


def test_ensure_full_url_qualifies_relative_paths() -> None:
    assert url_utils.ensure_full_url("/old", "https://www.example.com") == "https://www.example.com/old"
    assert url_utils.ensure_full_url("old", "https://www.example.com/") == "https://www.example.com/old"
    assert url_utils.ensure_full_url("https://other.com/x", "https://www.example.com") == "https://other.com/x"
    assert url_utils.ensure_full_url("example.com/page") == "https://www.example.com/page"


def test_add_www_only_touches_bare_domains() -> None:
    assert url_utils.add_www("https://example.com/x") == "https://www.example.com/x"
    assert url_utils.add_www("https://www.example.com/x") == "https://www.example.com/x"
    assert url_utils.add_www("https://shop.example.com/x") == "https://shop.example.com/x"


def test_url_without_path_keeps_scheme_and_host() -> None:
    assert url_utils.url_without_path("https://www.example.com/fr/page?x=1") == "https://www.example.com"
    assert url_utils.url_without_path("example.com/fr") == "https://example.com"
    with pytest.raises(url_utils.InvalidAuditUrlError):
        url_utils.url_without_path("")


def test_is_404_page() -> None:
    assert url_utils.is_404_page("https://www.example.com/404")
    assert url_utils.is_404_page("https://www.example.com/404.html")
    assert url_utils.is_404_page("/404/")
    assert not url_utils.is_404_page("/4044")
    assert not url_utils.is_404_page("/docs/404")


def test_urls_match_normalises_trailing_slash_and_host_case() -> None:
    assert url_utils.urls_match("https://www.example.com/new", "https://WWW.example.com/new/")
    assert url_utils.urls_match("https://www.example.com", "https://www.example.com/")
    assert not url_utils.urls_match("https://www.example.com/a?q=1", "https://www.example.com/a/?q=1")
    assert not url_utils.urls_match("https://www.example.com/a", "https://www.example.com/b")


def test_string_byte_length_counts_utf8_bytes() -> None:
    assert url_utils.string_byte_length("abc") == 3
    assert url_utils.string_byte_length("é") == 2
    assert url_utils.string_byte_length("") == 0


def test_ensure_full_url_keeps_paths_with_spaces() -> None:
    assert url_utils.ensure_full_url("/old page", "https://www.example.com") == "https://www.example.com/old page"
    assert url_utils.ensure_full_url("https://www.example.com/old page") == "https://www.example.com/old page"


def test_urls_match_compares_raw_and_percent_encoded_forms() -> None:
    assert url_utils.urls_match("https://www.example.com/neu-seite-ü", "https://www.example.com/neu-seite-%C3%BC")
    assert url_utils.urls_match("https://www.example.com/new page", "https://www.example.com/new%20page/")
    assert not url_utils.urls_match("https://www.example.com/neu-seite-ü", "https://www.example.com/neu-seite-u")
