from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

import httpx

_404_PATH_RE = re.compile(r"^/404(?:/|\.html?)?$")


class InvalidAuditUrlError(ValueError):
    pass


def has_protocol(url: str) -> bool:
    value = (url or "").strip()
    if not value or " " in value:
        return False
    try:
        parsed = urlsplit(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)


def prepend_schema(url: str) -> str:
    value = (url or "").strip()
    if value.startswith("http://") or value.startswith("https://"):
        return value
    return f"https://{value}"


def _add_www_to_host(host: str) -> str:
    if not host or host.startswith("www."):
        return host
    hostname = host.split(":", 1)[0]
    if hostname.count(".") != 1:
        return host
    return f"www.{host}"


def add_www(url: str) -> str:
    value = url or ""
    if " " in value.strip():
        return value
    if has_protocol(value):
        parsed = urlsplit(value)
        return urlunsplit(parsed._replace(netloc=_add_www_to_host(parsed.netloc)))
    host, sep, rest = value.partition("/")
    if "." not in host:
        return value
    return f"{_add_www_to_host(host)}{sep}{rest}"


def _is_qualified(value: str) -> bool:
    # Accepts paths with spaces, unlike has_protocol.
    try:
        parsed = urlsplit(value)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def ensure_full_url(url: str, domain: str = "") -> str:
    """Qualify a redirects-file entry against the site it belongs to."""
    value = (url or "").strip()
    if _is_qualified(value):
        return value
    if domain:
        value = f"{domain.rstrip('/')}/{value.lstrip('/')}"
    if _is_qualified(value):
        return value
    return f"https://{add_www(value)}"


def url_without_path(url: str) -> str:
    parsed = urlsplit(prepend_schema(url))
    if not parsed.netloc:
        raise InvalidAuditUrlError(f"Invalid URL: {url!r}")
    return f"{parsed.scheme}://{parsed.netloc}"


def is_404_page(url: str) -> bool:
    path = urlsplit(url or "").path if has_protocol(url) else (url or "").split("?", 1)[0].split("#", 1)[0]
    return bool(_404_PATH_RE.match(path))


def string_byte_length(text: str) -> int:
    return len((text or "").encode("utf-8"))


def _normalized_for_match(url: str) -> str:
    # Percent-encode the way httpx does, so raw and encoded forms compare equal.
    try:
        parsed = urlsplit(str(httpx.URL(url)))
    except (httpx.InvalidURL, ValueError):
        return url
    path = parsed.path or "/"
    if not parsed.query and not parsed.fragment and not path.endswith("/"):
        path = f"{path}/"
    return urlunsplit((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.query, parsed.fragment))


def urls_match(expected: str, actual: str) -> bool:
    if expected == actual:
        return True
    return _normalized_for_match(expected) == _normalized_for_match(actual)
