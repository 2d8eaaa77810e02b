from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any
from urllib.parse import urlsplit

import httpx

from siteaudit.core.config import settings
from siteaudit.schemas.redirects import RedirectRule
from siteaudit.services.url_utils import ensure_full_url, has_protocol, url_without_path, urls_match


logger = logging.getLogger(__name__)


async def get_json_data(client: httpx.AsyncClient, url: str) -> dict[str, Any]:
    """Fetch a JSON document; any failure is reported as an empty document."""
    try:
        resp = await client.get(url, headers={"Accept": "application/json"}, follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.error("redirects_file_fetch_failed", extra={"url": url, "error": str(exc) or exc.__class__.__name__})
        return {}

    if resp.status_code == 404:
        # No redirects file is a normal state for a site.
        return {}
    if resp.is_error:
        logger.error("redirects_file_http_error", extra={"url": url, "status_code": resp.status_code})
        return {}

    try:
        payload = resp.json()
    except ValueError:
        logger.error("redirects_file_not_json", extra={"url": url})
        return {}
    return payload if isinstance(payload, dict) else {}


def _data_rows(payload: dict[str, Any]) -> list[Any]:
    rows = payload.get("data") if payload else None
    return rows if isinstance(rows, list) else []


def _declared_total(payload: dict[str, Any], fallback: int) -> int:
    try:
        return int(payload.get("total", fallback))
    except (TypeError, ValueError):
        return fallback


def _row_value(row: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = row.get(key)
        if value:
            return str(value)
    return ""


def _is_over_qualified(source: str, destination: str, scope_url: str) -> bool:
    if has_protocol(source):
        return True
    return bool(scope_url) and destination.startswith(scope_url)


def _has_identical_endpoints(source: str, destination: str, origin: str) -> bool:
    if source == destination:
        return True
    if not destination:
        return False
    return urls_match(ensure_full_url(source, origin), ensure_full_url(destination, origin))


def parse_redirect_rows(rows: Iterable[Any], *, referenced_by: str = "", scope_url: str = "") -> list[RedirectRule]:
    """Normalise raw redirects-file rows into sorted, flagged rules."""
    pairs: list[tuple[str, str]] = []
    for row in rows or []:
        if not isinstance(row, dict):
            logger.warning("redirects_file_row_skipped", extra={"url": referenced_by, "row": row})
            continue
        pairs.append((_row_value(row, "Source", "source"), _row_value(row, "Destination", "destination")))
    pairs.sort(key=lambda pair: pair[0])

    scope = scope_url.rstrip("/")
    origin = url_without_path(scope) if scope else ""
    seen: dict[str, int] = {}
    rules: list[RedirectRule] = []
    for source, destination in pairs:
        ordinal = seen.get(source, 0)
        seen[source] = ordinal + 1
        rules.append(
            RedirectRule(
                source_path=source,
                destination_path=destination,
                referenced_by=referenced_by,
                is_duplicate_source=ordinal > 0,
                duplicate_ordinal=ordinal,
                is_over_qualified=_is_over_qualified(source, destination, scope),
                has_identical_endpoints=_has_identical_endpoints(source, destination, origin),
            )
        )
    return rules


def filter_rules_to_scope(rules: list[RedirectRule], scope_url: str) -> list[RedirectRule]:
    scope = scope_url.rstrip("/")
    scope_path = urlsplit(scope).path
    if not scope_path or scope_path == "/":
        return rules

    # Match on a trailing slash so /fr does not claim /french.
    path_prefix = f"{scope_path}/"
    url_prefix = f"{scope}/"
    kept = [
        rule
        for rule in rules
        if rule.source_path.startswith(path_prefix)
        or (has_protocol(rule.source_path) and rule.source_path.startswith(url_prefix))
    ]
    logger.info(
        "redirect_rules_scoped",
        extra={"before": len(rules), "after": len(kept), "scope_path": path_prefix},
    )
    return kept


async def _fetch_redirects_payload(client: httpx.AsyncClient, scope: str) -> tuple[str, dict[str, Any]]:
    redirects_url = f"{scope}/{settings.redirects_file_name}"
    logger.info("redirects_file_lookup", extra={"url": redirects_url})
    payload = await get_json_data(client, redirects_url)
    if _data_rows(payload):
        return redirects_url, payload

    origin = url_without_path(scope)
    if origin == scope:
        return redirects_url, payload
    redirects_url = f"{origin}/{settings.redirects_file_name}"
    logger.info("redirects_file_fallback_lookup", extra={"url": redirects_url})
    return redirects_url, await get_json_data(client, redirects_url)


async def load_redirect_rules(audit_scope_url: str, *, client: httpx.AsyncClient) -> list[RedirectRule]:
    """Read the site's redirects file and turn it into rules within the audit scope."""
    scope = audit_scope_url.rstrip("/")
    redirects_url, payload = await _fetch_redirects_payload(client, scope)
    rows = _data_rows(payload)
    if not rows:
        logger.info("redirects_file_missing_or_empty", extra={"url": redirects_url})
        return []

    total = _declared_total(payload, len(rows))
    if len(rows) < total:
        # The file is paginated by default; ask for every entry at once.
        payload = await get_json_data(client, f"{redirects_url}?limit={total}")
        rows = _data_rows(payload)
        if not rows:
            return []
    if len(rows) != total:
        logger.warning(
            "redirects_file_count_mismatch",
            extra={"url": redirects_url, "expected": total, "found": len(rows)},
        )

    rules = parse_redirect_rows(rows, referenced_by=redirects_url, scope_url=scope)
    logger.info("redirect_rules_loaded", extra={"url": redirects_url, "count": len(rules)})
    return filter_rules_to_scope(rules, scope)
