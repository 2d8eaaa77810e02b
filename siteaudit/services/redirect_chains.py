"""Redirect-chains audit: checks a site's redirects file against the live site.

The runner never raises for per-rule problems; the only batch-level failure is
a base URL that cannot be parsed, reported as ``success=False``.
"""

from __future__ import annotations

import logging
import time
from urllib.parse import urlsplit

import httpx

from siteaudit.core import metrics
from siteaudit.core.config import settings
from siteaudit.core.logging_config import bind_correlation_id, correlation_id_ctx_var
from siteaudit.schemas.redirects import (
    AuditData,
    AuditDetails,
    AuditReason,
    AuditResult,
    RedirectChainsAuditRead,
)
from siteaudit.services import redirect_resolver
from siteaudit.services.opportunities import SuggestionStore, generate_opportunities
from siteaudit.services.redirect_analysis import analyze_results
from siteaudit.services.redirect_fixes import generate_suggested_fixes
from siteaudit.services.redirect_rules import load_redirect_rules
from siteaudit.services.suggestion_packer import filter_issues_to_fit_into_space
from siteaudit.services.url_utils import InvalidAuditUrlError, prepend_schema, url_without_path


logger = logging.getLogger(__name__)


def _segments(path: str) -> list[str]:
    return [segment for segment in (path or "").split("/") if segment]


def _parse_base_url(base_url: str) -> str:
    candidate = prepend_schema(base_url)
    try:
        parsed = urlsplit(candidate)
        httpx.URL(candidate)
    except (ValueError, httpx.InvalidURL) as exc:
        raise InvalidAuditUrlError(f"Invalid URL: {base_url!r}") from exc
    if not parsed.hostname or " " in candidate:
        raise InvalidAuditUrlError(f"Invalid URL: {base_url!r}")
    return candidate


async def _follow_base_url(client: httpx.AsyncClient, url: str) -> str:
    try:
        resp = await client.head(url, follow_redirects=True)
    except httpx.HTTPError as exc:
        logger.warning("audit_scope_probe_failed", extra={"url": url, "error": str(exc) or exc.__class__.__name__})
        return url
    return str(resp.url)


async def determine_audit_scope(base_url: str, *, client: httpx.AsyncClient) -> str:
    """Work out which part of the site the redirects file should be checked for.

    Without a subpath in ``base_url`` the scope is the origin the site
    redirects to. With a subpath, the scope keeps the longest leading run of
    path segments shared by the original and the redirected URL.
    """
    original = _parse_base_url(base_url)
    original_segments = _segments(urlsplit(original).path)

    resolved = await _follow_base_url(client, original)
    if not original_segments:
        return url_without_path(resolved)

    parsed = urlsplit(resolved)
    common: list[str] = []
    for ours, theirs in zip(original_segments, _segments(parsed.path)):
        if ours != theirs:
            break
        common.append(ours)
    if not common:
        return url_without_path(resolved)
    return f"{parsed.scheme}://{parsed.netloc}/{'/'.join(common)}"


def _log_stats(result: AuditResult) -> None:
    counts = result.counts
    logger.info(
        "redirect_chains_stats",
        extra={
            "audit": result.audit_scope_url,
            "entries_checked": result.entries_checked,
            "entries_with_problems": counts.total_with_problems,
            "duplicate_source": counts.duplicate_source,
            "over_qualified": counts.over_qualified,
            "identical_endpoints": counts.identical_endpoints,
            "http_error": counts.http_error,
            "redirects_to_self": counts.redirects_to_self,
            "destination_mismatch": counts.destination_mismatch,
            "too_many_redirects": counts.too_many_redirects,
        },
    )


def _invalid_url_result(base_url: str) -> AuditData:
    return AuditData(
        full_audit_ref=base_url,
        audit_result=AuditResult(
            success=False,
            reasons=[AuditReason(value=base_url, error="INVALID URL")],
            audit_scope_url=base_url,
        ),
    )


async def _run_audit(base_url: str, client: httpx.AsyncClient | None) -> AuditData:
    started = time.monotonic()
    logger.info("redirect_chains_started", extra={"url": base_url})

    async with redirect_resolver.probe_client(client) as http:
        try:
            scope = await determine_audit_scope(base_url, client=http)
        except InvalidAuditUrlError as exc:
            logger.error("audit_scope_invalid", extra={"url": base_url, "error": str(exc)})
            metrics.record_audit_failed()
            return _invalid_url_result(base_url)
        logger.info("audit_scope_determined", extra={"url": base_url, "audit": scope})

        rules = await load_redirect_rules(scope, client=http)
        results = await redirect_resolver.resolve_all(rules, url_without_path(scope), client=http)

    outcome = analyze_results(results)
    packed = filter_issues_to_fit_into_space(outcome.entries_with_problems)
    if packed.was_reduced:
        logger.warning(
            "redirect_chains_issues_reduced",
            extra={"original": len(outcome.entries_with_problems), "kept": len(packed.filtered_issues)},
        )

    audit_result = AuditResult(
        success=True,
        reasons=[AuditReason(value=f"File /{settings.redirects_file_name} checked.")],
        details=AuditDetails(issues=packed.filtered_issues),
        audit_scope_url=scope,
        counts=outcome.counts,
        entries_checked=len(rules),
        was_reduced=packed.was_reduced,
    )
    _log_stats(audit_result)
    metrics.record_audit_completed()
    logger.info(
        "redirect_chains_done",
        extra={"audit": scope, "duration_ms": int((time.monotonic() - started) * 1000)},
    )
    return AuditData(full_audit_ref=scope, audit_result=audit_result)


async def run_redirect_chains_audit(base_url: str, *, client: httpx.AsyncClient | None = None) -> AuditData:
    # Keep an id bound by the request middleware; otherwise start a new one for this run.
    with bind_correlation_id(correlation_id_ctx_var.get()):
        return await _run_audit(base_url, client)


async def run_redirect_chains_pipeline(
    base_url: str,
    *,
    client: httpx.AsyncClient | None = None,
    store: SuggestionStore | None = None,
) -> RedirectChainsAuditRead:
    """Audit, then derive suggestions and the opportunity payload."""
    with bind_correlation_id(correlation_id_ctx_var.get()):
        audit_data = await _run_audit(base_url, client)
        audit_data = generate_suggested_fixes(audit_data)
        opportunity = await generate_opportunities(audit_data, store=store)
    return RedirectChainsAuditRead(audit=audit_data, opportunity=opportunity)
