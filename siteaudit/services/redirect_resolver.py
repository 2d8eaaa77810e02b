from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from siteaudit.core import metrics
from siteaudit.core.config import settings
from siteaudit.schemas.redirects import ProbeErrorKind, RedirectRule, ResolutionResult
from siteaudit.services.url_utils import InvalidAuditUrlError, ensure_full_url, urls_match


logger = logging.getLogger(__name__)

CHAIN_SEPARATOR = " -> "
_PROBE_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass(frozen=True)
class HopTrace:
    hop_count: int
    chain: str
    status: int | None
    error: str = ""
    probe_failed: bool = False


def build_probe_client() -> httpx.AsyncClient:
    timeout = httpx.Timeout(settings.probe_timeout_seconds, connect=settings.probe_connect_timeout_seconds)
    transport = httpx.AsyncHTTPTransport(retries=max(0, int(settings.probe_retries)))
    return httpx.AsyncClient(
        timeout=timeout,
        headers={"User-Agent": settings.audit_user_agent},
        max_redirects=max(1, int(settings.probe_max_redirects)),
        transport=transport,
    )


@asynccontextmanager
async def probe_client(client: httpx.AsyncClient | None = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client untouched, or a fresh one closed on exit."""
    if client is not None:
        yield client
        return
    async with build_probe_client() as owned:
        yield owned


def _error_text(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


def _error_kind(exc: Exception) -> ProbeErrorKind:
    # The server closed the connection before a complete response arrived.
    if isinstance(exc, httpx.RemoteProtocolError):
        return ProbeErrorKind.truncated_response
    return ProbeErrorKind.network


async def _head(client: httpx.AsyncClient, url: str, *, follow_redirects: bool) -> httpx.Response:
    metrics.record_probe()
    try:
        return await client.head(url, follow_redirects=follow_redirects)
    except _PROBE_ERRORS:
        metrics.record_probe_failure()
        raise


async def count_redirects(client: httpx.AsyncClient, url: str, *, max_hops: int | None = None) -> HopTrace:
    """Follow redirects one HEAD request at a time, stopping at ``max_hops``."""
    cap = settings.redirect_hop_cap if max_hops is None else max_hops
    hop_count = 0
    chain = [url]
    current = url
    try:
        resp = await _head(client, current, follow_redirects=False)
        while resp.has_redirect_location:
            if hop_count >= cap:
                break
            hop_count += 1
            current = str(resp.url.join(resp.headers["location"]))
            chain.append(current)
            resp = await _head(client, current, follow_redirects=False)
    except _PROBE_ERRORS as exc:
        metrics.record_hop_trace(hop_count)
        return HopTrace(
            hop_count=hop_count,
            chain=CHAIN_SEPARATOR.join(chain),
            status=None,
            error=f"Network error: {_error_text(exc)}",
            probe_failed=True,
        )

    metrics.record_hop_trace(hop_count)
    error = f"HTTP error {resp.status_code} for {current}" if resp.status_code >= 400 else ""
    return HopTrace(hop_count=hop_count, chain=CHAIN_SEPARATOR.join(chain), status=resp.status_code, error=error)


def _duplicate_result(rule: RedirectRule, source: str, destination: str) -> ResolutionResult:
    # Probing a shadowed declaration tells us nothing new.
    return ResolutionResult(
        rule=rule,
        resolved_source_url=source,
        resolved_destination_url=destination,
        final_url=source,
        http_status=200,
        was_redirected=False,
        hop_count=0,
        final_matches_declared_destination=False,
        error_message=f"Duplicated source URL: {rule.source_path}",
    )


async def resolve_rule(client: httpx.AsyncClient, rule: RedirectRule, base_url: str) -> ResolutionResult:
    """Probe one rule on the live site. Failures are returned, never raised."""
    source = ensure_full_url(rule.source_path, base_url)
    destination = ensure_full_url(rule.destination_path, base_url) if rule.destination_path else source

    if rule.is_duplicate_source:
        return _duplicate_result(rule, source, destination)

    try:
        resp = await _head(client, source, follow_redirects=True)
    except _PROBE_ERRORS as exc:
        return ResolutionResult(
            rule=rule,
            resolved_source_url=source,
            resolved_destination_url=destination,
            final_url=source,
            http_status=None,
            probe_failed=True,
            error_kind=_error_kind(exc),
            error_message=_error_text(exc),
        )

    # The automatically followed response decides success or failure; the
    # manual trace below only counts hops.
    final_url = str(resp.url)
    was_redirected = bool(resp.history) and not urls_match(source, final_url)
    if not was_redirected:
        final_url = source
    error = f"HTTP error {resp.status_code} for {final_url}" if resp.status_code >= 400 else ""
    hop_count = 0
    chain = ""

    if was_redirected:
        trace = await count_redirects(client, source)
        hop_count = trace.hop_count
        chain = trace.chain
        if trace.error and not error:
            error = trace.error

    return ResolutionResult(
        rule=rule,
        resolved_source_url=source,
        resolved_destination_url=destination,
        final_url=final_url,
        http_status=resp.status_code,
        was_redirected=was_redirected,
        hop_count=hop_count,
        redirect_chain=chain,
        final_matches_declared_destination=urls_match(destination, final_url),
        error_message=error,
    )


def _validate_base_url(base_url: str) -> str:
    try:
        url = httpx.URL(base_url)
    except httpx.InvalidURL as exc:
        raise InvalidAuditUrlError(f"Invalid base URL: {base_url!r}") from exc
    if url.scheme not in {"http", "https"} or not url.host:
        raise InvalidAuditUrlError(f"Invalid base URL: {base_url!r}")
    return base_url


async def resolve_all(
    rules: Sequence[RedirectRule],
    base_url: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> list[ResolutionResult]:
    """Resolve every rule concurrently; results line up with ``rules`` by index."""
    _validate_base_url(base_url)
    if not rules:
        return []

    semaphore = asyncio.Semaphore(max(1, int(settings.probe_max_concurrency)))
    started = time.monotonic()

    async with probe_client(client) as http:

        async def _bounded(rule: RedirectRule) -> ResolutionResult:
            async with semaphore:
                return await resolve_rule(http, rule, base_url)

        results = await asyncio.gather(*(_bounded(rule) for rule in rules))

    failed = sum(1 for result in results if result.probe_failed)
    logger.info(
        "redirect_rules_resolved",
        extra={
            "count": len(results),
            "probe_failures": failed,
            "duration_ms": int((time.monotonic() - started) * 1000),
        },
    )
    return list(results)
