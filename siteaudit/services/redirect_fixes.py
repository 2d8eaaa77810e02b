from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

from siteaudit.core.config import settings
from siteaudit.schemas.redirects import AuditData, IssueCategory, ProbeErrorKind, ResolutionResult, Suggestion
from siteaudit.services.redirect_analysis import applicable_categories, classify
from siteaudit.services.suggestion_packer import describe_sizes, serialized_size
from siteaudit.services.url_utils import is_404_page


logger = logging.getLogger(__name__)

# Downstream tooling splits keys on this separator; keep the format stable.
KEY_SEPARATOR = "~|~"


@dataclass(frozen=True)
class SuggestedFix:
    fix: str
    fix_type: str
    can_apply_fix_automatically: bool
    final_url: str


_CONDITION_NOTES: dict[IssueCategory, str] = {
    IssueCategory.duplicate_source: "the Source URL is declared more than once",
    IssueCategory.over_qualified: "the entry uses fully qualified URLs",
    IssueCategory.identical_endpoints: "the Source URL and the Destination URL are the same",
    IssueCategory.http_error: "the redirect ends in an error",
    IssueCategory.redirects_to_self: "the Source URL redirects to itself",
    IssueCategory.destination_mismatch: "the Final URL differs from the Destination URL",
    IssueCategory.too_many_redirects: "the redirect takes more than one hop",
}


def build_unique_key(result: ResolutionResult) -> str:
    rule = result.rule
    return KEY_SEPARATOR.join(
        [rule.referenced_by, rule.source_path, rule.destination_path, str(rule.duplicate_ordinal)]
    )


def _origin(url: str) -> str:
    parsed = urlsplit(url or "")
    return f"{parsed.scheme}://{parsed.netloc}" if parsed.netloc else ""


def _final_url_in_source_style(result: ResolutionResult, base_url: str) -> str:
    final_url = result.final_url
    if (
        base_url
        and result.resolved_destination_url.startswith(base_url)
        and final_url.startswith(base_url)
        and not result.rule.destination_path.startswith(base_url)
    ):
        return final_url[len(base_url):] or "/"
    return final_url


def _other_conditions(result: ResolutionResult, primary: IssueCategory) -> str:
    notes = [_CONDITION_NOTES[c] for c in applicable_categories(result) if c is not primary]
    if not notes:
        return ""
    return " Also note that " + "; ".join(notes) + "."


def get_suggested_fix(result: ResolutionResult | None) -> SuggestedFix | None:
    if result is None:
        return None

    base_url = _origin(result.rule.referenced_by) or _origin(result.resolved_source_url)
    final_url = _final_url_in_source_style(result, base_url)
    error_msg = result.error_message or "(not specified)"
    category = classify(result)

    fix_type = "unknown"
    automatic = False
    fix = f"No suggested fix available for this entry. Error message: {error_msg}"

    if category is IssueCategory.duplicate_source:
        fix_type, automatic = "duplicate-source", True
        fix = "Remove this entry since the same Source URL is already declared earlier in the redirects file."
    elif category is IssueCategory.over_qualified:
        fix_type, automatic = "over-qualified", True
        fix = (
            "Update the Source URL and/or the Destination URL to use relative paths "
            f"by removing the base URL: {base_url}"
        )
    elif category is IssueCategory.identical_endpoints:
        fix_type, automatic = "identical-endpoints", True
        fix = "Remove this entry since the Source URL is the same as the Destination URL."
    elif category is IssueCategory.http_error:
        fix_type = "manual-check"
        fix = (
            f"Check the URL: {final_url} since it resulted in an error code. "
            f"Maybe remove the entry from the redirects file. Error message: {error_msg}"
        )
    elif category in (IssueCategory.redirects_to_self, IssueCategory.destination_mismatch) and is_404_page(
        result.final_url
    ):
        fix_type = "404-page"
        fix = "Update, or remove, this entry since the Source URL redirects to a 404 page."
    elif category is IssueCategory.redirects_to_self:
        fix_type, automatic = "redirects-to-self", True
        fix = "Remove this entry since the Source URL redirects to itself."
    elif category is IssueCategory.destination_mismatch:
        fix_type, automatic = "destination-mismatch", True
        fix = "Replace the Destination URL with the Final URL, since the Source URL actually redirects to the Final URL."
    elif category is IssueCategory.too_many_redirects and result.hop_count >= settings.redirect_hop_cap:
        fix_type = "max-redirects-exceeded"
        fix = (
            "Redesign the redirects that start from the Source URL. An excessive number of redirects "
            f"were encountered. Partial redirect chain is: {result.redirect_chain}"
        )
    elif category is IssueCategory.too_many_redirects:
        fix_type = "high-redirect-count"
        fix = (
            "Reduce the redirects that start from the Source URL. There are too many redirects to get "
            f"to the Destination URL. Redirect chain is: {result.redirect_chain}"
        )

    if fix_type != "unknown":
        fix += _other_conditions(result, category)
    return SuggestedFix(fix=fix, fix_type=fix_type, can_apply_fix_automatically=automatic, final_url=final_url)


def _should_skip(result: ResolutionResult) -> bool:
    # Truncated responses from the edge: the redirect could not be followed at all.
    return (
        result.probe_failed
        and result.error_kind is ProbeErrorKind.truncated_response
        and result.final_is_source
    )


def _to_suggestion(result: ResolutionResult, fix: SuggestedFix) -> Suggestion:
    return Suggestion(
        key=build_unique_key(result),
        fix_type=fix.fix_type,
        fix=fix.fix,
        can_apply_fix_automatically=fix.can_apply_fix_automatically,
        redirects_file=result.rule.referenced_by,
        redirect_count=result.hop_count,
        http_status_code=result.http_status,
        probe_failed=result.probe_failed,
        source_url=result.rule.source_path,
        source_url_full=result.resolved_source_url,
        destination_url=result.rule.destination_path,
        destination_url_full=result.resolved_destination_url,
        final_url=fix.final_url,
        final_url_full=result.final_url,
        ordinal_duplicate=result.rule.duplicate_ordinal,
        redirect_chain=result.redirect_chain or result.resolved_source_url,
        error_msg=result.error_message,
    )


def _log_size_analysis(suggestions: list[Suggestion]) -> None:
    budget = settings.suggestion_budget_bytes
    stats = describe_sizes([serialized_size(s) for s in suggestions], budget)
    logger.info(
        "suggestion_size_analysis",
        extra={
            "count": stats.count,
            "total_bytes": stats.total_bytes,
            "smallest_non_zero_bytes": stats.smallest_non_zero_bytes,
            "average_bytes": round(stats.average_bytes),
            "largest_bytes": stats.largest_bytes,
            "estimated_capacity": stats.estimated_capacity,
        },
    )
    if stats.total_bytes >= budget:
        logger.warning(
            "suggestion_size_over_budget",
            extra={"total_bytes": stats.total_bytes, "budget_bytes": budget},
        )


def generate_suggested_fixes(audit_data: AuditData) -> AuditData:
    """Attach one suggestion per reported issue to the audit data."""
    issues = audit_data.audit_result.details.issues
    suggestions: list[Suggestion] = []
    skipped = 0
    for issue in issues:
        fix = get_suggested_fix(issue)
        if fix is None:
            continue
        if _should_skip(issue):
            skipped += 1
            logger.debug(
                "suggestion_skipped",
                extra={"source": issue.rule.source_path, "destination": issue.rule.destination_path},
            )
            continue
        suggestions.append(_to_suggestion(issue, fix))

    logger.info(
        "suggestions_generated",
        extra={
            "audit": audit_data.audit_result.audit_scope_url,
            "issues": len(issues),
            "suggestions": len(suggestions),
            "skipped": skipped,
        },
    )
    if suggestions:
        _log_size_analysis(suggestions)
    return audit_data.model_copy(update={"suggestions": suggestions})
