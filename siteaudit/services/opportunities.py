from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from siteaudit.core.config import settings
from siteaudit.schemas.redirects import (
    AuditData,
    NewSuggestion,
    OpportunityData,
    OpportunityGuidance,
    OpportunityMetrics,
    OpportunityPayload,
)


logger = logging.getLogger(__name__)

AUDIT_TYPE = "redirect-chains"
SUGGESTION_TYPE = "REDIRECT_UPDATE"


@dataclass(frozen=True)
class ProjectedTrafficMetrics:
    projected_traffic_lost: int = 0
    projected_traffic_value: int = 0


class SuggestionStore(Protocol):
    """Persistence collaborator that reconciles stored suggestions with new ones."""

    async def sync_suggestions(
        self,
        *,
        opportunity: OpportunityData,
        suggestions: list[NewSuggestion],
        build_key: Callable[[NewSuggestion], str],
    ) -> None: ...


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_projected_metrics(total_issues: int) -> ProjectedTrafficMetrics:
    lost = _round_half_up(total_issues * settings.traffic_lost_ratio)
    value = _round_half_up(lost * settings.dollar_per_traffic_lost)
    return ProjectedTrafficMetrics(projected_traffic_lost=lost, projected_traffic_value=value)


def create_opportunity_data(
    metrics: ProjectedTrafficMetrics | None = None,
    *,
    audit_scope_url: str | None = None,
) -> OpportunityData:
    metrics = metrics or ProjectedTrafficMetrics()
    return OpportunityData(
        runbook=settings.redirects_runbook_url,
        origin="AUTOMATION",
        title=f"Redirect issues found with the /{settings.redirects_file_name} file",
        description=(
            f"This audit identifies issues with the /{settings.redirects_file_name} file that may be "
            "affecting your site's performance and SEO. Each entry is checked against the live site."
        ),
        guidance=OpportunityGuidance(
            steps=[
                "For each suggestion, check if the redirect is valid and still needed.",
                "Apply the suggested fix to the redirects file, or remove the entry.",
                "Publish the redirects file and re-run the audit to confirm the fix.",
            ]
        ),
        tags=["Traffic Acquisition"],
        data=OpportunityMetrics(
            data_sources=["Site"],
            projected_traffic_lost=metrics.projected_traffic_lost,
            projected_traffic_value=metrics.projected_traffic_value,
            audit_scope_url=audit_scope_url,
        ),
    )


def _build_key(suggestion: NewSuggestion) -> str:
    return suggestion.data.key


async def generate_opportunities(
    audit_data: AuditData,
    *,
    store: SuggestionStore | None = None,
) -> OpportunityPayload | None:
    result = audit_data.audit_result
    if not result.success:
        logger.info("opportunity_skipped_audit_failed", extra={"audit": result.audit_scope_url})
        return None
    if not audit_data.suggestions:
        logger.info("opportunity_skipped_no_suggestions", extra={"audit": result.audit_scope_url})
        return None

    metrics = calculate_projected_metrics(len(audit_data.suggestions))
    payload = OpportunityPayload(
        audit_type=AUDIT_TYPE,
        opportunity=create_opportunity_data(metrics, audit_scope_url=result.audit_scope_url),
        suggestions=[NewSuggestion(type=SUGGESTION_TYPE, rank=0, data=s) for s in audit_data.suggestions],
    )
    logger.info(
        "opportunity_built",
        extra={
            "audit": result.audit_scope_url,
            "suggestions": len(payload.suggestions),
            "projected_traffic_lost": metrics.projected_traffic_lost,
            "projected_traffic_value": metrics.projected_traffic_value,
        },
    )

    if store is not None:
        await store.sync_suggestions(
            opportunity=payload.opportunity,
            suggestions=payload.suggestions,
            build_key=_build_key,
        )
    return payload
