from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from siteaudit.services.url_utils import urls_match


class _WireModel(BaseModel):
    """Immutable model serialised with camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class IssueCategory(str, enum.Enum):
    duplicate_source = "duplicate-source"
    over_qualified = "over-qualified"
    identical_endpoints = "identical-endpoints"
    http_error = "http-error"
    redirects_to_self = "redirects-to-self"
    destination_mismatch = "destination-mismatch"
    too_many_redirects = "too-many-redirects"
    ok = "ok"


class ProbeErrorKind(str, enum.Enum):
    network = "network"
    truncated_response = "truncated-response"


class RedirectRule(_WireModel):
    source_path: str = ""
    destination_path: str = ""
    referenced_by: str = ""
    is_duplicate_source: bool = False
    duplicate_ordinal: int = Field(default=0, ge=0)
    is_over_qualified: bool = False
    has_identical_endpoints: bool = False


class ResolutionResult(_WireModel):
    rule: RedirectRule
    resolved_source_url: str
    resolved_destination_url: str
    final_url: str
    # None only when the probe never produced a response (see probe_failed).
    http_status: int | None = None
    probe_failed: bool = False
    error_kind: ProbeErrorKind | None = None
    was_redirected: bool = False
    hop_count: int = Field(default=0, ge=0)
    redirect_chain: str = ""
    final_matches_declared_destination: bool = False
    error_message: str = ""

    @property
    def is_http_error(self) -> bool:
        return self.probe_failed or (self.http_status is not None and self.http_status >= 400)

    @property
    def final_is_source(self) -> bool:
        return urls_match(self.resolved_source_url, self.final_url)


class Issue(ResolutionResult):
    category: IssueCategory

    @classmethod
    def from_result(cls, result: ResolutionResult, category: IssueCategory) -> "Issue":
        fields = {name: getattr(result, name) for name in ResolutionResult.model_fields}
        return cls(category=category, **fields)


class IssueCounts(_WireModel):
    duplicate_source: int = 0
    over_qualified: int = 0
    identical_endpoints: int = 0
    http_error: int = 0
    redirects_to_self: int = 0
    destination_mismatch: int = 0
    too_many_redirects: int = 0
    total_with_problems: int = 0

    def for_category(self, category: IssueCategory) -> int:
        if category is IssueCategory.ok:
            return 0
        return int(getattr(self, category.name))


class PackedSuggestionSet(_WireModel):
    filtered_issues: list[Any] = Field(default_factory=list)
    was_reduced: bool = False


class AuditReason(_WireModel):
    value: str
    error: str | None = None


class AuditDetails(_WireModel):
    issues: list[Issue] = Field(default_factory=list)


class AuditResult(_WireModel):
    success: bool = True
    reasons: list[AuditReason] = Field(default_factory=list)
    details: AuditDetails = Field(default_factory=AuditDetails)
    audit_scope_url: str = ""
    counts: IssueCounts = Field(default_factory=IssueCounts)
    entries_checked: int = 0
    was_reduced: bool = False


class Suggestion(_WireModel):
    key: str
    fix_type: str
    fix: str
    can_apply_fix_automatically: bool = False
    redirects_file: str = ""
    redirect_count: int = 0
    http_status_code: int | None = None
    probe_failed: bool = False
    source_url: str = ""
    source_url_full: str = ""
    destination_url: str = ""
    destination_url_full: str = ""
    final_url: str = ""
    final_url_full: str = ""
    ordinal_duplicate: int = 0
    redirect_chain: str = ""
    error_msg: str = ""


class AuditData(_WireModel):
    full_audit_ref: str
    audit_result: AuditResult
    suggestions: list[Suggestion] = Field(default_factory=list)


class OpportunityGuidance(_WireModel):
    steps: list[str] = Field(default_factory=list)


class OpportunityMetrics(_WireModel):
    data_sources: list[str] = Field(default_factory=lambda: ["Site"])
    projected_traffic_lost: int = 0
    projected_traffic_value: int = 0
    audit_scope_url: str | None = None


class OpportunityData(_WireModel):
    runbook: str = ""
    origin: str = "AUTOMATION"
    title: str
    description: str
    guidance: OpportunityGuidance = Field(default_factory=OpportunityGuidance)
    tags: list[str] = Field(default_factory=list)
    data: OpportunityMetrics = Field(default_factory=OpportunityMetrics)


class NewSuggestion(_WireModel):
    type: str = "REDIRECT_UPDATE"
    rank: int = 0
    data: Suggestion


class OpportunityPayload(_WireModel):
    audit_type: str = "redirect-chains"
    opportunity: OpportunityData
    suggestions: list[NewSuggestion] = Field(default_factory=list)


class RedirectChainsAuditRequest(BaseModel):
    base_url: str = Field(min_length=1, max_length=2048)


class RedirectChainsAuditRead(_WireModel):
    audit: AuditData
    opportunity: OpportunityPayload | None = None
