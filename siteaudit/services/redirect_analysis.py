from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from siteaudit.core.config import settings
from siteaudit.schemas.redirects import Issue, IssueCategory, IssueCounts, ResolutionResult


Predicate = Callable[[ResolutionResult], bool]


def _too_many_redirects(result: ResolutionResult) -> bool:
    return result.hop_count > settings.redirect_hop_tolerance


# First match wins; the order is the priority.
CATEGORY_RULES: tuple[tuple[IssueCategory, Predicate], ...] = (
    (IssueCategory.duplicate_source, lambda r: r.rule.is_duplicate_source),
    (IssueCategory.over_qualified, lambda r: r.rule.is_over_qualified),
    (IssueCategory.identical_endpoints, lambda r: r.rule.has_identical_endpoints),
    (IssueCategory.http_error, lambda r: r.is_http_error),
    (IssueCategory.redirects_to_self, lambda r: r.final_is_source and not r.final_matches_declared_destination),
    (IssueCategory.destination_mismatch, lambda r: not r.final_matches_declared_destination),
    (IssueCategory.too_many_redirects, _too_many_redirects),
)

CATEGORY_PRIORITY: tuple[IssueCategory, ...] = tuple(category for category, _ in CATEGORY_RULES)


@dataclass(frozen=True)
class AnalysisOutcome:
    counts: IssueCounts
    issues: list[Issue]
    entries_with_problems: list[Issue]


def classify(result: ResolutionResult) -> IssueCategory:
    for category, predicate in CATEGORY_RULES:
        if predicate(result):
            return category
    return IssueCategory.ok


def applicable_categories(result: ResolutionResult) -> list[IssueCategory]:
    """Every category whose condition holds, highest priority first."""
    return [category for category, predicate in CATEGORY_RULES if predicate(result)]


def analyze_results(results: Iterable[ResolutionResult]) -> AnalysisOutcome:
    issues = [Issue.from_result(result, classify(result)) for result in results]
    problems = [issue for issue in issues if issue.category is not IssueCategory.ok]

    tally = Counter(issue.category for issue in problems)
    counts = IssueCounts(
        **{category.name: tally.get(category, 0) for category in CATEGORY_PRIORITY},
        total_with_problems=len(problems),
    )
    return AnalysisOutcome(counts=counts, issues=issues, entries_with_problems=problems)
