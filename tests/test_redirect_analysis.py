from siteaudit.schemas.redirects import IssueCategory, RedirectRule, ResolutionResult
from siteaudit.services import redirect_analysis


ORIGIN = "https://www.example.com"


def _result(rule: RedirectRule | None = None, **overrides) -> ResolutionResult:
    fields = {
        "rule": rule or RedirectRule(source_path="/old", destination_path="/new"),
        "resolved_source_url": f"{ORIGIN}/old",
        "resolved_destination_url": f"{ORIGIN}/new",
        "final_url": f"{ORIGIN}/new",
        "http_status": 200,
        "was_redirected": True,
        "hop_count": 1,
        "final_matches_declared_destination": True,
    }
    fields.update(overrides)
    return ResolutionResult(**fields)


def test_category_order_is_the_priority() -> None:
    assert redirect_analysis.CATEGORY_PRIORITY == (
        IssueCategory.duplicate_source,
        IssueCategory.over_qualified,
        IssueCategory.identical_endpoints,
        IssueCategory.http_error,
        IssueCategory.redirects_to_self,
        IssueCategory.destination_mismatch,
        IssueCategory.too_many_redirects,
    )


def test_duplicate_wins_over_over_qualified() -> None:
    rule = RedirectRule(
        source_path=f"{ORIGIN}/old",
        destination_path="/new",
        is_duplicate_source=True,
        duplicate_ordinal=1,
        is_over_qualified=True,
    )
    result = _result(rule)
    assert redirect_analysis.classify(result) is IssueCategory.duplicate_source
    assert redirect_analysis.applicable_categories(result) == [
        IssueCategory.duplicate_source,
        IssueCategory.over_qualified,
    ]


def test_http_error_wins_over_mismatch_and_hops() -> None:
    result = _result(http_status=500, final_matches_declared_destination=False, hop_count=3)
    assert redirect_analysis.classify(result) is IssueCategory.http_error


def test_self_redirect_is_not_a_generic_mismatch() -> None:
    result = _result(final_url=f"{ORIGIN}/old", was_redirected=False, hop_count=0, final_matches_declared_destination=False)
    assert redirect_analysis.classify(result) is IssueCategory.redirects_to_self


def test_mismatch_and_too_many_redirects() -> None:
    mismatch = _result(final_url=f"{ORIGIN}/elsewhere", final_matches_declared_destination=False)
    assert redirect_analysis.classify(mismatch) is IssueCategory.destination_mismatch
    assert redirect_analysis.classify(_result(hop_count=2)) is IssueCategory.too_many_redirects
    assert redirect_analysis.classify(_result()) is IssueCategory.ok


def test_analyze_results_counts_problem_entries() -> None:
    results = [
        _result(),
        _result(hop_count=3),
        _result(http_status=None, probe_failed=True, final_url=f"{ORIGIN}/old", final_matches_declared_destination=False),
        _result(hop_count=4),
    ]
    outcome = redirect_analysis.analyze_results(results)

    assert len(outcome.issues) == 4
    assert [i.category for i in outcome.entries_with_problems] == [
        IssueCategory.too_many_redirects,
        IssueCategory.http_error,
        IssueCategory.too_many_redirects,
    ]
    assert outcome.counts.too_many_redirects == 2
    assert outcome.counts.http_error == 1
    assert outcome.counts.total_with_problems == 3
    assert outcome.counts.for_category(IssueCategory.ok) == 0
