import pytest

from siteaudit.core.config import settings
from siteaudit.schemas.redirects import AuditData, AuditResult, Suggestion
from siteaudit.services import opportunities


ORIGIN = "https://www.example.com"


class RecordingStore:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    async def sync_suggestions(self, *, opportunity, suggestions, build_key) -> None:
        self.calls.append(
            {"opportunity": opportunity, "keys": [build_key(s) for s in suggestions]}
        )


def _audit_data(*, success: bool = True, suggestions: int = 0) -> AuditData:
    return AuditData(
        full_audit_ref=ORIGIN,
        audit_result=AuditResult(success=success, audit_scope_url=ORIGIN),
        suggestions=[
            Suggestion(key=f"k{i}", fix_type="destination-mismatch", fix="Replace the Destination URL.")
            for i in range(suggestions)
        ],
    )


@pytest.mark.parametrize(
    ("total", "lost"),
    [(0, 0), (2, 0), (3, 1), (12, 2), (13, 3)],
)
def test_projected_metrics_round_half_up(total: int, lost: int) -> None:
    metrics = opportunities.calculate_projected_metrics(total)
    assert metrics.projected_traffic_lost == lost
    assert metrics.projected_traffic_value == lost


def test_projected_value_uses_configured_rate(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "dollar_per_traffic_lost", 2.5)
    metrics = opportunities.calculate_projected_metrics(10)
    assert metrics.projected_traffic_lost == 2
    assert metrics.projected_traffic_value == 5


def test_opportunity_data_defaults() -> None:
    data = opportunities.create_opportunity_data()
    assert data.origin == "AUTOMATION"
    assert data.title == "Redirect issues found with the /redirects.json file"
    assert data.tags == ["Traffic Acquisition"]
    assert data.data.data_sources == ["Site"]
    assert data.data.projected_traffic_lost == 0
    assert data.data.audit_scope_url is None
    assert any("check if the redirect is valid" in step for step in data.guidance.steps)


@pytest.mark.anyio
async def test_failed_audit_creates_no_opportunity() -> None:
    store = RecordingStore()
    assert await opportunities.generate_opportunities(_audit_data(success=False, suggestions=2), store=store) is None
    assert store.calls == []


@pytest.mark.anyio
async def test_audit_without_suggestions_creates_no_opportunity() -> None:
    assert await opportunities.generate_opportunities(_audit_data()) is None


@pytest.mark.anyio
async def test_opportunity_is_handed_to_the_store() -> None:
    store = RecordingStore()
    payload = await opportunities.generate_opportunities(_audit_data(suggestions=5), store=store)

    assert payload is not None
    assert payload.audit_type == "redirect-chains"
    assert [s.type for s in payload.suggestions] == ["REDIRECT_UPDATE"] * 5
    assert all(s.rank == 0 for s in payload.suggestions)
    assert payload.opportunity.data.projected_traffic_lost == 1
    assert payload.opportunity.data.audit_scope_url == ORIGIN
    assert store.calls[0]["keys"] == ["k0", "k1", "k2", "k3", "k4"]
    assert store.calls[0]["opportunity"] == payload.opportunity
