import pytest
from fastapi.testclient import TestClient

from siteaudit.main import app
from siteaudit.services import redirect_resolver


ORIGIN = "https://www.example.com"


@pytest.fixture
def client() -> TestClient:
    test_client = TestClient(app)
    yield test_client
    test_client.close()


def test_healthcheck(client: TestClient) -> None:
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


def test_readiness(client: TestClient) -> None:
    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


def test_incoming_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/api/v1/health", headers={"X-Request-ID": "audit-42"})
    assert response.headers["X-Request-ID"] == "audit-42"


def test_metrics_snapshot(client: TestClient) -> None:
    response = client.get("/api/v1/metrics")
    assert response.status_code == 200
    assert isinstance(response.json(), dict)


def test_unknown_route_uses_error_format(client: TestClient) -> None:
    response = client.get("/api/v1/nope", headers={"X-Request-ID": "req-1"})
    assert response.status_code == 404
    assert response.json() == {"detail": "Not Found", "code": None, "correlation_id": "req-1"}


def test_audit_request_is_validated(client: TestClient) -> None:
    response = client.post("/api/v1/audits/redirect-chains", json={"base_url": ""})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_redirect_chains_audit_endpoint(client: TestClient, site, monkeypatch: pytest.MonkeyPatch) -> None:
    site.page("/")
    site.document("/redirects.json", {"total": 1, "data": [{"Source": "/old", "Destination": "/new"}]})
    site.redirect("/old", "/elsewhere").page("/elsewhere")
    monkeypatch.setattr(redirect_resolver, "build_probe_client", site.client)

    response = client.post("/api/v1/audits/redirect-chains", json={"base_url": ORIGIN})

    assert response.status_code == 200
    body = response.json()
    assert body["audit"]["auditResult"]["success"] is True
    assert body["audit"]["auditResult"]["counts"]["destinationMismatch"] == 1
    assert body["audit"]["suggestions"][0]["fixType"] == "destination-mismatch"
    assert body["audit"]["suggestions"][0]["finalUrl"] == "/elsewhere"
    assert body["opportunity"]["auditType"] == "redirect-chains"


def test_invalid_base_url_is_reported_in_the_audit(client: TestClient) -> None:
    response = client.post("/api/v1/audits/redirect-chains", json={"base_url": "not a url"})
    assert response.status_code == 200
    body = response.json()
    assert body["audit"]["auditResult"]["success"] is False
    assert body["audit"]["auditResult"]["reasons"] == [{"value": "not a url", "error": "INVALID URL"}]
    assert body["opportunity"] is None
