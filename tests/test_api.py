import pytest
from fastapi.testclient import TestClient

from trendscope.api import create_app
from trendscope.api import deps
from trendscope.config import settings


@pytest.fixture
def client():
    deps.reset_workflow()
    yield TestClient(create_app())
    deps.reset_workflow()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert "X-Request-ID" in resp.headers


def test_merge_endpoint(client, weekly_history, forecast):
    resp = client.post("/trends/merge", json={"historical": weekly_history, "predicted": forecast})
    assert resp.status_code == 200
    body = resp.json()
    assert body["has_connector"] is True
    assert body["empty"] is False
    assert [p["kind"] for p in body["data"]] == ["historical"] * 4 + ["connector", "prediction", "prediction"]
    connector = body["data"][4]
    assert connector["period"] == "2024-01-22"
    assert connector["actual"] == 170
    assert connector["predicted"] == 170.0
    assert "predicted" not in body["data"][0]


def test_merge_endpoint_reports_rejected_points(client, weekly_history):
    history = weekly_history + [{"period": "yesterday", "fail_count": 3}]
    body = client.post("/trends/merge", json={"historical": history}).json()
    assert len(body["data"]) == 4
    assert body["rejected"] == [
        {"series": "historical", "index": 4, "reason": "historical[4].period: unparsable period 'yesterday'"},
    ]


def test_merge_endpoint_empty(client):
    body = client.post("/trends/merge", json={}).json()
    assert body == {"data": [], "rejected": [], "has_connector": False, "empty": True}


def test_analyze_endpoint(client, weekly_history):
    resp = client.post("/trends/analyze", json={"data": weekly_history, "period_type": "weekly"})
    assert resp.status_code == 200
    report = resp.json()
    assert report["analysis"]["direction"] == "increasing"
    assert report["classification"] == {"direction": "increasing", "polarity": "bad"}
    assert report["warning"]["level"] == "critical"
    assert report["metadata"] == {
        "period_type": "weekly",
        "total_periods": 4,
        "earliest_date": "2024-01-01",
        "latest_date": "2024-01-22",
    }


def test_compare_endpoint(client):
    resp = client.post(
        "/trends/compare",
        json={
            "period1": {"label": "Week 1", "total_fail_count": 100, "avg_fail_rate": 5.0},
            "period2": {"label": "Week 2", "total_fail_count": 150, "avg_fail_rate": 7.5},
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["difference"] == {
        "fail_count_change": 50,
        "percent_change": 50.0,
        "fail_rate_change": 2.5,
        "trend": "worsening",
    }


def test_compare_endpoint_insufficient_data(client):
    resp = client.post("/trends/compare", json={"period1": {"label": "Week 1", "total_fail_count": 100}})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "insufficient_data"
    assert body["difference"] is None


def test_sparkline_endpoint(client):
    body = client.post("/trends/sparkline", json={"data": [3, {"fail_count": 5}, {"value": 8}]}).json()
    assert [p["value"] for p in body["points"]] == [3.0, 5.0, 8.0]
    assert body["classification"] == {"direction": "increasing", "polarity": "bad"}


def test_sparkline_endpoint_with_explicit_trend(client):
    body = client.post("/trends/sparkline", json={"data": [], "trend": "Decreasing "}).json()
    assert body["points"] == []
    assert body["classification"] == {"direction": "decreasing", "polarity": "good"}


def test_predictions_not_configured(client, weekly_history):
    assert client.get("/predictions/state").json()["status"] == "not_configured"
    resp = client.post("/predictions/generate", json={"historical": weekly_history})
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_transition"


def test_predictions_generate_offline(ai_enabled, client, weekly_history):
    assert client.get("/predictions/state").json()["status"] == "idle"

    resp = client.post("/predictions/generate", json={"historical": weekly_history, "object_name": "Account"})
    assert resp.status_code == 200
    state = resp.json()
    assert state["status"] == "ready"
    assert state["sequence"] == 1
    assert state["result"]["series"][4]["kind"] == "connector"

    # Regenerate from READY
    resp = client.post("/predictions/generate", json={"historical": weekly_history})
    assert resp.json()["sequence"] == 2


def test_predictions_cancel_when_idle(ai_enabled, client):
    resp = client.post("/predictions/cancel")
    assert resp.status_code == 200
    assert resp.json()["status"] == "idle"


def test_auth_required_when_token_set(client, monkeypatch):
    monkeypatch.setattr(settings.security, "api_token", "s3cret")
    assert client.post("/trends/sparkline", json={"data": []}).status_code == 401
    resp = client.post("/trends/sparkline", json={"data": []}, headers={"Authorization": "Bearer s3cret"})
    assert resp.status_code == 200
    # Health stays open
    assert client.get("/health").status_code == 200


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"


def test_non_json_body_is_rejected(client):
    resp = client.post("/trends/merge", content=b"period,fail_count", headers={"Content-Type": "text/csv"})
    assert resp.status_code == 415


def test_oversized_body_is_rejected(client, monkeypatch):
    monkeypatch.setattr(settings.security, "max_body_mb", 0)
    resp = client.post("/trends/merge", json={"historical": []})
    assert resp.status_code == 413
    assert resp.json()["error"] == "request_too_large"
