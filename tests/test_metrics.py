from fastapi.testclient import TestClient

from app import metrics
from app.api.main import app


def _sample(name, labels=None):
    from prometheus_client import REGISTRY

    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_metrics_endpoint_available():
    client = TestClient(app)
    resp = client.get("/metrics")
    assert resp.status_code == 200
    text = resp.text
    assert "seat_upgrades_applied_total" in text
    assert "seat_downgrades_scheduled_total" in text
    assert "seat_downgrades_applied_total" in text
    assert "seat_downgrades_blocked_total" in text


def test_upgrade_counters():
    before = _sample("seat_upgrades_applied_total")
    cents_before = _sample("seat_upgrade_prorated_cents_total", {"currency": "BRL"})

    metrics.seat_upgrade_applied(1234, "BRL")

    assert _sample("seat_upgrades_applied_total") == before + 1
    assert _sample("seat_upgrade_prorated_cents_total", {"currency": "BRL"}) == cents_before + 1234


def test_error_counter_is_labelled_by_code():
    before = _sample("seat_billing_errors_total", {"code": "storage_error"})
    metrics.billing_error("storage_error")
    assert _sample("seat_billing_errors_total", {"code": "storage_error"}) == before + 1


def test_liveness_probes(client):
    assert client.get("/live").json() == {"status": "alive"}
    assert client.get("/healthz").json() == {"status": "ok"}
