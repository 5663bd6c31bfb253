from riskwatch.routes import alerts as alerts_routes

from conftest import create_account


def _critical_alert(client, subject_id):
    create_account(subject_id, age_days=1, network_risk=80, open_flags=2)
    resp = client.post("/api/scans", json={"subject_id": subject_id, "requested_by": "analyst"})
    return resp.get_json()["alert"]


def test_list_and_filter_alerts(client):
    critical = _critical_alert(client, "ACC-AL1")
    create_account("ACC-AL2")
    client.post(
        "/api/alerts/escalate",
        json={"subject_id": "ACC-AL2", "reason": "chargeback spike", "severity": "MEDIUM", "requested_by": "analyst"},
    )

    alerts = client.get("/api/alerts").get_json()
    assert [a["subject_id"] for a in alerts] == ["ACC-AL1", "ACC-AL2"]

    pending = client.get("/api/alerts?status=pending").get_json()
    assert [a["id"] for a in pending] == [critical["id"]]

    medium = client.get("/api/alerts?severity=MEDIUM").get_json()
    assert [a["subject_id"] for a in medium] == ["ACC-AL2"]

    by_subject = client.get("/api/alerts?subject_id=ACC-AL2").get_json()
    assert len(by_subject) == 1
    assert by_subject[0]["scan_id"] is None

    assert client.get("/api/alerts?status=BOGUS").status_code == 400


def test_list_alerts_is_capped(client, monkeypatch):
    monkeypatch.setattr(alerts_routes, "MAX_ALERT_LIMIT", 2)
    for idx in range(3):
        create_account(f"ACC-CAP{idx}")
        client.post(
            "/api/alerts/escalate",
            json={"subject_id": f"ACC-CAP{idx}", "reason": "manual review", "requested_by": "analyst"},
        )

    assert len(client.get("/api/alerts").get_json()) == 2
    assert len(client.get("/api/alerts?limit=50").get_json()) == 2
    assert len(client.get("/api/alerts?limit=1").get_json()) == 1
    assert len(client.get("/api/alerts?limit=0").get_json()) == 1


def test_get_alert(client):
    critical = _critical_alert(client, "ACC-AL3")
    resp = client.get(f"/api/alerts/{critical['id']}")
    assert resp.status_code == 200
    assert resp.get_json()["failed_checks"] == ["account_age", "network_risk", "support_flags"]
    assert client.get("/api/alerts/4040").status_code == 404


def test_escalate_endpoint(client, notifier):
    create_account("ACC-AL4")
    resp = client.post(
        "/api/alerts/escalate",
        json={"subject_id": "ACC-AL4", "reason": "law enforcement request", "requested_by": "compliance"},
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == "ESCALATED"
    assert body["severity"] == "HIGH"
    assert notifier.sent[-1]["id"] == body["id"]

    denied = client.post(
        "/api/alerts/escalate", json={"subject_id": "ACC-AL4", "reason": "x", "requested_by": "viewer"}
    )
    assert denied.status_code == 403


def test_alert_status_endpoint(client):
    critical = _critical_alert(client, "ACC-AL5")
    url = f"/api/alerts/{critical['id']}/status"

    resp = client.post(url, json={"status": "UNDER_REVIEW", "actor": "analyst"})
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "UNDER_REVIEW"
    assert resp.get_json()["subject_id"] == "ACC-AL5"

    bad = client.post(url, json={"status": "PENDING", "actor": "analyst"})
    assert bad.status_code == 400
    assert "UNDER_REVIEW" in bad.get_json()["message"]


def test_unfreeze_endpoint(client):
    _critical_alert(client, "ACC-AL6")
    client.post("/api/financial-requests", json={"subject_id": "ACC-AL6", "amount": 10})

    denied = client.post("/api/accounts/ACC-AL6/unfreeze", json={"actor": "analyst"})
    assert denied.status_code == 403

    resp = client.post("/api/accounts/ACC-AL6/unfreeze", json={"actor": "compliance", "reason": "cleared"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["changed"] is True
    assert body["account"]["frozen"] is False
    assert len(body["released_request_ids"]) == 1

    audit = client.get("/api/audit?subject_id=ACC-AL6&event_type=ACCOUNT_UNFROZEN").get_json()
    assert len(audit) == 1
    assert audit[0]["actor"] == "compliance"
    assert client.get("/api/audit?event_type=NOPE").status_code == 400
