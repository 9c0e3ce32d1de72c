# backend/tests/test_routes.py
from __future__ import annotations

OWNER = {"X-User-Email": "owner@t.local", "X-User-Role": "user"}
BUYER = {"X-User-Email": "buyer@t.local", "X-User-Role": "user"}
NEIGHBOUR = {"X-User-Email": "neighbour@t.local", "X-User-Role": "user"}
OFFICER = {"X-User-Email": "officer@t.local", "X-User-Role": "land_officer"}
ADMIN = {"X-User-Email": "admin@t.local", "X-User-Role": "admin"}

PARCEL = {
    "plot_number": "BL-17",
    "region": "Addis Ababa",
    "sub_city": "Bole",
    "kebele": "03",
    "property_type": "residential",
    "area": 250,
}


def _approved_property(client) -> dict:
    r = client.post("/api/properties", json=PARCEL, headers=OWNER)
    assert r.status_code == 201, r.text
    pid = r.json()["id"]
    for target in ("documents_validated", "payment_completed", "approved"):
        r = client.put(f"/api/properties/{pid}/status", json={"status": target}, headers=OFFICER)
        assert r.status_code == 200, r.text
    return r.json()


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True and body["db"] is True
    assert body["env"] == "test"


def test_request_id_is_echoed(client):
    r = client.get("/api/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"
    assert client.get("/api/health").headers["X-Request-ID"]


def test_missing_identity_is_401(client):
    r = client.get("/api/transfers/my-transfers")
    assert r.status_code == 401


def test_workflow_errors_render_detail_and_code(client):
    prop = _approved_property(client)

    r = client.put(f"/api/properties/{prop['id']}/status", json={"status": "transferred"}, headers=ADMIN)
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_STATE_TRANSITION"
    assert "detail" in r.json()

    r = client.get("/api/properties/999", headers=OWNER)
    assert r.status_code == 404
    assert r.json() == {
        "detail": "Property not found",
        "code": "NOT_FOUND",
        "context": {"entity": "property", "entity_id": 999},
    }

    r = client.put(f"/api/properties/{prop['id']}/status", json={"status": "rejected", "notes": "mine"}, headers=OWNER)
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"


def test_request_body_validation_is_422(client):
    r = client.post("/api/properties", json={**PARCEL, "area": -1}, headers=OWNER)
    assert r.status_code == 422


def test_transfer_over_http(client):
    prop = _approved_property(client)
    client.get("/api/transfers/my-transfers", headers=BUYER)  # provisions the buyer account

    r = client.post(
        "/api/transfers",
        json={
            "property_id": prop["id"],
            "new_owner_email": "buyer@t.local",
            "transfer_type": "sale",
            "transfer_reason": "Sold to buyer",
            "transfer_value": {"amount": 1500000, "currency": "ETB"},
        },
        headers=OWNER,
    )
    assert r.status_code == 201, r.text
    t = r.json()
    assert t["status"] == "initiated"
    assert t["compliance_status"] == "pending"

    dup = client.post(
        "/api/transfers",
        json={
            "property_id": prop["id"],
            "new_owner_email": "buyer@t.local",
            "transfer_type": "gift",
            "transfer_reason": "again",
        },
        headers=OWNER,
    )
    assert dup.status_code == 409
    assert dup.json()["code"] == "TRANSFER_ALREADY_ACTIVE"

    doc = {
        "document_type": "sale_agreement",
        "document_name": "Sale agreement",
        "file_id": "f-1",
        "filename": "agreement.pdf",
        "file_type": "application/pdf",
    }
    r = client.post(f"/api/transfers/{t['id']}/documents", json={"documents": [doc]}, headers=OWNER)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "under_review"
    doc_id = r.json()["documents"][0]["id"]

    r = client.put(
        f"/api/transfers/{t['id']}/review-documents",
        json={"reviews": [{"document_id": doc_id, "status": "approved", "notes": "ok"}]},
        headers=OFFICER,
    )
    assert r.json()["status"] == "verification_pending"

    r = client.put(
        f"/api/transfers/{t['id']}/compliance",
        json={
            "ethiopian_law": {"status": "compliant"},
            "tax_clearance": {"status": "compliant"},
            "fraud_prevention": {"status": "compliant", "risk_level": "low"},
        },
        headers=OFFICER,
    )
    assert r.status_code == 200, r.text
    assert r.json()["compliance_status"] == "compliant"

    r = client.put(f"/api/transfers/{t['id']}/approve", json={"decision": "approved"}, headers=OFFICER)
    assert r.json()["status"] == "approved"

    r = client.put(f"/api/transfers/{t['id']}/complete", headers=OFFICER)
    assert r.status_code == 403

    r = client.put(f"/api/transfers/{t['id']}/complete", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["status"] == "completed"

    r = client.get(f"/api/properties/{prop['id']}", headers=BUYER)
    body = r.json()
    assert body["status"] == "transferred"
    assert body["current_transfer_id"] is None
    assert [h["owner_id"] for h in body["ownership_history"]] == [prop["owner_id"]]

    r = client.get("/api/transfers/my-transfers", headers=BUYER)
    assert r.json()["total"] == 1

    r = client.get(f"/api/transfers/{t['id']}", headers=NEIGHBOUR)
    assert r.status_code == 404

    r = client.get("/api/transfers", params={"status": "completed"}, headers=OFFICER)
    assert r.json()["total"] == 1

    r = client.get(f"/api/logs/property/{prop['id']}", headers=BUYER)
    assert r.status_code == 200
    assert r.json()[0]["action"] == "transfer_completed"
    assert r.json()[0]["metadata"]["transfer_id"] == t["id"]


def test_dispute_over_http(client):
    prop = _approved_property(client)
    officer_id = prop["reviewed_by_id"]

    r = client.post(
        "/api/disputes",
        json={
            "property_id": prop["id"],
            "dispute_type": "boundary_dispute",
            "title": "Fence moved",
            "description": "The fence was moved one metre onto my plot",
            "evidence": [
                {
                    "document_type": "photo",
                    "document_name": "Fence photo",
                    "file_id": "img-1",
                    "filename": "fence.jpg",
                    "file_type": "image/jpeg",
                }
            ],
        },
        headers=NEIGHBOUR,
    )
    assert r.status_code == 201, r.text
    d = r.json()
    assert len(d["evidence"]) == 1

    r = client.get(f"/api/properties/{prop['id']}", headers=OWNER)
    assert r.json()["has_active_dispute"] is True

    r = client.put(f"/api/disputes/{d['id']}/withdraw", json={"reason": "no"}, headers=OWNER)
    assert r.status_code == 403

    r = client.put(f"/api/disputes/admin/{d['id']}/review", json={"notes": "on it"}, headers=OFFICER)
    assert r.json()["status"] == "under_review"

    r = client.put(f"/api/disputes/admin/{d['id']}/assign", json={"assignee_id": officer_id}, headers=ADMIN)
    assert r.status_code == 200, r.text
    assert r.json()["assigned_to_id"] == officer_id

    r = client.put(
        f"/api/disputes/admin/{d['id']}/resolve",
        json={"outcome": "dismissed", "notes": "Survey shows original boundary"},
        headers=OFFICER,
    )
    assert r.json()["status"] == "resolved"

    r = client.get(f"/api/properties/{prop['id']}", headers=OWNER)
    assert r.json()["has_active_dispute"] is False

    r = client.get("/api/disputes/my-disputes", headers=NEIGHBOUR)
    assert r.json()["total"] == 1
    r = client.get("/api/disputes/admin/all", params={"status": "resolved"}, headers=OFFICER)
    assert r.json()["total"] == 1


def test_logs_listing_is_admin_only(client):
    prop = _approved_property(client)

    assert client.get("/api/logs", headers=OFFICER).status_code == 403

    r = client.get("/api/logs", params={"property_id": prop["id"], "limit": 2}, headers=ADMIN)
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 4
    assert body["limit"] == 2 and len(body["items"]) == 2

    r = client.get("/api/logs/user", headers=OWNER)
    assert [x["action"] for x in r.json()][-1] == "application_submitted"


def test_page_size_is_clamped(client):
    r = client.get("/api/transfers/my-transfers", params={"limit": 5000}, headers=OWNER)
    assert r.status_code == 200
    assert r.json()["limit"] == 100


def test_property_listings(client):
    approved = _approved_property(client)
    r = client.post("/api/properties", json={**PARCEL, "plot_number": "BL-18"}, headers=OWNER)
    waiting = r.json()
    client.post("/api/properties", json={**PARCEL, "plot_number": "BL-19"}, headers=NEIGHBOUR)

    r = client.get("/api/properties/my-properties", headers=OWNER)
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 2
    assert {p["id"] for p in body["items"]} == {approved["id"], waiting["id"]}

    r = client.get("/api/properties/my-properties", params={"status": "approved"}, headers=OWNER)
    assert [p["id"] for p in r.json()["items"]] == [approved["id"]]

    # officers work the pending queue across owners, oldest first
    r = client.get("/api/properties", params={"status": "pending"}, headers=OFFICER)
    assert r.status_code == 200
    assert r.json()["total"] == 2
    assert r.json()["items"][0]["id"] == waiting["id"]

    r = client.get("/api/properties", params={"limit": 1, "page": 2}, headers=ADMIN)
    assert r.json()["total"] == 3 and len(r.json()["items"]) == 1

    assert client.get("/api/properties", headers=OWNER).status_code == 403
    assert client.get("/api/properties", params={"status": "nope"}, headers=OFFICER).status_code == 422
