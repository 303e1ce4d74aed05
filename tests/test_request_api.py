"""
Tests — /api/requests endpoints and the shared response envelope.
"""

from unittest.mock import patch

import pytest

from clearance.models import db
from clearance.models.request import ClearanceRequest
from clearance.services import request_lifecycle


@pytest.fixture()
def doc_type(make_doc_type):
    return make_doc_type("Clearance Form", ["library", "registrar"])


def _create(client, student_id, doc_type_id, details="Graduating this term"):
    res = client.post("/api/requests/create", json={
        "student_id": student_id,
        "doc_type_id": doc_type_id,
        "request_details": details,
    })
    assert res.status_code == 201, res.get_json()
    return res.get_json()


class TestCreate:
    def test_create_returns_request_and_insights(self, client, actors, doc_type):
        body = _create(client, actors["student"].id, doc_type.id, "urgent please")
        assert body["success"] is True
        assert body["request"]["current_status"] == "pending"
        assert body["request"]["current_stage_index"] == 0
        assert body["aiInsights"]["urgency"] == "critical"
        assert body["aiInsights"]["assignedOffice"] == "library"

    def test_missing_fields(self, client, actors):
        res = client.post("/api/requests/create", json={"student_id": actors["student"].id})
        assert res.status_code == 400
        body = res.get_json()
        assert body["success"] is False
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["details"] == {"doc_type_id": "required"}

    def test_unknown_doc_type(self, client, actors):
        res = client.post("/api/requests/create",
                          json={"student_id": actors["student"].id, "doc_type_id": 77})
        assert res.status_code == 404


class TestEndToEnd:
    def test_two_stage_clearance(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]

        res = client.post(f"/api/requests/{req_id}/approve",
                          json={"admin_id": actors["library_admin"].id})
        assert res.status_code == 200
        body = res.get_json()
        assert body["message"] == "Moved to next stage"
        assert body["request"]["current_status"] == "approved"
        assert body["request"]["current_stage_index"] == 1

        res = client.post(f"/api/requests/{req_id}/approve",
                          json={"admin_id": actors["registrar_admin"].id})
        body = res.get_json()
        assert body["message"] == "Request completed!"
        assert body["request"]["current_status"] == "completed"
        assert body["request"]["current_stage_index"] == 1
        assert body["certificate"]["verification_code"]

        res = client.get(f"/api/certificates/request/{req_id}")
        assert res.status_code == 200
        assert res.get_json()["certificate"]["verification_code"] == \
            body["certificate"]["verification_code"]

    def test_history_endpoint(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        client.post(f"/api/requests/{req_id}/approve",
                    json={"admin_id": actors["library_admin"].id})

        res = client.get(f"/api/requests/{req_id}/history")
        history = res.get_json()["history"]
        assert [h["action_taken"] for h in history] == ["approved", "submitted"]
        assert history[0]["processor"]["role"] == "library_admin"


class TestErrors:
    def test_wrong_role_is_403(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        res = client.post(f"/api/requests/{req_id}/approve",
                          json={"admin_id": actors["cashier_admin"].id})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"
        assert db.session.get(ClearanceRequest, req_id).current_status == "pending"

    def test_reject_without_reason_is_400(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        res = client.post(f"/api/requests/{req_id}/reject",
                          json={"admin_id": actors["library_admin"].id})
        assert res.status_code == 400

    def test_reject_then_resubmit(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        res = client.post(f"/api/requests/{req_id}/reject",
                          json={"admin_id": actors["library_admin"].id, "reason": "Overdue book"})
        assert res.get_json()["request"]["current_status"] == "on_hold"

        res = client.post(f"/api/requests/{req_id}/resubmit",
                          json={"student_id": actors["student"].id})
        assert res.status_code == 200
        assert res.get_json()["request"]["current_status"] == "pending"

    def test_resubmit_when_not_on_hold_is_400(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        res = client.post(f"/api/requests/{req_id}/resubmit",
                          json={"student_id": actors["student"].id})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_INVALID_TRANSITION"

    def test_delete_not_owned_is_404(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        res = client.delete(f"/api/requests/{req_id}/delete",
                            json={"student_id": actors["other_student"].id})
        assert res.status_code == 404
        assert db.session.get(ClearanceRequest, req_id) is not None

    def test_delete_approved_is_400(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        client.post(f"/api/requests/{req_id}/approve",
                    json={"admin_id": actors["library_admin"].id})
        res = client.delete(f"/api/requests/{req_id}/delete",
                            json={"student_id": actors["student"].id})
        assert res.status_code == 400

    def test_delete_pending(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        res = client.delete(f"/api/requests/{req_id}/delete",
                            json={"student_id": actors["student"].id})
        assert res.status_code == 200
        assert res.get_json()["success"] is True
        assert db.session.get(ClearanceRequest, req_id) is None

    def test_concurrent_approve_is_409(self, client, actors, doc_type):
        req_id = _create(client, actors["student"].id, doc_type.id)["request"]["id"]
        stale = db.session.get(ClearanceRequest, req_id)
        _ = stale.document_type.stages, stale.student
        db.session.expunge(stale)
        client.post(f"/api/requests/{req_id}/approve",
                    json={"admin_id": actors["library_admin"].id})

        with patch.object(request_lifecycle, "_load_request", return_value=stale):
            res = client.post(f"/api/requests/{req_id}/approve",
                              json={"admin_id": actors["library_admin"].id})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_unknown_route_uses_envelope(self, client):
        res = client.get("/api/nowhere")
        assert res.status_code == 404
        assert res.get_json()["success"] is False


class TestListings:
    def test_student_and_admin_views(self, client, actors, doc_type):
        _create(client, actors["student"].id, doc_type.id)
        res = client.get(f"/api/requests/student/{actors['student'].id}")
        assert len(res.get_json()["requests"]) == 1

        res = client.get("/api/requests/admin/library_admin")
        assert len(res.get_json()["requests"]) == 1
        res = client.get("/api/requests/admin/registrar_admin")
        assert res.get_json()["requests"] == []

    def test_routing_stats(self, client, actors, doc_type):
        _create(client, actors["student"].id, doc_type.id)
        res = client.get("/api/requests/routing-stats?days=7")
        stats = res.get_json()["stats"]
        assert stats["total_processed"] == 1
        assert stats["category_distribution"] == {"clearance": 1}
