"""
Tests — graduation clearance: professor sign-off, office queues, assignments.
"""

import pytest

from clearance.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from clearance.models import db
from clearance.models.catalog import DocumentType
from clearance.models.certificate import ClearanceCertificate
from clearance.models.graduation import ProfessorApproval, StudentProfessor
from clearance.models.request import ClearanceRequest
from clearance.services import graduation_service, request_lifecycle


@pytest.fixture()
def graduation(stages):
    graduation_service.seed_graduation()
    return DocumentType.query.filter_by(name="Graduation Clearance").one()


@pytest.fixture()
def professors(actors, make_profile, graduation):
    """Two professors assigned to actors['student'] (one of them for two courses)."""
    first, second = actors["professor"], make_profile("professor")
    registrar = actors["registrar_admin"]
    for professor, course in ((first, "CS401"), (first, "CS402"), (second, "IT499")):
        graduation_service.assign_professor(
            {"student_id": actors["student"].id, "professor_id": professor.id,
             "course_code": course, "course_name": f"Course {course}"},
            registrar.id,
        )
    return first, second


@pytest.fixture()
def applied(actors, professors):
    req, _ = graduation_service.apply(actors["student"].id)
    return req


def _approval(req, professor):
    return ProfessorApproval.query.filter_by(request_id=req.id, professor_id=professor.id).one()


def _clear_professors(req, professors):
    for professor in professors:
        graduation_service.professor_approve(_approval(req, professor).id, professor.id)


# ═══════════════════════════════════════════════════════════════════════════
#  Apply / cancel / status
# ═══════════════════════════════════════════════════════════════════════════


class TestApply:
    def test_seed_is_idempotent(self, graduation):
        assert graduation.stages == ["professors", "library", "cashier", "registrar"]
        assert graduation_service.seed_graduation() is False

    def test_apply_creates_one_approval_per_professor(self, applied, professors):
        assert applied.current_status == "pending"
        assert applied.current_stage == "professors"
        approvals = ProfessorApproval.query.filter_by(request_id=applied.id).all()
        assert sorted(a.professor_id for a in approvals) == sorted(p.id for p in professors)
        assert all(a.status == "pending" for a in approvals)

    def test_second_open_application_refused(self, applied, actors):
        with pytest.raises(ValidationError, match="already have a pending graduation"):
            graduation_service.apply(actors["student"].id)

    def test_no_assigned_professors(self, actors, graduation):
        with pytest.raises(ValidationError, match="No professors are assigned"):
            graduation_service.apply(actors["other_student"].id)
        assert ClearanceRequest.query.count() == 0

    def test_inactive_assignment_is_ignored(self, actors, professors):
        StudentProfessor.query.filter_by(professor_id=professors[1].id).update({"is_active": False})
        db.session.commit()
        req, _ = graduation_service.apply(actors["student"].id)
        assert [a.professor_id for a in req.professor_approvals] == [professors[0].id]

    def test_missing_document_type(self, actors, stages):
        with pytest.raises(NotFoundError):
            graduation_service.apply(actors["student"].id)

    def test_cancel_removes_request_and_approvals(self, applied, actors):
        request_id = applied.id
        assert graduation_service.cancel(actors["student"].id) == request_id
        assert db.session.get(ClearanceRequest, request_id) is None
        assert ProfessorApproval.query.filter_by(request_id=request_id).count() == 0

    def test_cancel_without_request(self, actors, graduation):
        with pytest.raises(NotFoundError):
            graduation_service.cancel(actors["student"].id)

    def test_status_reports_each_office(self, applied, actors, professors):
        _clear_professors(applied, professors)
        request_lifecycle.reject(applied.id, actors["library_admin"].id, "Unreturned book")

        status = graduation_service.status(actors["student"].id)
        assert status["hasRequest"] is True
        assert status["offices"] == {
            "professors": "approved",
            "library": "rejected",
            "cashier": "pending",
            "registrar": "pending",
        }
        assert len(status["professorApprovals"]) == 2

    def test_status_without_request(self, actors, graduation):
        assert graduation_service.status(actors["student"].id)["hasRequest"] is False


# ═══════════════════════════════════════════════════════════════════════════
#  Professor sign-off
# ═══════════════════════════════════════════════════════════════════════════


class TestProfessorSignOff:
    def test_partial_approval_keeps_professors_stage(self, applied, professors):
        first, _ = professors
        result = graduation_service.professor_approve(_approval(applied, first).id, first.id,
                                                      "Grades complete")
        assert result["outstanding"] == 1
        assert result["approval"]["status"] == "approved"
        assert result["approval"]["comments"] == "Grades complete"
        req = db.session.get(ClearanceRequest, applied.id)
        assert req.current_stage == "professors"
        assert req.current_status == "pending"

    def test_last_approval_advances_to_library(self, applied, professors):
        first, second = professors
        graduation_service.professor_approve(_approval(applied, first).id, first.id)
        result = graduation_service.professor_approve(_approval(applied, second).id, second.id)
        assert result["outstanding"] == 0
        assert result["request"]["current_status"] == "approved"
        assert result["request"]["current_stage"] == "library"

        history = request_lifecycle.get_history(applied.id)
        assert history[0].action_taken == "approved"
        assert history[0].stage == "professors"
        assert history[0].processed_by == second.id

    def test_generic_approve_waits_for_every_professor(self, applied, professors):
        first, _ = professors
        with pytest.raises(InvalidTransitionError):
            request_lifecycle.approve(applied.id, first.id)

    def test_unassigned_professor_is_forbidden(self, applied, make_profile):
        outsider = make_profile("professor")
        with pytest.raises(AuthorizationError):
            request_lifecycle.approve(applied.id, outsider.id)

    def test_approval_belongs_to_its_professor(self, applied, professors):
        first, second = professors
        with pytest.raises(NotFoundError):
            graduation_service.professor_approve(_approval(applied, first).id, second.id)

    def test_reject_puts_request_on_hold(self, applied, professors):
        first, _ = professors
        result = graduation_service.professor_reject(_approval(applied, first).id, first.id,
                                                     "Missing final project")
        assert result["request"]["current_status"] == "on_hold"
        assert _approval(applied, first).status == "rejected"

    def test_reject_requires_comments(self, applied, professors):
        first, _ = professors
        with pytest.raises(ValidationError, match="Comments are required"):
            graduation_service.professor_reject(_approval(applied, first).id, first.id, "  ")
        assert _approval(applied, first).status == "pending"

    def test_sign_off_refused_while_on_hold(self, applied, professors):
        first, second = professors
        graduation_service.professor_reject(_approval(applied, first).id, first.id, "Incomplete")
        with pytest.raises(InvalidTransitionError):
            graduation_service.professor_approve(_approval(applied, second).id, second.id)
        assert _approval(applied, second).status == "pending"

    def test_resubmit_reopens_rejected_approvals_only(self, applied, professors, actors):
        first, second = professors
        graduation_service.professor_approve(_approval(applied, second).id, second.id)
        graduation_service.professor_reject(_approval(applied, first).id, first.id, "Incomplete")

        request_lifecycle.resubmit(applied.id, actors["student"].id)
        assert _approval(applied, first).status == "pending"
        assert _approval(applied, second).status == "approved"

        graduation_service.professor_approve(_approval(applied, first).id, first.id)
        assert db.session.get(ClearanceRequest, applied.id).current_stage == "library"

    def test_professor_students_lists_assigned_requests(self, applied, professors, actors):
        approvals = graduation_service.professor_students(professors[0].id)
        assert [a.request_id for a in approvals] == [applied.id]
        payload = approvals[0].to_dict(include_student=True)
        assert payload["request"]["student"]["id"] == actors["student"].id


# ═══════════════════════════════════════════════════════════════════════════
#  Offices
# ═══════════════════════════════════════════════════════════════════════════


class TestOffices:
    def test_queue_follows_stage(self, applied, professors):
        assert graduation_service.office_queue("library") == []
        _clear_professors(applied, professors)
        assert [r.id for r in graduation_service.office_queue("library")] == [applied.id]
        assert graduation_service.office_queue("cashier") == []

    def test_unknown_office(self, graduation):
        with pytest.raises(NotFoundError):
            graduation_service.office_queue("professors")

    def test_office_must_match_current_stage(self, applied, professors, actors):
        _clear_professors(applied, professors)
        with pytest.raises(InvalidTransitionError):
            graduation_service.office_approve("cashier", applied.id, actors["cashier_admin"].id)

    def test_office_reject_requires_comments(self, applied, professors, actors):
        _clear_professors(applied, professors)
        with pytest.raises(ValidationError):
            graduation_service.office_reject("library", applied.id,
                                             actors["library_admin"].id, "")

    def test_non_graduation_request_is_not_found(self, actors, make_doc_type, graduation):
        doc_type = make_doc_type()
        req, _ = request_lifecycle.submit(actors["student"].id, doc_type.id, "")
        with pytest.raises(NotFoundError):
            graduation_service.office_approve("library", req.id, actors["library_admin"].id)

    def test_full_run_issues_certificate(self, applied, professors, actors):
        _clear_professors(applied, professors)
        graduation_service.office_approve("library", applied.id, actors["library_admin"].id)
        graduation_service.office_approve("cashier", applied.id, actors["cashier_admin"].id)
        result = graduation_service.office_approve("registrar", applied.id,
                                                   actors["registrar_admin"].id)
        assert result.request.is_completed is True
        assert result.certificate is not None
        assert ClearanceCertificate.query.filter_by(request_id=applied.id).count() == 1
        assert graduation_service.office_statuses(result.request) == {
            "professors": "approved", "library": "approved",
            "cashier": "approved", "registrar": "approved",
        }
        with pytest.raises(NotFoundError):
            graduation_service.cancel(actors["student"].id)


# ═══════════════════════════════════════════════════════════════════════════
#  Professor assignments
# ═══════════════════════════════════════════════════════════════════════════


class TestAssignments:
    def test_only_registrar_or_super_admin(self, actors, graduation):
        data = {"student_id": actors["student"].id, "professor_id": actors["professor"].id,
                "course_code": "CS401"}
        with pytest.raises(AuthorizationError):
            graduation_service.assign_professor(data, actors["library_admin"].id)
        assignment = graduation_service.assign_professor(data, actors["super_admin"].id)
        assert assignment.is_active is True

    def test_duplicate_assignment(self, actors, professors):
        from clearance.core.exceptions import ConflictError

        with pytest.raises(ConflictError):
            graduation_service.assign_professor(
                {"student_id": actors["student"].id, "professor_id": professors[0].id,
                 "course_code": "CS401"},
                actors["registrar_admin"].id,
            )

    def test_professor_must_have_professor_role(self, actors, graduation):
        with pytest.raises(NotFoundError):
            graduation_service.assign_professor(
                {"student_id": actors["student"].id, "professor_id": actors["cashier_admin"].id,
                 "course_code": "CS401"},
                actors["registrar_admin"].id,
            )

    def test_missing_fields(self, actors, graduation):
        with pytest.raises(ValidationError) as exc:
            graduation_service.assign_professor({"student_id": actors["student"].id},
                                                actors["registrar_admin"].id)
        assert exc.value.details == {"professor_id": "required", "course_code": "required"}


# ═══════════════════════════════════════════════════════════════════════════
#  API
# ═══════════════════════════════════════════════════════════════════════════


class TestGraduationAPI:
    def test_apply_and_status(self, client, actors, professors):
        res = client.post("/api/graduation/apply", json={"student_id": actors["student"].id})
        assert res.status_code == 201
        assert res.get_json()["request"]["current_stage"] == "professors"

        again = client.post("/api/graduation/apply", json={"student_id": actors["student"].id})
        assert again.status_code == 400

        body = client.get(f"/api/graduation/status/{actors['student'].id}").get_json()
        assert body["hasRequest"] is True
        assert body["offices"]["professors"] == "pending"

    def test_professor_flow(self, client, applied, professors):
        first, second = professors
        res = client.get(f"/api/graduation/professor/students/{first.id}")
        approval_id = res.get_json()["approvals"][0]["id"]

        res = client.post("/api/graduation/professor/reject",
                          json={"approval_id": approval_id, "professor_id": first.id})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Comments are required when rejecting"

        res = client.post("/api/graduation/professor/approve",
                          json={"approval_id": approval_id, "professor_id": first.id})
        assert res.status_code == 200
        assert res.get_json()["outstanding"] == 1

        res = client.post("/api/graduation/professor/approve",
                          json={"approval_id": _approval(applied, second).id,
                                "professor_id": second.id})
        assert res.get_json()["request"]["current_stage"] == "library"

    def test_office_endpoints(self, client, applied, professors, actors):
        _clear_professors(applied, professors)
        pending = client.get("/api/graduation/library/pending").get_json()["requests"]
        assert [r["id"] for r in pending] == [applied.id]
        assert pending[0]["offices"]["library"] == "pending"

        res = client.post("/api/graduation/library/approve",
                          json={"request_id": applied.id, "admin_id": actors["library_admin"].id})
        assert res.status_code == 200
        assert res.get_json()["message"] == "Library clearance approved"

        res = client.post("/api/graduation/cashier/reject",
                          json={"request_id": applied.id, "admin_id": actors["cashier_admin"].id,
                                "comments": "Unpaid lab fee"})
        assert res.get_json()["message"] == "Cashier clearance rejected"
        assert res.get_json()["request"]["current_status"] == "on_hold"

        res = client.post("/api/graduation/library/approve",
                          json={"request_id": applied.id, "admin_id": actors["cashier_admin"].id})
        assert res.status_code == 400

        assert client.get("/api/graduation/dean/pending").status_code == 404

    def test_cancel(self, client, applied, actors):
        res = client.delete(f"/api/graduation/cancel/{actors['student'].id}")
        assert res.status_code == 200
        assert client.delete(f"/api/graduation/cancel/{actors['student'].id}").status_code == 404

    def test_assign_and_list_professors(self, client, actors, graduation):
        res = client.post("/api/graduation/admin/assign-professor", json={
            "actor_id": actors["registrar_admin"].id,
            "student_id": actors["student"].id,
            "professor_id": actors["professor"].id,
            "course_code": "CS401",
            "semester": "2nd",
            "academic_year": "2025-2026",
        })
        assert res.status_code == 201
        assert res.get_json()["assignment"]["course_code"] == "CS401"

        professors = client.get("/api/graduation/admin/professors").get_json()["professors"]
        assert [p["id"] for p in professors] == [actors["professor"].id]
