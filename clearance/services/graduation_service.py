"""
Graduation Service — graduation clearance on top of the request lifecycle.

A graduation request is an ordinary ClearanceRequest for the
"Graduation Clearance" document type, whose stages are
professors → library → cashier → registrar. What this module adds:

    apply / cancel          one open graduation request per student
    status                  per-office progress derived from the stage index
    professor_approve/…     per-professor sign-off; the last approval moves
                            the request past the professors stage
    office_queue / office_* per-office pending lists and decisions
    assign_professor        course assignments that seed professor approvals

Every status / stage change still goes through ``request_lifecycle``.
"""

from __future__ import annotations

import logging

from clearance.core.exceptions import (
    AuthorizationError,
    ClearanceError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from clearance.models import db
from clearance.models.catalog import DocumentType, StageAuthorization
from clearance.models.graduation import (
    GRADUATION_DOC_TYPE,
    GRADUATION_STAGES,
    PROFESSOR_STAGE,
    ProfessorApproval,
    StudentProfessor,
)
from clearance.models.profile import PROFESSOR_ROLE, Profile
from clearance.models.request import OPEN_STATUSES, ClearanceRequest
from clearance.services import request_lifecycle, stage_registry
from clearance.utils.helpers import commit_or_raise, missing_fields, utcnow

logger = logging.getLogger(__name__)

OFFICE_STAGES = GRADUATION_STAGES[1:]


# ═══════════════════════════════════════════════════════════════════════════
#  Setup
# ═══════════════════════════════════════════════════════════════════════════


def seed_graduation() -> bool:
    """Register the professors stage and the graduation document type. Returns True if anything was added."""
    added = False
    if not StageAuthorization.query.filter_by(stage=PROFESSOR_STAGE).first():
        db.session.add(StageAuthorization(stage=PROFESSOR_STAGE, label="Professors",
                                          roles=[PROFESSOR_ROLE]))
        added = True
    if not DocumentType.query.filter_by(name=GRADUATION_DOC_TYPE).first():
        db.session.add(DocumentType(
            name=GRADUATION_DOC_TYPE,
            description="Final clearance before graduation",
            required_stages=list(GRADUATION_STAGES),
        ))
        added = True
    if added:
        commit_or_raise("seed graduation clearance")
    return added


def _graduation_doc_type() -> DocumentType:
    doc_type = DocumentType.query.filter_by(name=GRADUATION_DOC_TYPE).first()
    if not doc_type:
        raise NotFoundError("Document type", GRADUATION_DOC_TYPE)
    return doc_type


def _graduation_requests():
    return ClearanceRequest.query.join(DocumentType).filter(DocumentType.name == GRADUATION_DOC_TYPE)


def _open_request_for(student_id) -> ClearanceRequest | None:
    return (
        _graduation_requests()
        .filter(ClearanceRequest.student_id == student_id,
                ClearanceRequest.is_completed.is_(False))
        .order_by(ClearanceRequest.id.desc())
        .first()
    )


def _load_graduation_request(request_id) -> ClearanceRequest:
    req = db.session.get(ClearanceRequest, request_id) if request_id else None
    if not req or req.document_type.name != GRADUATION_DOC_TYPE:
        raise NotFoundError("Graduation request", request_id)
    return req


# ═══════════════════════════════════════════════════════════════════════════
#  Student
# ═══════════════════════════════════════════════════════════════════════════


def apply(student_id, details: str | None = None):
    """Open a graduation clearance. Returns ``(request, ai_insights)``."""
    if not student_id:
        raise ValidationError("student_id is required", details={"student_id": "required"})
    if _open_request_for(student_id):
        raise ValidationError("You already have a pending graduation clearance request")
    doc_type = _graduation_doc_type()
    return request_lifecycle.submit(student_id, doc_type.id, details or "Graduation clearance")


def cancel(student_id) -> int:
    """Withdraw the student's open graduation request; returns its id."""
    req = _open_request_for(student_id)
    if not req:
        raise NotFoundError("Pending graduation clearance request")
    request_lifecycle.delete_request(req.id, student_id)
    return req.id


def office_statuses(req: ClearanceRequest) -> dict:
    """``{stage: pending | approved | rejected}`` derived from status and stage index."""
    statuses = {}
    for index, stage in enumerate(req.stages):
        if req.is_completed or index < req.current_stage_index:
            statuses[stage] = "approved"
        elif index == req.current_stage_index and req.current_status == "on_hold":
            statuses[stage] = "rejected"
        else:
            statuses[stage] = "pending"
    return statuses


def status(student_id) -> dict:
    req = (
        _graduation_requests()
        .filter(ClearanceRequest.student_id == student_id)
        .order_by(ClearanceRequest.id.desc())
        .first()
    )
    if not req:
        return {"hasRequest": False, "message": "No clearance request found"}
    return {
        "hasRequest": True,
        "request": req.to_dict(),
        "offices": office_statuses(req),
        "professorApprovals": [a.to_dict() for a in req.professor_approvals],
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Professors
# ═══════════════════════════════════════════════════════════════════════════


def professor_students(professor_id) -> list[ProfessorApproval]:
    """Approvals assigned to a professor, newest request first."""
    return (
        ProfessorApproval.query
        .filter_by(professor_id=professor_id)
        .order_by(ProfessorApproval.created_at.desc(), ProfessorApproval.id.desc())
        .all()
    )


def _load_approval(approval_id, professor_id) -> ProfessorApproval:
    if not approval_id or not professor_id:
        raise ValidationError("approval_id and professor_id are required")
    approval = ProfessorApproval.query.filter_by(id=approval_id, professor_id=professor_id).first()
    if not approval:
        raise NotFoundError("Professor approval", approval_id)
    req = approval.request
    if req.current_stage != PROFESSOR_STAGE or req.current_status not in OPEN_STATUSES:
        raise InvalidTransitionError(
            "sign off", req.current_status,
            f"request is at the {req.current_stage} stage",
        )
    return approval


def professor_approve(approval_id, professor_id, comments: str | None = None) -> dict:
    """Record one professor's approval; the last one advances the request."""
    approval = _load_approval(approval_id, professor_id)
    approval.status = "approved"
    approval.comments = (comments or "").strip() or None
    approval.approved_at = utcnow()

    outstanding = (
        ProfessorApproval.query
        .filter(ProfessorApproval.request_id == approval.request_id,
                ProfessorApproval.status != "approved")
        .count()
    )
    if outstanding:
        commit_or_raise(f"professor approval {approval.id}")
        logger.info("Professor %s approved request %s (%s outstanding)",
                    professor_id, approval.request_id, outstanding,
                    extra={"clearance_request_id": approval.request_id, "actor_id": professor_id})
        return {"approval": approval.to_dict(), "message": "Student approved successfully",
                "outstanding": outstanding}

    # Commits the approval together with the stage advance
    try:
        result = request_lifecycle.approve(approval.request_id, professor_id)
    except ClearanceError:
        db.session.rollback()
        raise
    return {
        "approval": approval.to_dict(),
        "message": "Student approved successfully. All professors have signed off.",
        "outstanding": 0,
        **result.to_dict(),
    }


def professor_reject(approval_id, professor_id, comments: str | None) -> dict:
    """Record a rejection and put the request on hold (one commit)."""
    if not comments or not str(comments).strip():
        raise ValidationError("Comments are required when rejecting",
                              details={"comments": "required"})
    approval = _load_approval(approval_id, professor_id)
    approval.status = "rejected"
    approval.comments = str(comments).strip()
    approval.approved_at = None

    try:
        result = request_lifecycle.reject(approval.request_id, professor_id, approval.comments)
    except ClearanceError:
        db.session.rollback()
        raise
    return {"approval": approval.to_dict(), "message": "Student rejected with comments",
            **result.to_dict()}


# ═══════════════════════════════════════════════════════════════════════════
#  Offices
# ═══════════════════════════════════════════════════════════════════════════


def _check_office(stage: str) -> str:
    if stage not in OFFICE_STAGES:
        raise NotFoundError("Graduation office", stage)
    return stage


def office_queue(stage: str) -> list[ClearanceRequest]:
    """Open graduation requests waiting at an office, oldest first."""
    _check_office(stage)
    requests = (
        _graduation_requests()
        .filter(ClearanceRequest.current_status.in_(OPEN_STATUSES))
        .order_by(ClearanceRequest.created_at.asc(), ClearanceRequest.id.asc())
        .all()
    )
    return [r for r in requests if r.current_stage == stage]


def _at_office(request_id, stage: str) -> ClearanceRequest:
    _check_office(stage)
    req = _load_graduation_request(request_id)
    if req.current_stage != stage:
        raise InvalidTransitionError(
            f"decide {stage} clearance for", req.current_status,
            f"request is at the {req.current_stage} stage",
        )
    return req


def office_approve(stage: str, request_id, admin_id):
    req = _at_office(request_id, stage)
    return request_lifecycle.approve(req.id, admin_id)


def office_reject(stage: str, request_id, admin_id, comments: str | None):
    if not comments or not str(comments).strip():
        raise ValidationError("Comments are required when rejecting",
                              details={"comments": "required"})
    req = _at_office(request_id, stage)
    return request_lifecycle.reject(req.id, admin_id, comments)


# ═══════════════════════════════════════════════════════════════════════════
#  Professor assignments
# ═══════════════════════════════════════════════════════════════════════════


def assign_professor(data: dict, actor_id) -> StudentProfessor:
    """Assign a professor to a student for a course (registrar or super admin)."""
    actor = db.session.get(Profile, actor_id) if actor_id else None
    if not actor or not stage_registry.is_authorized(actor.role, "registrar"):
        raise AuthorizationError("Only the registrar can assign professors")

    missing = missing_fields(data, "student_id", "professor_id", "course_code")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}",
                              details={f: "required" for f in missing})

    student = db.session.get(Profile, data["student_id"])
    if not student or not student.is_student:
        raise NotFoundError("Student profile", data["student_id"])
    professor = db.session.get(Profile, data["professor_id"])
    if not professor or professor.role != PROFESSOR_ROLE:
        raise NotFoundError("Professor profile", data["professor_id"])

    course_code = data["course_code"].strip()
    if StudentProfessor.query.filter_by(student_id=student.id, professor_id=professor.id,
                                        course_code=course_code).first():
        raise ConflictError("Professor assignment", "course_code", course_code)

    assignment = StudentProfessor(
        student_id=student.id,
        professor_id=professor.id,
        course_code=course_code,
        course_name=data.get("course_name") or "",
        semester=data.get("semester") or "",
        academic_year=data.get("academic_year") or "",
        is_active=True,
    )
    db.session.add(assignment)
    commit_or_raise("assign professor")
    logger.info("Professor %s assigned to student %s for %s",
                professor.id, student.id, course_code, extra={"actor_id": actor.id})
    return assignment


def list_professors() -> list[Profile]:
    return Profile.query.filter_by(role=PROFESSOR_ROLE).order_by(Profile.full_name).all()
