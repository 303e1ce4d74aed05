"""
Smart Clearance
Request Lifecycle Service — the only writer of request status / stage index.

State machine over {pending, approved, on_hold, completed} with a stage
index into the document type's ordered ``required_stages``:

    submit     → pending, index 0
    approve    → approved, index + 1   (completed, index unchanged, on last stage)
    reject     → on_hold, index unchanged
    resubmit   on_hold → pending, index unchanged
    delete     pending / on_hold → row removed (history cascades)

Every transition is one conditional UPDATE keyed on
``(id, current_status, current_stage_index, version)`` plus its
RequestHistory row, committed together. When the conditional update matches
no row another writer got there first; ``CONCURRENT_TRANSITION_POLICY``
decides whether that is a 409 (``reject``) or a no-op that returns the
already-advanced request (``merge``).

Notifications and certificate issuance run after the commit and never undo
or fail the transition.

Usage:
    from clearance.services import request_lifecycle

    result = request_lifecycle.approve(request_id=12, admin_id="…")
    result.request.current_status     # "approved"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError

from clearance.core.exceptions import (
    AuthorizationError,
    ConcurrentTransitionError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from clearance.models import db
from clearance.models.catalog import SUPER_ADMIN_ROLE, DocumentType
from clearance.models.graduation import PROFESSOR_STAGE, ProfessorApproval, StudentProfessor
from clearance.models.profile import Profile
from clearance.models.request import (
    OPEN_STATUSES,
    REQUEST_TRANSITIONS,
    ClearanceRequest,
    RequestHistory,
)
from clearance.services import stage_registry
from clearance.services.notification import notify_safely
from clearance.services.request_router import classify_and_route
from clearance.utils.helpers import commit_or_raise, missing_fields, utcnow

logger = logging.getLogger(__name__)

POLICY_REJECT = "reject"
POLICY_MERGE = "merge"
CONCURRENCY_POLICIES = {POLICY_REJECT, POLICY_MERGE}

FALLBACK_PRIORITY_SCORE = 50
FALLBACK_URGENCY = "medium"


@dataclass
class TransitionResult:
    request: ClearanceRequest
    message: str
    merged: bool = False
    certificate: dict | None = None

    def to_dict(self) -> dict:
        d = {"request": self.request.to_dict(), "message": self.message}
        if self.merged:
            d["merged"] = True
        if self.certificate is not None:
            d["certificate"] = self.certificate
        return d


# ═══════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════


def _load_request(request_id) -> ClearanceRequest:
    req = db.session.get(ClearanceRequest, request_id)
    if not req:
        raise NotFoundError("Request", request_id)
    return req


def _load_owned_request(request_id, student_id) -> ClearanceRequest:
    """Missing and not-owned are indistinguishable to the caller."""
    req = db.session.get(ClearanceRequest, request_id)
    if not req or req.student_id != student_id:
        raise NotFoundError("Request", request_id)
    return req


def _require_stage_actor(req: ClearanceRequest, admin_id) -> Profile:
    actor = db.session.get(Profile, admin_id) if admin_id else None
    stage = req.current_stage
    if not actor or not stage_registry.is_authorized(actor.role, stage):
        raise AuthorizationError(
            f"Unauthorized: only {', '.join(stage_registry.roles_for_stage(stage))} "
            f"or {SUPER_ADMIN_ROLE} can act on the {stage} stage"
        )
    if stage == PROFESSOR_STAGE and actor.role != SUPER_ADMIN_ROLE \
            and not _approval_for(req.id, actor.id):
        raise AuthorizationError("Unauthorized: you are not an assigned professor on this request")
    return actor


def _approval_for(request_id, professor_id) -> ProfessorApproval | None:
    return ProfessorApproval.query.filter_by(request_id=request_id,
                                             professor_id=professor_id).first()


def _assigned_professor_ids(student_id) -> list[str]:
    rows = (
        StudentProfessor.query
        .filter_by(student_id=student_id, is_active=True)
        .order_by(StudentProfessor.id)
        .all()
    )
    return list(dict.fromkeys(row.professor_id for row in rows))


def _professors_outstanding(req: ClearanceRequest) -> int:
    return (
        ProfessorApproval.query
        .filter(ProfessorApproval.request_id == req.id,
                ProfessorApproval.status != "approved")
        .count()
    )


def _stage_recipients(req: ClearanceRequest, stage: str) -> list[str]:
    """Assigned professors for the professors stage, the stage roles otherwise."""
    if stage == PROFESSOR_STAGE:
        return [a.professor_id for a in
                ProfessorApproval.query.filter_by(request_id=req.id).all()]
    return stage_registry.roles_for_stage(stage)


def validate_transition(req: ClearanceRequest, action: str) -> None:
    rule = REQUEST_TRANSITIONS[action]
    if req.current_status not in rule["from"]:
        raise InvalidTransitionError(
            action, req.current_status,
            f"allowed from {', '.join(rule['from'])}",
        )


def concurrency_policy() -> str:
    policy = current_app.config.get("CONCURRENT_TRANSITION_POLICY", POLICY_REJECT)
    if policy not in CONCURRENCY_POLICIES:
        logger.warning("Unknown CONCURRENT_TRANSITION_POLICY=%r, using %s", policy, POLICY_REJECT)
        return POLICY_REJECT
    return policy


def _apply_transition(req: ClearanceRequest, action: str, *, new_status: str,
                      new_index: int, history: RequestHistory,
                      completed: bool = False) -> TransitionResult | None:
    """Conditional write + history insert in one commit.

    Returns None on success, or the merged TransitionResult when a concurrent
    writer won and the policy is ``merge``.
    """
    request_id = req.id
    stmt = (
        update(ClearanceRequest)
        .where(
            ClearanceRequest.id == request_id,
            ClearanceRequest.current_status == req.current_status,
            ClearanceRequest.current_stage_index == req.current_stage_index,
            ClearanceRequest.version == req.version,
        )
        .values(
            current_status=new_status,
            current_stage_index=new_index,
            is_completed=completed,
            version=ClearanceRequest.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    try:
        matched = db.session.execute(stmt).rowcount
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Conditional update failed for request %s", request_id)
        raise UpstreamError(f"Database error during {action}: {exc.__class__.__name__}") from exc

    if matched != 1:
        db.session.rollback()
        logger.warning("Concurrent %s on request %s (expected %s@%s v%s)",
                       action, request_id, req.current_status,
                       req.current_stage_index, req.version)
        if concurrency_policy() == POLICY_MERGE:
            current = db.session.get(ClearanceRequest, request_id)
            if current is None:
                raise NotFoundError("Request", request_id)
            return TransitionResult(
                request=current,
                message="Request was already updated by a concurrent action",
                merged=True,
            )
        raise ConcurrentTransitionError(request_id, action)

    db.session.add(history)
    commit_or_raise(f"{action} request {request_id}")
    db.session.refresh(req)
    logger.info("Request %s %s → %s@%s", request_id, action, new_status, new_index,
                extra={"clearance_request_id": request_id, "actor_id": history.processed_by})
    return None


# ═══════════════════════════════════════════════════════════════════════════
#  Transitions
# ═══════════════════════════════════════════════════════════════════════════


def submit(student_id, doc_type_id, details: str | None = None):
    """Create a pending request at stage 0.

    Returns:
        (ClearanceRequest, ai_insights dict or None when classification fell back)
    """
    missing = missing_fields({"student_id": student_id, "doc_type_id": doc_type_id},
                             "student_id", "doc_type_id")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}",
                              details={f: "required" for f in missing})

    student = db.session.get(Profile, student_id)
    if not student:
        raise NotFoundError("Student profile", student_id)
    if not student.is_student:
        raise AuthorizationError("Only students can submit clearance requests")
    doc_type = db.session.get(DocumentType, doc_type_id)
    if not doc_type:
        raise NotFoundError("Document type", doc_type_id)
    if not doc_type.is_active:
        raise ValidationError(f"Document type '{doc_type.name}' is not accepting requests")

    professor_ids: list[str] = []
    if doc_type.stage_at(0) == PROFESSOR_STAGE:
        professor_ids = _assigned_professor_ids(student.id)
        if not professor_ids:
            raise ValidationError("No professors are assigned to this student yet",
                                  details={"professors": "none_assigned"})

    routing = classify_and_route(doc_type.id, student.id, details)
    if routing.success:
        score = routing.classification["priority_score"]
        urgency = routing.classification["urgency"]
    else:
        score, urgency = FALLBACK_PRIORITY_SCORE, FALLBACK_URGENCY

    req = ClearanceRequest(
        student_id=student.id,
        doc_type_id=doc_type.id,
        request_details=details or "",
        current_status="pending",
        current_stage_index=0,
        is_completed=False,
        priority_score=score,
        urgency_level=urgency,
        ai_classified=routing.success,
        classification_data=routing.classification if routing.success else None,
        routing_data=routing.routing if routing.success else None,
        estimated_completion_hours=(
            routing.routing.get("estimated_processing_time") if routing.success else None
        ),
        auto_assigned=routing.success,
    )
    try:
        db.session.add(req)
        db.session.flush()
        db.session.add(RequestHistory(
            request_id=req.id,
            processed_by=student.id,
            previous_status=None,
            new_status="pending",
            action_taken="submitted",
            stage=doc_type.stage_at(0),
            comments="Request submitted",
        ))
        for professor_id in professor_ids:
            db.session.add(ProfessorApproval(request_id=req.id, professor_id=professor_id))
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise UpstreamError(f"Database error during submit: {exc.__class__.__name__}") from exc
    commit_or_raise("submit request")
    logger.info("Request %s submitted by %s for %s (ai_classified=%s)",
                req.id, student.id, doc_type.name, routing.success)

    first_stage = doc_type.stage_at(0)
    notify_safely(
        [student.id],
        f"{doc_type.name} request submitted",
        f"Your request is waiting for {first_stage} review.",
        request_id=req.id,
    )
    notify_safely(
        professor_ids or stage_registry.roles_for_stage(first_stage),
        f"New {doc_type.name} request",
        f"{student.full_name} submitted a request ({urgency} urgency).",
        request_id=req.id,
    )
    return req, (routing.ai_insights if routing.success else None)


def approve(request_id, admin_id) -> TransitionResult:
    """Advance a request one stage, completing it on the last stage."""
    req = _load_request(request_id)
    actor = _require_stage_actor(req, admin_id)
    validate_transition(req, "approve")

    stage = req.current_stage
    if stage == PROFESSOR_STAGE and _professors_outstanding(req):
        raise InvalidTransitionError("approve", req.current_status,
                                     "waiting for every assigned professor to approve")
    completing = req.is_last_stage
    new_status = "completed" if completing else "approved"
    new_index = req.current_stage_index if completing else req.current_stage_index + 1

    history = RequestHistory(
        request_id=req.id,
        processed_by=actor.id,
        previous_status=req.current_status,
        new_status=new_status,
        action_taken="approved",
        stage=stage,
        comments=f"Approved by {stage_registry.format_role(actor.role)} at {stage} stage",
    )
    merged = _apply_transition(req, "approve", new_status=new_status, new_index=new_index,
                               history=history, completed=completing)
    if merged:
        return merged

    result = TransitionResult(
        request=req,
        message="Request completed!" if completing else "Moved to next stage",
    )
    doc_name = req.document_type.name
    if completing:
        notify_safely([req.student_id], f"{doc_name} request completed",
                      "All stages approved. Your certificate is being issued.",
                      request_id=req.id, severity="success")
        result.certificate = _issue_certificate_safely(req.id, actor.id)
    else:
        next_stage = req.current_stage
        notify_safely([req.student_id], f"{doc_name} approved at {stage}",
                      f"Your request moved to the {next_stage} stage.",
                      request_id=req.id, severity="success")
        notify_safely(_stage_recipients(req, next_stage),
                      f"{doc_name} request awaiting {next_stage} review",
                      f"Request #{req.id} cleared {stage}.",
                      request_id=req.id)
    return result


def reject(request_id, admin_id, reason: str | None) -> TransitionResult:
    """Put a request on hold at its current stage. ``reason`` is mandatory."""
    if not reason or not str(reason).strip():
        raise ValidationError("Rejection reason is required", details={"reason": "required"})
    reason = str(reason).strip()

    req = _load_request(request_id)
    actor = _require_stage_actor(req, admin_id)
    validate_transition(req, "reject")

    stage = req.current_stage
    history = RequestHistory(
        request_id=req.id,
        processed_by=actor.id,
        previous_status=req.current_status,
        new_status="on_hold",
        action_taken="rejected",
        stage=stage,
        comments=reason,
    )
    merged = _apply_transition(req, "reject", new_status="on_hold",
                               new_index=req.current_stage_index, history=history)
    if merged:
        return merged

    notify_safely([req.student_id], f"{req.document_type.name} request on hold",
                  f"Rejected at {stage}: {reason}", request_id=req.id, severity="warning")
    return TransitionResult(request=req, message="Request rejected and put on hold")


def resubmit(request_id, student_id) -> TransitionResult:
    """Return an on-hold request to pending at the same stage."""
    req = _load_owned_request(request_id, student_id)
    validate_transition(req, "resubmit")

    stage = req.current_stage
    history = RequestHistory(
        request_id=req.id,
        processed_by=student_id,
        previous_status=req.current_status,
        new_status="pending",
        action_taken="resubmitted",
        stage=stage,
        comments="Student resubmitted request",
    )
    if stage == PROFESSOR_STAGE:
        # Rejections are re-reviewed; approvals already given stand
        for approval in ProfessorApproval.query.filter_by(request_id=req.id, status="rejected"):
            approval.status = "pending"
            approval.approved_at = None
    merged = _apply_transition(req, "resubmit", new_status="pending",
                               new_index=req.current_stage_index, history=history)
    if merged:
        return merged

    notify_safely(_stage_recipients(req, stage),
                  f"{req.document_type.name} request resubmitted",
                  f"Request #{req.id} is back for {stage} review.",
                  request_id=req.id)
    return TransitionResult(request=req, message="Request resubmitted successfully")


def delete_request(request_id, student_id) -> None:
    """Hard-delete a pending / on-hold request owned by the student.

    History, comments and certificates go with it (ON DELETE CASCADE).
    A concurrent change between the guard and the delete is always a 409.
    """
    req = _load_owned_request(request_id, student_id)
    validate_transition(req, "delete")

    stmt = (
        delete(ClearanceRequest)
        .where(
            ClearanceRequest.id == req.id,
            ClearanceRequest.student_id == student_id,
            ClearanceRequest.current_status == req.current_status,
            ClearanceRequest.version == req.version,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        matched = db.session.execute(stmt).rowcount
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise UpstreamError(f"Database error during delete: {exc.__class__.__name__}") from exc
    if matched != 1:
        db.session.rollback()
        raise ConcurrentTransitionError(request_id, "delete")

    db.session.expunge(req)
    commit_or_raise(f"delete request {request_id}")
    logger.info("Request %s deleted by student %s", request_id, student_id)


def _issue_certificate_safely(request_id, actor_id) -> dict | None:
    from clearance.services import certificate_service

    try:
        cert = certificate_service.generate_certificate(request_id, generated_by=actor_id)
    except Exception as exc:
        logger.warning("Certificate generation failed for completed request %s: %s",
                       request_id, exc)
        return None
    return cert.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Read projections
# ═══════════════════════════════════════════════════════════════════════════


def list_for_student(student_id) -> list[ClearanceRequest]:
    return (
        ClearanceRequest.query
        .filter_by(student_id=student_id)
        .order_by(ClearanceRequest.created_at.desc(), ClearanceRequest.id.desc())
        .all()
    )


def list_for_admin_role(role: str) -> list[ClearanceRequest]:
    """Open requests whose current stage the role may act on, oldest first."""
    open_requests = (
        ClearanceRequest.query
        .filter(ClearanceRequest.current_status.in_(OPEN_STATUSES))
        .order_by(ClearanceRequest.created_at.asc(), ClearanceRequest.id.asc())
        .all()
    )
    if role == SUPER_ADMIN_ROLE:
        return open_requests

    stages = stage_registry.stages_for_role(role)
    return [req for req in open_requests if req.current_stage in stages]


def get_history(request_id) -> list[RequestHistory]:
    _load_request(request_id)
    return (
        RequestHistory.query
        .filter_by(request_id=request_id)
        .order_by(RequestHistory.timestamp.desc(), RequestHistory.id.desc())
        .all()
    )
