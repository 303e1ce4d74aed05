"""
Escalation Service — overdue request detection and stage-admin alerts.

An open request (pending / approved) is overdue once the time since its last
transition exceeds its routing ``escalation_threshold`` (hours), or
ESCALATION_DEFAULT_THRESHOLD_HOURS when it was never classified. Each overdue
request is escalated once per stage index; escalation writes a
RequestEscalation row and notifies the stage's roles and the student, and
never touches the request's status, stage or history.

The sweep runs as the ``escalation_sweep`` job (see scheduled_jobs), triggered
by an external scheduler or POST /api/escalation/check.

Usage:
    from clearance.services.escalation import EscalationService
    summary = EscalationService.sweep()
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta

from flask import current_app

from clearance.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from clearance.models import db
from clearance.models.escalation import RequestEscalation
from clearance.models.profile import Profile
from clearance.models.request import OPEN_STATUSES, ClearanceRequest
from clearance.services import stage_registry
from clearance.services.notification import notify_safely
from clearance.utils.helpers import as_utc, commit_or_raise, utcnow

logger = logging.getLogger(__name__)


def _threshold_hours(req: ClearanceRequest) -> int:
    routing = req.routing_data or {}
    threshold = routing.get("escalation_threshold")
    if threshold:
        return int(threshold)
    return int(current_app.config.get("ESCALATION_DEFAULT_THRESHOLD_HOURS", 72))


def _hours_since(value: datetime | None, now: datetime) -> float:
    if value is None:
        return 0.0
    return (now - as_utc(value)).total_seconds() / 3600


def _already_escalated(req: ClearanceRequest) -> bool:
    return RequestEscalation.query.filter_by(
        request_id=req.id,
        stage_index=req.current_stage_index,
        escalation_type="automatic",
    ).first() is not None


def require_admin(admin_id) -> Profile:
    admin = db.session.get(Profile, admin_id) if admin_id else None
    if not admin or admin.role not in stage_registry.admin_roles():
        raise AuthorizationError("Only administrators can manage escalations")
    return admin


class EscalationService:
    """Stateless service class for escalation operations."""

    @staticmethod
    def find_overdue(now: datetime | None = None) -> list[dict]:
        """Open requests past their threshold, most overdue first."""
        now = now or utcnow()
        overdue = []
        open_requests = ClearanceRequest.query.filter(
            ClearanceRequest.current_status.in_(OPEN_STATUSES)
        ).all()
        for req in open_requests:
            hours_open = _hours_since(req.updated_at or req.created_at, now)
            threshold = _threshold_hours(req)
            if hours_open > threshold:
                overdue.append({
                    "request": req,
                    "hours_open": hours_open,
                    "threshold_hours": threshold,
                    "hours_overdue": hours_open - threshold,
                })
        overdue.sort(key=lambda item: item["hours_overdue"], reverse=True)
        return overdue

    @staticmethod
    def sweep(now: datetime | None = None) -> dict:
        """Escalate every overdue request not yet escalated at its current stage."""
        now = now or utcnow()
        checked = ClearanceRequest.query.filter(
            ClearanceRequest.current_status.in_(OPEN_STATUSES)
        ).count()
        overdue = EscalationService.find_overdue(now)

        escalated = []
        skipped = 0
        for item in overdue:
            req = item["request"]
            if _already_escalated(req):
                skipped += 1
                continue
            db.session.add(RequestEscalation(
                request_id=req.id,
                stage_index=req.current_stage_index,
                stage=req.current_stage,
                escalation_type="automatic",
                reason=(f"Open {item['hours_open']:.0f}h at {req.current_stage} "
                        f"(threshold {item['threshold_hours']}h)"),
                hours_open=item["hours_open"],
                threshold_hours=item["threshold_hours"],
            ))
            escalated.append(item)

        if escalated:
            commit_or_raise("escalation sweep")

        for item in escalated:
            EscalationService._notify(item["request"], item["hours_open"])

        summary = {
            "checked": checked,
            "overdue": len(overdue),
            "escalated": len(escalated),
            "skipped": skipped,
            "escalations": [
                {
                    "request_id": item["request"].id,
                    "stage": item["request"].current_stage,
                    "hours_open": round(item["hours_open"], 1),
                    "threshold_hours": item["threshold_hours"],
                }
                for item in escalated
            ],
        }
        logger.info("Escalation sweep: checked=%d overdue=%d escalated=%d skipped=%d",
                    checked, len(overdue), len(escalated), skipped)
        return summary

    @staticmethod
    def escalate_manually(request_id, admin_id, reason: str | None) -> RequestEscalation:
        if not reason or not str(reason).strip():
            raise ValidationError("Escalation reason is required", details={"reason": "required"})
        req = db.session.get(ClearanceRequest, request_id)
        if not req:
            raise NotFoundError("Request", request_id)
        admin = db.session.get(Profile, admin_id) if admin_id else None
        if not admin or not stage_registry.is_authorized(admin.role, req.current_stage):
            raise AuthorizationError(f"Not authorized to escalate requests at the {req.current_stage} stage")
        if req.current_status not in OPEN_STATUSES:
            raise ValidationError(f"Only open requests can be escalated (status={req.current_status})")

        now = utcnow()
        escalation = RequestEscalation(
            request_id=req.id,
            stage_index=req.current_stage_index,
            stage=req.current_stage,
            escalation_type="manual",
            reason=str(reason).strip(),
            escalated_by=admin.id,
            hours_open=_hours_since(req.updated_at or req.created_at, now),
            threshold_hours=_threshold_hours(req),
        )
        db.session.add(escalation)
        commit_or_raise(f"escalate request {req.id}")
        EscalationService._notify(req, escalation.hours_open, reason=escalation.reason)
        return escalation

    @staticmethod
    def history(request_id) -> list[RequestEscalation]:
        if not db.session.get(ClearanceRequest, request_id):
            raise NotFoundError("Request", request_id)
        return (
            RequestEscalation.query.filter_by(request_id=request_id)
            .order_by(RequestEscalation.created_at.desc(), RequestEscalation.id.desc())
            .all()
        )

    @staticmethod
    def stats(days: int = 30) -> dict:
        since = utcnow() - timedelta(days=days)
        rows = RequestEscalation.query.filter(RequestEscalation.created_at >= since).all()
        return {
            "period_days": days,
            "total_escalations": len(rows),
            "by_type": dict(Counter(r.escalation_type for r in rows)),
            "by_stage": dict(Counter(r.stage or "unknown" for r in rows)),
            "currently_overdue": len(EscalationService.find_overdue()),
        }

    @staticmethod
    def _notify(req: ClearanceRequest, hours_open: float, reason: str | None = None):
        stage = req.current_stage
        doc_name = req.document_type.name if req.document_type else "Clearance"
        message = reason or f"Request #{req.id} has waited {hours_open:.0f}h at the {stage} stage."
        notify_safely(
            stage_registry.roles_for_stage(stage),
            f"ESCALATION: {doc_name} request #{req.id} overdue",
            message,
            category="escalation", severity="warning", request_id=req.id,
        )
        notify_safely(
            [req.student_id],
            f"Your {doc_name} request has been escalated",
            f"The {stage} office has been reminded about your request.",
            category="escalation", severity="info", request_id=req.id,
        )
