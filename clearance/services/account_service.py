"""
Account Service — manual review queue for student signups.

Students whose face match fell below the auto-approve threshold land in
``pending_review`` with their account disabled. A super admin or the
registrar reviews them here.
"""

from __future__ import annotations

import logging

from clearance.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from clearance.models import db
from clearance.models.profile import Profile, write_auth_audit
from clearance.models.catalog import SUPER_ADMIN_ROLE
from clearance.utils.helpers import commit_or_raise, utcnow

logger = logging.getLogger(__name__)

ACCOUNT_REVIEWER_ROLES = (SUPER_ADMIN_ROLE, "registrar_admin")


def _require_reviewer(admin_id) -> Profile:
    admin = db.session.get(Profile, admin_id) if admin_id else None
    if not admin:
        raise AuthorizationError("Unauthorized")
    if admin.role not in ACCOUNT_REVIEWER_ROLES:
        raise AuthorizationError("Only super admins and registrar admins can review accounts")
    return admin


def _load_profile(user_id) -> Profile:
    profile = db.session.get(Profile, user_id)
    if not profile:
        raise NotFoundError("Account", user_id)
    return profile


def list_pending() -> list[Profile]:
    return (
        Profile.query.filter_by(verification_status="pending_review")
        .order_by(Profile.created_at.desc())
        .all()
    )


def approve_account(user_id, admin_id) -> Profile:
    if not user_id or not admin_id:
        raise ValidationError("Missing required fields")
    admin = _require_reviewer(admin_id)
    profile = _load_profile(user_id)

    profile.verification_status = "approved"
    profile.account_enabled = True
    profile.account_verified = True
    profile.rejection_reason = None
    profile.reviewed_by = admin.id
    profile.reviewed_at = utcnow()
    write_auth_audit(profile.id, "account_approved_by_admin",
                     details={"approved_by": admin.id, "admin_role": admin.role})
    commit_or_raise(f"approve account {profile.id}")
    logger.info("Account %s approved by %s", profile.id, admin.id,
                extra={"actor_id": admin.id})
    return profile


def reject_account(user_id, admin_id, reason) -> Profile:
    if not user_id or not admin_id or not reason or not str(reason).strip():
        raise ValidationError("Missing required fields")
    admin = _require_reviewer(admin_id)
    profile = _load_profile(user_id)

    profile.verification_status = "rejected"
    profile.account_enabled = False
    profile.account_verified = False
    profile.rejection_reason = str(reason).strip()
    profile.reviewed_by = admin.id
    profile.reviewed_at = utcnow()
    write_auth_audit(profile.id, "account_rejected_by_admin", details={
        "rejected_by": admin.id,
        "admin_role": admin.role,
        "reason": profile.rejection_reason,
    })
    commit_or_raise(f"reject account {profile.id}")
    logger.info("Account %s rejected by %s", profile.id, admin.id,
                extra={"actor_id": admin.id})
    return profile


def account_stats() -> dict:
    """Counts of student accounts by verification status."""
    rows = (
        db.session.query(Profile.verification_status, db.func.count(Profile.id))
        .filter(Profile.verification_method == "face_verification")
        .group_by(Profile.verification_status)
        .all()
    )
    counts = {status: count for status, count in rows}
    return {
        "pending": counts.get("pending_review", 0),
        "approved": counts.get("approved", 0),
        "autoApproved": counts.get("auto_approved", 0),
        "rejected": counts.get("rejected", 0),
        "total": sum(counts.values()),
    }
