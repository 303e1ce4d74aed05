"""
Smart Clearance
Identity reference models.

Models:
    - Profile: account profile consulted for role and ownership checks
    - AdminSecretCode: pre-provisioned signup codes for admin roles
    - AuthAuditLog: append-only record of signup / account review events
"""

import uuid
from datetime import datetime, timezone

from clearance.models import db


# ── Constants ────────────────────────────────────────────────────────────────

STUDENT_ROLE = "student"
PROFESSOR_ROLE = "professor"

VERIFICATION_STATUSES = {"auto_approved", "pending_review", "approved", "rejected"}


def _utcnow():
    return datetime.now(timezone.utc)


class Profile(db.Model):
    """Account profile. Credentials live with the identity provider; we keep a hash for signup only."""

    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=True)
    full_name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(50), nullable=False, default=STUDENT_ROLE, index=True)

    # Student-only fields
    student_number = db.Column(db.String(50), nullable=True)
    course_year = db.Column(db.String(100), nullable=True)

    # Verification
    face_verified = db.Column(db.Boolean, default=False)
    face_similarity = db.Column(db.Float, nullable=True)
    verification_status = db.Column(db.String(30), default="approved",
                                    comment="auto_approved, pending_review, approved, rejected")
    verification_method = db.Column(db.String(50), nullable=True)
    account_enabled = db.Column(db.Boolean, default=True)
    account_verified = db.Column(db.Boolean, default=False)
    created_by_admin = db.Column(db.Boolean, default=False)
    rejection_reason = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.String(36), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def is_student(self) -> bool:
        return self.role == STUDENT_ROLE

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "student_number": self.student_number,
            "course_year": self.course_year,
            "face_verified": self.face_verified,
            "face_similarity": self.face_similarity,
            "verification_status": self.verification_status,
            "verification_method": self.verification_method,
            "account_enabled": self.account_enabled,
            "account_verified": self.account_verified,
            "created_by_admin": self.created_by_admin,
            "rejection_reason": self.rejection_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Profile {self.email} ({self.role})>"


class AdminSecretCode(db.Model):
    """Signup code bound to an admin role, with optional expiry and usage cap."""

    __tablename__ = "admin_secret_codes"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(100), unique=True, nullable=False)
    role = db.Column(db.String(50), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    max_uses = db.Column(db.Integer, nullable=True)
    current_uses = db.Column(db.Integer, default=0)
    used_by = db.Column(db.String(36), nullable=True)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "role": self.role,
            "is_active": self.is_active,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "max_uses": self.max_uses,
            "current_uses": self.current_uses,
        }


class AuthAuditLog(db.Model):
    """Immutable signup / review audit trail. One row per event."""

    __tablename__ = "auth_audit_log"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=True, index=True)
    action = db.Column(db.String(80), nullable=False,
                       comment="admin_signup, student_signup_with_face_verification, account_approved, ...")
    success = db.Column(db.Boolean, default=True)
    details = db.Column(db.JSON, default=dict)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "success": self.success,
            "details": self.details or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


def write_auth_audit(user_id, action, *, success=True, details=None):
    """Append an AuthAuditLog row to the current session.

    Uses ``flush`` only; the caller owns the transaction.
    """
    entry = AuthAuditLog(user_id=user_id, action=action, success=success,
                         details=details or {})
    db.session.add(entry)
    db.session.flush()
    return entry
