"""
Signup Service — self-service account creation.

Two flows:
    - signup_admin:   staff account gated by a pre-provisioned AdminSecretCode
    - signup_student: student account gated by a client-side face match score;
                      auto-approved at FACE_AUTO_APPROVE_SIMILARITY, otherwise
                      queued for manual review (see account_service)

Both flows verify reCAPTCHA before any profile is written, and both append an
AuthAuditLog row in the same transaction as the profile.
"""

from __future__ import annotations

import logging
import re

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from clearance.core.exceptions import AuthorizationError, ValidationError
from clearance.models import db
from clearance.models.profile import STUDENT_ROLE, AdminSecretCode, Profile, write_auth_audit
from clearance.services import recaptcha, stage_registry
from clearance.utils.crypto import hash_password
from clearance.utils.helpers import as_utc, commit_or_raise, missing_fields, utcnow

logger = logging.getLogger(__name__)

MIN_SECRET_CODE_LENGTH = 8
MIN_PASSWORD_LENGTH = 8
MIN_NAME_LENGTH = 2

_PASSWORD_CLASSES = (
    re.compile(r"[A-Z]"),
    re.compile(r"[a-z]"),
    re.compile(r"\d"),
    re.compile(r"[^A-Za-z0-9]"),
)


# ── Field checks ─────────────────────────────────────────────────────────────

def normalize_email(email: str) -> str:
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email address: {exc}", details={"email": "invalid"})


def check_password_policy(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least 8 characters",
                              details={"password": "too_short"})
    if not all(pattern.search(password) for pattern in _PASSWORD_CLASSES):
        raise ValidationError(
            "Password must contain uppercase, lowercase, number, and special character",
            details={"password": "too_weak"},
        )


def _check_recaptcha(token) -> None:
    if not token:
        raise ValidationError("Please complete the reCAPTCHA verification",
                              details={"recaptchaToken": "required"})
    result = recaptcha.verify_recaptcha(token)
    if not result.get("success"):
        raise ValidationError("reCAPTCHA verification failed. Please try again.",
                              details={"errorCodes": result.get("error-codes", [])})


def _ensure_email_free(email: str) -> None:
    if Profile.query.filter(db.func.lower(Profile.email) == email.lower()).first():
        raise ValidationError("An account with this email already exists",
                              details={"email": "taken"})


def _load_secret_code(code: str, role: str) -> AdminSecretCode:
    secret = AdminSecretCode.query.filter_by(code=code, role=role, is_active=True).first()
    if not secret:
        raise AuthorizationError("Invalid or expired admin secret code")
    if secret.expires_at and as_utc(secret.expires_at) < utcnow():
        raise AuthorizationError("Admin secret code has expired")
    if secret.max_uses is not None and (secret.current_uses or 0) >= secret.max_uses:
        raise AuthorizationError("Admin secret code has reached maximum uses")
    return secret


def _user_summary(profile: Profile) -> dict:
    return {
        "id": profile.id,
        "email": profile.email,
        "fullName": profile.full_name,
        "role": profile.role,
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Admin signup
# ═══════════════════════════════════════════════════════════════════════════

def signup_admin(data: dict) -> dict:
    """Create a staff account for the requested admin role.

    The secret code must have been issued for that same role.

    Check order: required fields, admin-role check, secret code format,
    secret code validity, reCAPTCHA, names, password, email uniqueness.
    """
    if missing_fields(data, "email", "password", "firstName", "lastName", "role"):
        raise ValidationError("Missing required fields")

    role = data["role"]
    if role not in stage_registry.admin_roles():
        raise AuthorizationError(
            "Student accounts must be created by administration. "
            "Please contact your admin office."
        )

    code = (data.get("secretCode") or "").strip()
    if len(code) < MIN_SECRET_CODE_LENGTH:
        raise ValidationError("Valid admin secret code is required",
                              details={"secretCode": "invalid"})
    secret = _load_secret_code(code, role)

    _check_recaptcha(data.get("recaptchaToken"))

    first_name = data["firstName"].strip()
    last_name = data["lastName"].strip()
    if len(first_name) < MIN_NAME_LENGTH:
        raise ValidationError("First name must be at least 2 characters")
    if len(last_name) < MIN_NAME_LENGTH:
        raise ValidationError("Last name must be at least 2 characters")

    check_password_policy(data["password"])
    email = normalize_email(data["email"])
    _ensure_email_free(email)

    now = utcnow()
    profile = Profile(
        email=email,
        password_hash=hash_password(data["password"], rounds=current_app.config["BCRYPT_ROUNDS"]),
        full_name=f"{first_name} {last_name}",
        role=role,
        verification_status="approved",
        verification_method="admin_secret_code",
        account_enabled=True,
        account_verified=True,
        created_by_admin=True,
    )
    db.session.add(profile)
    db.session.flush()

    secret.current_uses = (secret.current_uses or 0) + 1
    secret.used_by = profile.id
    secret.used_at = now
    write_auth_audit(profile.id, "admin_signup",
                     details={"role": role, "secret_code_used": secret.code})
    commit_or_raise(f"admin signup {email}")

    logger.info("Admin account created: %s (%s)", profile.id, profile.role,
                extra={"actor_id": profile.id})
    return {
        "success": True,
        "message": "Admin account created successfully! You can now sign in.",
        "user": _user_summary(profile),
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Student signup
# ═══════════════════════════════════════════════════════════════════════════

def _face_verification(data: dict) -> tuple[bool, float]:
    face = data.get("faceVerification")
    if not isinstance(face, dict):
        raise ValidationError("Face verification data is required")
    verified = face.get("verified")
    similarity = face.get("similarity")
    if not isinstance(verified, bool) or isinstance(similarity, bool) \
            or not isinstance(similarity, (int, float)):
        raise ValidationError("Face verification data is required")
    return verified, float(similarity)


def signup_student(data: dict) -> dict:
    """Create a student account, auto-approved when the face match is strong enough."""
    if missing_fields(data, "email", "password", "firstName", "lastName",
                      "studentNumber", "courseYear"):
        raise ValidationError("Missing required fields")

    verified, similarity = _face_verification(data)
    _check_recaptcha(data.get("recaptchaToken"))

    first_name = data["firstName"].strip()
    last_name = data["lastName"].strip()
    if len(first_name) < MIN_NAME_LENGTH or len(last_name) < MIN_NAME_LENGTH:
        raise ValidationError("Name must be at least 2 characters")

    check_password_policy(data["password"])
    email = normalize_email(data["email"])
    _ensure_email_free(email)

    threshold = current_app.config.get("FACE_AUTO_APPROVE_SIMILARITY", 90)
    auto_approved = verified and similarity >= threshold
    status = "auto_approved" if auto_approved else "pending_review"

    profile = Profile(
        email=email,
        password_hash=hash_password(data["password"], rounds=current_app.config["BCRYPT_ROUNDS"]),
        full_name=f"{first_name} {last_name}",
        role=STUDENT_ROLE,
        student_number=str(data["studentNumber"]).strip(),
        course_year=str(data["courseYear"]).strip(),
        face_verified=verified,
        face_similarity=similarity,
        verification_status=status,
        verification_method="face_verification",
        account_enabled=auto_approved,
        account_verified=auto_approved,
    )
    db.session.add(profile)
    db.session.flush()
    write_auth_audit(profile.id, "student_signup_with_face_verification", details={
        "face_verified": verified,
        "similarity": similarity,
        "auto_approved": auto_approved,
        "student_number": profile.student_number,
    })
    commit_or_raise(f"student signup {email}")

    logger.info("Student account created: %s status=%s similarity=%.1f",
                profile.id, status, similarity, extra={"actor_id": profile.id})

    user = _user_summary(profile)
    user["verificationStatus"] = status
    return {
        "success": True,
        "autoApproved": auto_approved,
        "similarity": similarity,
        "message": ("Account approved! You can login now." if auto_approved
                    else "Account pending review. Admin will verify manually."),
        "user": user,
    }
