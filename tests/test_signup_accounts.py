"""
Tests — signup flows, reCAPTCHA gateway and the account review queue.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import bcrypt
import pytest
import requests

from clearance.models import db
from clearance.models.profile import AdminSecretCode, AuthAuditLog, Profile
from clearance.services import recaptcha
from clearance.utils.helpers import utcnow

RECAPTCHA_OK = {"success": True}
STRONG_PASSWORD = "Str0ng!Pass"


@pytest.fixture()
def captcha_ok():
    with patch("clearance.services.recaptcha.verify_recaptcha", return_value=RECAPTCHA_OK) as m:
        yield m


@pytest.fixture()
def secret_code(stages):
    code = AdminSecretCode(code="LIBRARY-2026-ALPHA", role="library_admin", max_uses=2)
    db.session.add(code)
    db.session.commit()
    return code


def _admin_payload(**overrides):
    payload = {
        "email": "Librarian@University.edu",
        "password": STRONG_PASSWORD,
        "firstName": "Maria",
        "lastName": "Santos",
        "role": "library_admin",
        "secretCode": "LIBRARY-2026-ALPHA",
        "recaptchaToken": "token",
    }
    payload.update(overrides)
    return payload


def _student_payload(similarity=95.0, verified=True, **overrides):
    payload = {
        "email": "juan@university.edu",
        "password": STRONG_PASSWORD,
        "firstName": "Juan",
        "lastName": "Dela Cruz",
        "studentNumber": "2021-00123",
        "courseYear": "BSIT 4",
        "faceVerification": {"verified": verified, "similarity": similarity},
        "recaptchaToken": "token",
    }
    payload.update(overrides)
    return payload


# ═══════════════════════════════════════════════════════════════════════════
#  Admin signup
# ═══════════════════════════════════════════════════════════════════════════


class TestAdminSignup:
    def test_creates_admin_for_code_role(self, client, captcha_ok, secret_code):
        res = client.post("/api/auth/signup", json=_admin_payload())
        assert res.status_code == 201
        body = res.get_json()
        assert body["message"] == "Admin account created successfully! You can now sign in."
        assert body["user"]["role"] == "library_admin"
        assert body["user"]["fullName"] == "Maria Santos"

        profile = db.session.get(Profile, body["user"]["id"])
        assert profile.email == "Librarian@university.edu"
        assert profile.created_by_admin is True
        assert profile.verification_method == "admin_secret_code"
        assert bcrypt.checkpw(STRONG_PASSWORD.encode(), profile.password_hash.encode())

        code = AdminSecretCode.query.filter_by(code="LIBRARY-2026-ALPHA").one()
        assert code.current_uses == 1
        assert code.used_by == profile.id
        audit = AuthAuditLog.query.filter_by(user_id=profile.id).one()
        assert audit.action == "admin_signup"
        assert audit.details["secret_code_used"] == "LIBRARY-2026-ALPHA"
        assert audit.details["role"] == "library_admin"

    def test_code_issued_for_another_role(self, client, captcha_ok, secret_code):
        res = client.post("/api/auth/signup", json=_admin_payload(role="registrar_admin"))
        assert res.status_code == 403
        assert res.get_json()["error"] == "Invalid or expired admin secret code"
        assert Profile.query.count() == 0
        assert secret_code.current_uses == 0

    @pytest.mark.parametrize("role", ["professor", "department_head", "dean_admin"])
    def test_role_outside_admin_roles_refused(self, client, captcha_ok, secret_code, role):
        AdminSecretCode.query.filter_by(code="LIBRARY-2026-ALPHA").update({"role": role})
        db.session.commit()
        res = client.post("/api/auth/signup", json=_admin_payload(role=role))
        assert res.status_code == 403
        assert "created by administration" in res.get_json()["error"]
        assert Profile.query.count() == 0

    def test_stage_admin_role_registered_later_is_accepted(self, client, captcha_ok, stages):
        from clearance.services import stage_registry

        stage_registry.register_stage("dean", roles=["dean_admin"])
        db.session.add(AdminSecretCode(code="DEAN-2026-CODE", role="dean_admin"))
        db.session.commit()
        res = client.post("/api/auth/signup",
                          json=_admin_payload(role="dean_admin", secretCode="DEAN-2026-CODE"))
        assert res.status_code == 201
        assert res.get_json()["user"]["role"] == "dean_admin"

    def test_student_role_refused(self, client, captcha_ok, secret_code):
        res = client.post("/api/auth/signup", json=_admin_payload(role="student"))
        assert res.status_code == 403
        assert "created by administration" in res.get_json()["error"]

    def test_missing_fields(self, client):
        res = client.post("/api/auth/signup", json={"email": "a@university.edu"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Missing required fields"

    def test_short_code(self, client, captcha_ok, stages):
        res = client.post("/api/auth/signup", json=_admin_payload(secretCode="ABC"))
        assert res.status_code == 400
        assert res.get_json()["error"] == "Valid admin secret code is required"

    def test_unknown_code(self, client, captcha_ok, secret_code):
        res = client.post("/api/auth/signup", json=_admin_payload(secretCode="WRONG-CODE-123"))
        assert res.status_code == 403
        assert res.get_json()["error"] == "Invalid or expired admin secret code"

    def test_expired_code(self, client, captcha_ok, secret_code):
        secret_code.expires_at = utcnow() - timedelta(days=1)
        db.session.commit()
        res = client.post("/api/auth/signup", json=_admin_payload())
        assert res.status_code == 403
        assert res.get_json()["error"] == "Admin secret code has expired"

    def test_usage_cap(self, client, captcha_ok, secret_code):
        secret_code.current_uses = 2
        db.session.commit()
        res = client.post("/api/auth/signup", json=_admin_payload())
        assert res.status_code == 403
        assert res.get_json()["error"] == "Admin secret code has reached maximum uses"

    def test_recaptcha_failure(self, client, secret_code):
        verdict = {"success": False, "error-codes": ["invalid-input-response"]}
        with patch("clearance.services.recaptcha.verify_recaptcha", return_value=verdict):
            res = client.post("/api/auth/signup", json=_admin_payload())
        assert res.status_code == 400
        body = res.get_json()
        assert body["error"] == "reCAPTCHA verification failed. Please try again."
        assert body["details"]["errorCodes"] == ["invalid-input-response"]
        assert Profile.query.count() == 0

    def test_missing_recaptcha_token(self, client, secret_code):
        res = client.post("/api/auth/signup", json=_admin_payload(recaptchaToken=None))
        assert res.status_code == 400
        assert res.get_json()["error"] == "Please complete the reCAPTCHA verification"

    @pytest.mark.parametrize("password,message", [
        ("Sh0rt!", "Password must be at least 8 characters"),
        ("alllowercase1!", "Password must contain uppercase, lowercase, number, and special character"),
        ("NoDigits!!", "Password must contain uppercase, lowercase, number, and special character"),
    ])
    def test_password_policy(self, client, captcha_ok, secret_code, password, message):
        res = client.post("/api/auth/signup", json=_admin_payload(password=password))
        assert res.status_code == 400
        assert res.get_json()["error"] == message

    def test_short_first_name(self, client, captcha_ok, secret_code):
        res = client.post("/api/auth/signup", json=_admin_payload(firstName="M"))
        assert res.get_json()["error"] == "First name must be at least 2 characters"

    def test_duplicate_email(self, client, captcha_ok, secret_code, make_profile):
        make_profile("cashier_admin", email="librarian@university.edu")
        res = client.post("/api/auth/signup", json=_admin_payload())
        assert res.status_code == 400
        assert res.get_json()["error"] == "An account with this email already exists"
        assert secret_code.current_uses == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Student signup
# ═══════════════════════════════════════════════════════════════════════════


class TestStudentSignup:
    def test_high_similarity_is_auto_approved(self, client, captcha_ok):
        res = client.post("/api/auth/signup-student", json=_student_payload(similarity=92.5))
        assert res.status_code == 201
        body = res.get_json()
        assert body["autoApproved"] is True
        assert body["similarity"] == 92.5
        assert body["message"] == "Account approved! You can login now."
        assert body["user"]["verificationStatus"] == "auto_approved"

        profile = db.session.get(Profile, body["user"]["id"])
        assert profile.account_enabled is True
        assert profile.student_number == "2021-00123"
        audit = AuthAuditLog.query.filter_by(user_id=profile.id).one()
        assert audit.action == "student_signup_with_face_verification"

    def test_threshold_is_inclusive(self, client, captcha_ok):
        body = client.post("/api/auth/signup-student",
                           json=_student_payload(similarity=90)).get_json()
        assert body["autoApproved"] is True

    def test_low_similarity_goes_to_review(self, client, captcha_ok):
        body = client.post("/api/auth/signup-student",
                           json=_student_payload(similarity=89.9)).get_json()
        assert body["autoApproved"] is False
        assert body["message"] == "Account pending review. Admin will verify manually."
        profile = db.session.get(Profile, body["user"]["id"])
        assert profile.verification_status == "pending_review"
        assert profile.account_enabled is False

    def test_unverified_face_goes_to_review(self, client, captcha_ok):
        body = client.post("/api/auth/signup-student",
                           json=_student_payload(similarity=99, verified=False)).get_json()
        assert body["autoApproved"] is False

    @pytest.mark.parametrize("face", [None, {}, {"verified": "yes", "similarity": 95},
                                      {"verified": True, "similarity": "95"}])
    def test_face_data_required(self, client, captcha_ok, face):
        res = client.post("/api/auth/signup-student", json=_student_payload(faceVerification=face))
        assert res.status_code == 400
        assert res.get_json()["error"] == "Face verification data is required"

    def test_missing_student_number(self, client, captcha_ok):
        res = client.post("/api/auth/signup-student", json=_student_payload(studentNumber=""))
        assert res.get_json()["error"] == "Missing required fields"

    def test_short_name(self, client, captcha_ok):
        res = client.post("/api/auth/signup-student", json=_student_payload(lastName="D"))
        assert res.get_json()["error"] == "Name must be at least 2 characters"

    def test_invalid_email(self, client, captcha_ok):
        res = client.post("/api/auth/signup-student", json=_student_payload(email="not-an-email"))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"email": "invalid"}


# ═══════════════════════════════════════════════════════════════════════════
#  reCAPTCHA gateway
# ═══════════════════════════════════════════════════════════════════════════


class TestRecaptcha:
    def test_posts_secret_and_token(self, app):
        response = MagicMock()
        response.json.return_value = {"success": True, "hostname": "localhost"}
        with patch("clearance.services.recaptcha.requests.post", return_value=response) as post:
            assert recaptcha.verify_recaptcha("abc")["success"] is True
        data = post.call_args.kwargs["data"]
        assert data == {"secret": "test-recaptcha-secret", "response": "abc"}
        assert post.call_args.kwargs["timeout"] == app.config["RECAPTCHA_TIMEOUT_SECONDS"]

    def test_network_error(self):
        with patch("clearance.services.recaptcha.requests.post",
                   side_effect=requests.ConnectionError("dns")):
            assert recaptcha.verify_recaptcha("abc") == {
                "success": False, "error-codes": ["network-error"],
            }

    def test_endpoint(self, client):
        with patch("clearance.services.recaptcha.verify_recaptcha",
                   return_value={"success": False, "error-codes": ["timeout-or-duplicate"]}):
            res = client.post("/api/auth/verify-recaptcha", json={"token": "abc"})
        body = res.get_json()
        assert body["success"] is False
        assert body["message"] == "reCAPTCHA verification failed"
        assert body["errorCodes"] == ["timeout-or-duplicate"]

    def test_endpoint_requires_token(self, client):
        res = client.post("/api/auth/verify-recaptcha", json={})
        assert res.status_code == 400
        assert res.get_json()["error"] == "reCAPTCHA token is required"


# ═══════════════════════════════════════════════════════════════════════════
#  Account review
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def pending_student(make_profile):
    return make_profile("student", verification_status="pending_review",
                        verification_method="face_verification", account_enabled=False)


class TestAccountReview:
    def test_pending_list(self, client, pending_student):
        body = client.get("/api/admin/pending-accounts").get_json()
        assert body["count"] == 1
        assert body["accounts"][0]["id"] == pending_student.id

    def test_registrar_approves(self, client, actors, pending_student):
        res = client.post("/api/admin/approve-account", json={
            "userId": pending_student.id, "adminId": actors["registrar_admin"].id,
        })
        assert res.status_code == 200
        assert res.get_json()["message"] == "Account approved successfully"
        profile = db.session.get(Profile, pending_student.id)
        assert profile.verification_status == "approved"
        assert profile.account_enabled is True
        audit = AuthAuditLog.query.filter_by(user_id=profile.id).one()
        assert audit.action == "account_approved_by_admin"
        assert audit.details["admin_role"] == "registrar_admin"

    def test_library_admin_cannot_review(self, client, actors, pending_student):
        res = client.post("/api/admin/approve-account", json={
            "userId": pending_student.id, "adminId": actors["library_admin"].id,
        })
        assert res.status_code == 403

    def test_unknown_admin(self, client, pending_student):
        res = client.post("/api/admin/approve-account",
                          json={"userId": pending_student.id, "adminId": "ghost"})
        assert res.status_code == 403
        assert res.get_json()["error"] == "Unauthorized"

    def test_reject_requires_reason(self, client, actors, pending_student):
        res = client.post("/api/admin/reject-account", json={
            "userId": pending_student.id, "adminId": actors["super_admin"].id,
        })
        assert res.status_code == 400

    def test_reject(self, client, actors, pending_student):
        res = client.post("/api/admin/reject-account", json={
            "userId": pending_student.id, "adminId": actors["super_admin"].id,
            "reason": "Photo does not match ID",
        })
        assert res.get_json()["message"] == "Account rejected"
        profile = db.session.get(Profile, pending_student.id)
        assert profile.verification_status == "rejected"
        assert profile.rejection_reason == "Photo does not match ID"
        assert profile.account_enabled is False

    def test_stats(self, client, make_profile, pending_student):
        make_profile("student", verification_status="auto_approved",
                     verification_method="face_verification")
        make_profile("student", verification_status="rejected",
                     verification_method="face_verification")
        stats = client.get("/api/admin/account-stats").get_json()["stats"]
        assert stats == {"pending": 1, "approved": 0, "autoApproved": 1,
                         "rejected": 1, "total": 3}
