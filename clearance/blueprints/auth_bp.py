"""
Smart Clearance
Auth Blueprint — self-service signup.

Session and token handling belong to the identity provider; these endpoints
only create profiles.

Endpoints:
    POST /api/auth/signup            admin signup with secret code
    POST /api/auth/signup-student    student signup with face match score
    POST /api/auth/verify-recaptcha  standalone reCAPTCHA check
"""

import logging

from flask import Blueprint, jsonify, request

from clearance.services import recaptcha, signup_service
from clearance.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")
register_error_handlers(auth_bp, logger)


@auth_bp.route("/signup", methods=["POST"])
def signup():
    data = request.get_json(silent=True) or {}
    return jsonify(signup_service.signup_admin(data)), 201


@auth_bp.route("/signup-student", methods=["POST"])
def signup_student():
    data = request.get_json(silent=True) or {}
    return jsonify(signup_service.signup_student(data)), 201


@auth_bp.route("/verify-recaptcha", methods=["POST"])
def verify_recaptcha():
    data = request.get_json(silent=True) or {}
    token = data.get("token")
    if not token:
        return api_error(E.VALIDATION_REQUIRED, "reCAPTCHA token is required")

    result = recaptcha.verify_recaptcha(token, request.remote_addr)
    success = bool(result.get("success"))
    return jsonify({
        "success": success,
        "message": "reCAPTCHA verified" if success else "reCAPTCHA verification failed",
        "errorCodes": result.get("error-codes", []),
    })
