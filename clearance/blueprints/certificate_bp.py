"""
Smart Clearance
Certificate Blueprint.

Endpoints:
    POST /api/certificates/generate/<request_id>   idempotent issuance
    GET  /api/certificates/request/<request_id>
    GET  /api/certificates/verify/<code>           public verification
"""

import logging

from flask import Blueprint, jsonify, request

from clearance.core.exceptions import NotFoundError
from clearance.services import certificate_service
from clearance.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

certificate_bp = Blueprint("certificate_bp", __name__, url_prefix="/api/certificates")
register_error_handlers(certificate_bp, logger)


@certificate_bp.route("/generate/<int:request_id>", methods=["POST"])
def generate(request_id):
    data = request.get_json(silent=True) or {}
    cert = certificate_service.generate_certificate(request_id,
                                                    generated_by=data.get("generated_by"))
    return jsonify({"success": True, "certificate": cert.to_dict()})


@certificate_bp.route("/request/<int:request_id>", methods=["GET"])
def for_request(request_id):
    cert = certificate_service.get_certificate_for_request(request_id)
    return jsonify({"success": True, "certificate": cert.to_dict()})


@certificate_bp.route("/verify/<code>", methods=["GET"])
def verify(code):
    try:
        payload = certificate_service.verify_certificate(code)
    except NotFoundError:
        return jsonify({"success": False, "valid": False, "certificate": None,
                        "error": "Certificate not found"}), 404
    return jsonify({"success": True, "valid": True, "certificate": payload})
