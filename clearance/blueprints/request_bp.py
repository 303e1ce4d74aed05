"""
Smart Clearance
Request Blueprint — clearance request lifecycle endpoints.

Endpoints:
    POST   /api/requests/create
    POST   /api/requests/<id>/approve
    POST   /api/requests/<id>/reject
    POST   /api/requests/<id>/resubmit
    DELETE /api/requests/<id>/delete
    GET    /api/requests/student/<student_id>
    GET    /api/requests/admin/<role>
    GET    /api/requests/<id>/history
    GET    /api/requests/routing-stats?days=7
"""

import logging

from flask import Blueprint, jsonify, request

from clearance.blueprints import int_arg
from clearance.services import request_lifecycle
from clearance.services.request_router import get_routing_statistics
from clearance.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

request_bp = Blueprint("request_bp", __name__, url_prefix="/api/requests")
register_error_handlers(request_bp, logger)


# ═══════════════════════════════════════════════════════════════════════════
#  Transitions
# ═══════════════════════════════════════════════════════════════════════════


@request_bp.route("/create", methods=["POST"])
def create_request():
    data = request.get_json(silent=True) or {}
    req, insights = request_lifecycle.submit(
        data.get("student_id"),
        data.get("doc_type_id"),
        data.get("request_details"),
    )
    return jsonify({"success": True, "request": req.to_dict(), "aiInsights": insights}), 201


@request_bp.route("/<int:request_id>/approve", methods=["POST"])
def approve_request(request_id):
    data = request.get_json(silent=True) or {}
    result = request_lifecycle.approve(request_id, data.get("admin_id"))
    return jsonify({"success": True, **result.to_dict()})


@request_bp.route("/<int:request_id>/reject", methods=["POST"])
def reject_request(request_id):
    data = request.get_json(silent=True) or {}
    result = request_lifecycle.reject(request_id, data.get("admin_id"), data.get("reason"))
    return jsonify({"success": True, **result.to_dict()})


@request_bp.route("/<int:request_id>/resubmit", methods=["POST"])
def resubmit_request(request_id):
    data = request.get_json(silent=True) or {}
    result = request_lifecycle.resubmit(request_id, data.get("student_id"))
    return jsonify({"success": True, **result.to_dict()})


@request_bp.route("/<int:request_id>/delete", methods=["DELETE"])
def delete_request(request_id):
    data = request.get_json(silent=True) or {}
    student_id = data.get("student_id") or request.args.get("student_id")
    request_lifecycle.delete_request(request_id, student_id)
    return jsonify({"success": True, "message": "Request deleted successfully"})


# ═══════════════════════════════════════════════════════════════════════════
#  Read views
# ═══════════════════════════════════════════════════════════════════════════


@request_bp.route("/student/<student_id>", methods=["GET"])
def student_requests(student_id):
    rows = request_lifecycle.list_for_student(student_id)
    return jsonify({"success": True, "requests": [r.to_dict() for r in rows]})


@request_bp.route("/admin/<role>", methods=["GET"])
def admin_requests(role):
    rows = request_lifecycle.list_for_admin_role(role)
    return jsonify({"success": True, "requests": [r.to_dict() for r in rows]})


@request_bp.route("/<int:request_id>/history", methods=["GET"])
def request_history(request_id):
    rows = request_lifecycle.get_history(request_id)
    return jsonify({"success": True, "history": [h.to_dict() for h in rows]})


@request_bp.route("/routing-stats", methods=["GET"])
def routing_stats():
    days = max(int_arg("days", 7), 1)
    return jsonify({"success": True, "stats": get_routing_statistics(days)})
