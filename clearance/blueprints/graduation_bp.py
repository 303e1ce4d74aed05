"""
Smart Clearance
Graduation Blueprint — graduation clearance endpoints.

Endpoints:
    POST   /api/graduation/apply
    DELETE /api/graduation/cancel/<student_id>
    GET    /api/graduation/status/<student_id>

    GET    /api/graduation/professor/students/<professor_id>
    POST   /api/graduation/professor/approve
    POST   /api/graduation/professor/reject

    GET    /api/graduation/<office>/pending          office: library, cashier, registrar
    POST   /api/graduation/<office>/approve
    POST   /api/graduation/<office>/reject

    POST   /api/graduation/admin/assign-professor
    GET    /api/graduation/admin/professors
"""

import logging

from flask import Blueprint, jsonify, request

from clearance.services import graduation_service
from clearance.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

graduation_bp = Blueprint("graduation_bp", __name__, url_prefix="/api/graduation")
register_error_handlers(graduation_bp, logger)


# ── Student ──────────────────────────────────────────────────────────────────


@graduation_bp.route("/apply", methods=["POST"])
def apply():
    data = request.get_json(silent=True) or {}
    req, insights = graduation_service.apply(data.get("student_id"), data.get("request_details"))
    return jsonify({
        "success": True,
        "request": req.to_dict(),
        "aiInsights": insights,
        "message": "Graduation clearance application submitted successfully",
    }), 201


@graduation_bp.route("/cancel/<student_id>", methods=["DELETE"])
def cancel(student_id):
    graduation_service.cancel(student_id)
    return jsonify({"success": True,
                    "message": "Graduation clearance request cancelled successfully"})


@graduation_bp.route("/status/<student_id>", methods=["GET"])
def status(student_id):
    return jsonify({"success": True, **graduation_service.status(student_id)})


# ── Professors ───────────────────────────────────────────────────────────────


@graduation_bp.route("/professor/students/<professor_id>", methods=["GET"])
def professor_students(professor_id):
    approvals = graduation_service.professor_students(professor_id)
    return jsonify({"success": True,
                    "approvals": [a.to_dict(include_student=True) for a in approvals]})


@graduation_bp.route("/professor/approve", methods=["POST"])
def professor_approve():
    data = request.get_json(silent=True) or {}
    result = graduation_service.professor_approve(
        data.get("approval_id"), data.get("professor_id"), data.get("comments"),
    )
    return jsonify({"success": True, **result})


@graduation_bp.route("/professor/reject", methods=["POST"])
def professor_reject():
    data = request.get_json(silent=True) or {}
    result = graduation_service.professor_reject(
        data.get("approval_id"), data.get("professor_id"), data.get("comments"),
    )
    return jsonify({"success": True, **result})


# ── Admin (professor assignments) ────────────────────────────────────────────


@graduation_bp.route("/admin/assign-professor", methods=["POST"])
def assign_professor():
    data = request.get_json(silent=True) or {}
    assignment = graduation_service.assign_professor(data, data.get("actor_id"))
    return jsonify({"success": True, "assignment": assignment.to_dict(),
                    "message": "Professor assigned successfully"}), 201


@graduation_bp.route("/admin/professors", methods=["GET"])
def professors():
    return jsonify({
        "success": True,
        "professors": [
            {"id": p.id, "full_name": p.full_name, "email": p.email,
             "is_active": p.account_enabled}
            for p in graduation_service.list_professors()
        ],
    })


# ── Offices ──────────────────────────────────────────────────────────────────


@graduation_bp.route("/<office>/pending", methods=["GET"])
def office_pending(office):
    requests = graduation_service.office_queue(office)
    return jsonify({
        "success": True,
        "requests": [
            {**r.to_dict(), "offices": graduation_service.office_statuses(r)} for r in requests
        ],
    })


@graduation_bp.route("/<office>/approve", methods=["POST"])
def office_approve(office):
    data = request.get_json(silent=True) or {}
    result = graduation_service.office_approve(office, data.get("request_id"), data.get("admin_id"))
    body = {"success": True, **result.to_dict()}
    if not result.merged:
        if not result.request.is_completed:
            body["message"] = f"{office.title()} clearance approved"
        elif result.certificate:
            body["message"] = "Graduation clearance completed and certificate generated"
        else:
            body["message"] = "Graduation clearance completed"
    return jsonify(body)


@graduation_bp.route("/<office>/reject", methods=["POST"])
def office_reject(office):
    data = request.get_json(silent=True) or {}
    result = graduation_service.office_reject(
        office, data.get("request_id"), data.get("admin_id"), data.get("comments"),
    )
    body = {"success": True, **result.to_dict()}
    if not result.merged:
        body["message"] = f"{office.title()} clearance rejected"
    return jsonify(body)
