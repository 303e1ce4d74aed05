"""
Smart Clearance
Escalation & Scheduling Blueprint.

Provides:
    - On-demand escalation sweep (same leased job an external scheduler runs)
    - Overdue dry-run, manual escalation, history and statistics
    - Scheduled job listing and enable / disable

Endpoints:
    POST /api/escalation/check                   {admin_id}
    GET  /api/escalation/overdue
    POST /api/escalation/manual                  {request_id, admin_id, reason}
    GET  /api/escalation/history/<request_id>
    GET  /api/escalation/stats?days=30&admin_id=
    GET  /api/escalation/jobs
    POST /api/escalation/jobs/<name>/toggle      {actor_id, enabled}
"""

import logging

from flask import Blueprint, jsonify, request

from clearance.blueprints import int_arg
from clearance.services import stage_registry
from clearance.services.escalation import EscalationService, require_admin
from clearance.services.scheduler_service import SchedulerService
from clearance.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

escalation_bp = Blueprint("escalation_bp", __name__, url_prefix="/api/escalation")
register_error_handlers(escalation_bp, logger)

SWEEP_JOB = "escalation_sweep"


# ═══════════════════════════════════════════════════════════════════════════
#  Escalation
# ═══════════════════════════════════════════════════════════════════════════


@escalation_bp.route("/check", methods=["POST"])
def run_check():
    data = request.get_json(silent=True) or {}
    require_admin(data.get("admin_id"))
    run = SchedulerService.run_job(SWEEP_JOB)
    if run["status"] in ("failed", "error"):
        return api_error(E.INTERNAL, run.get("error") or "Escalation sweep failed",
                         details={"job": run})
    return jsonify({"success": True, "job": run})


@escalation_bp.route("/overdue", methods=["GET"])
def overdue():
    items = EscalationService.find_overdue()
    return jsonify({
        "success": True,
        "count": len(items),
        "overdue": [
            {
                "request": item["request"].to_dict(),
                "hours_open": round(item["hours_open"], 1),
                "threshold_hours": item["threshold_hours"],
                "hours_overdue": round(item["hours_overdue"], 1),
            }
            for item in items
        ],
    })


@escalation_bp.route("/manual", methods=["POST"])
def manual():
    data = request.get_json(silent=True) or {}
    escalation = EscalationService.escalate_manually(
        data.get("request_id"), data.get("admin_id"), data.get("reason"),
    )
    return jsonify({"success": True, "escalation": escalation.to_dict()}), 201


@escalation_bp.route("/history/<int:request_id>", methods=["GET"])
def history(request_id):
    rows = EscalationService.history(request_id)
    return jsonify({"success": True, "escalations": [r.to_dict() for r in rows]})


@escalation_bp.route("/stats", methods=["GET"])
def stats():
    require_admin(request.args.get("admin_id"))
    days = max(int_arg("days", 30), 1)
    return jsonify({"success": True, "stats": EscalationService.stats(days)})


# ═══════════════════════════════════════════════════════════════════════════
#  Scheduled jobs
# ═══════════════════════════════════════════════════════════════════════════


@escalation_bp.route("/jobs", methods=["GET"])
def list_jobs():
    SchedulerService.ensure_jobs_registered()
    return jsonify({"success": True, "jobs": SchedulerService.list_jobs()})


@escalation_bp.route("/jobs/<job_name>/toggle", methods=["POST"])
def toggle_job(job_name):
    data = request.get_json(silent=True) or {}
    stage_registry.require_super_admin(data.get("actor_id"))
    result = SchedulerService.toggle_job(job_name, bool(data.get("enabled", True)))
    if result is None:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify({"success": True, "job": result})
