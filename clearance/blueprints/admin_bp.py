"""
Smart Clearance
Admin Blueprint — account review and clearance configuration.

Account review (super_admin, registrar_admin):
    GET  /api/admin/pending-accounts
    POST /api/admin/approve-account      {userId, adminId}
    POST /api/admin/reject-account       {userId, adminId, reason}
    GET  /api/admin/account-stats

Configuration (super_admin; writes take ``actor_id``):
    GET  /api/admin/stages
    POST /api/admin/stages               {actor_id, stage, label?, roles?}
    GET  /api/admin/document-types?active=1
    POST /api/admin/document-types       {actor_id, name, required_stages, description?}
"""

import logging

from flask import Blueprint, jsonify, request

from clearance.services import account_service, stage_registry
from clearance.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")
register_error_handlers(admin_bp, logger)


# ═══════════════════════════════════════════════════════════════════════════
#  Account review
# ═══════════════════════════════════════════════════════════════════════════


@admin_bp.route("/pending-accounts", methods=["GET"])
def pending_accounts():
    accounts = [p.to_dict() for p in account_service.list_pending()]
    return jsonify({"success": True, "accounts": accounts, "count": len(accounts)})


@admin_bp.route("/approve-account", methods=["POST"])
def approve_account():
    data = request.get_json(silent=True) or {}
    profile = account_service.approve_account(data.get("userId"), data.get("adminId"))
    return jsonify({"success": True, "message": "Account approved successfully",
                    "account": profile.to_dict()})


@admin_bp.route("/reject-account", methods=["POST"])
def reject_account():
    data = request.get_json(silent=True) or {}
    profile = account_service.reject_account(data.get("userId"), data.get("adminId"),
                                             data.get("reason"))
    return jsonify({"success": True, "message": "Account rejected",
                    "account": profile.to_dict()})


@admin_bp.route("/account-stats", methods=["GET"])
def account_stats():
    return jsonify({"success": True, "stats": account_service.account_stats()})


# ═══════════════════════════════════════════════════════════════════════════
#  Stage → role mapping
# ═══════════════════════════════════════════════════════════════════════════


@admin_bp.route("/stages", methods=["GET"])
def list_stages():
    return jsonify({"success": True,
                    "stages": [s.to_dict() for s in stage_registry.list_stages()]})


@admin_bp.route("/stages", methods=["POST"])
def register_stage():
    data = request.get_json(silent=True) or {}
    stage_registry.require_super_admin(data.get("actor_id"))
    row = stage_registry.register_stage(data.get("stage"), data.get("label"), data.get("roles"))
    return jsonify({"success": True, "stage": row.to_dict()}), 201


# ═══════════════════════════════════════════════════════════════════════════
#  Document types
# ═══════════════════════════════════════════════════════════════════════════


@admin_bp.route("/document-types", methods=["GET"])
def list_document_types():
    active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
    rows = stage_registry.list_document_types(active_only=active_only)
    return jsonify({"success": True, "document_types": [d.to_dict() for d in rows]})


@admin_bp.route("/document-types", methods=["POST"])
def create_document_type():
    data = request.get_json(silent=True) or {}
    stage_registry.require_super_admin(data.get("actor_id"))
    doc_type = stage_registry.create_document_type(
        data.get("name"), data.get("required_stages"), data.get("description", ""),
    )
    return jsonify({"success": True, "document_type": doc_type.to_dict()}), 201
