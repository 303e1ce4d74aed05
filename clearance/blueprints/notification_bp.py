"""
Smart Clearance
Notification Blueprint — in-app notification inbox.

Endpoints:
    GET   /api/notifications/<recipient>?unread_only=1&limit=&offset=
    PATCH /api/notifications/<id>/read
"""

import logging

from flask import Blueprint, jsonify, request

from clearance.blueprints import pagination_args
from clearance.services.notification import NotificationService
from clearance.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/notifications")
register_error_handlers(notification_bp, logger)


@notification_bp.route("/<recipient>", methods=["GET"])
def list_notifications(recipient):
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    limit, offset = pagination_args()
    items, total = NotificationService.list_for_recipient(
        recipient, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "success": True,
        "notifications": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(recipient),
    })


@notification_bp.route("/<int:notification_id>/read", methods=["PATCH"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id)
    if not notif:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify({"success": True, "notification": notif.to_dict()})
