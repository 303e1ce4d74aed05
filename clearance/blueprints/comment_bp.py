"""
Smart Clearance
Comment Blueprint — staff remarks on clearance requests.

Endpoints:
    POST   /api/clearance/<request_id>/comments          {user_id, comment_text, visibility?}
    GET    /api/clearance/<request_id>/comments?user_id=
    PATCH  /api/clearance/comments/<id>/resolve          {user_id}
    DELETE /api/clearance/comments/<id>                  {user_id}
"""

import logging

from flask import Blueprint, jsonify, request

from clearance.services import comment_service
from clearance.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

comment_bp = Blueprint("comment_bp", __name__, url_prefix="/api/clearance")
register_error_handlers(comment_bp, logger)


def _user_id(data):
    return data.get("user_id") or request.args.get("user_id")


@comment_bp.route("/<int:request_id>/comments", methods=["POST"])
def add_comment(request_id):
    data = request.get_json(silent=True) or {}
    comment = comment_service.add_comment(
        request_id, _user_id(data), data.get("comment_text"), data.get("visibility", "all"),
    )
    return jsonify({"success": True, "comment": comment.to_dict()}), 201


@comment_bp.route("/<int:request_id>/comments", methods=["GET"])
def list_comments(request_id):
    comments = comment_service.list_comments(request_id, request.args.get("user_id"))
    return jsonify({"success": True, "comments": [c.to_dict() for c in comments],
                    "count": len(comments)})


@comment_bp.route("/comments/<int:comment_id>/resolve", methods=["PATCH"])
def toggle_resolved(comment_id):
    data = request.get_json(silent=True) or {}
    comment = comment_service.toggle_resolved(comment_id, _user_id(data))
    return jsonify({"success": True, "comment": comment.to_dict()})


@comment_bp.route("/comments/<int:comment_id>", methods=["DELETE"])
def delete_comment(comment_id):
    data = request.get_json(silent=True) or {}
    comment_service.delete_comment(comment_id, _user_id(data))
    return jsonify({"success": True, "message": "Comment deleted"})
