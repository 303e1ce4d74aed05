"""
Comment Service — staff remarks on clearance requests.

Visibility:
    all              everyone who can see the request, the student included
    admins_only      any ``*_admin`` role and super_admin
    professors_only  professor and department_head
"""

from __future__ import annotations

import logging

from clearance.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from clearance.models import db
from clearance.models.catalog import SUPER_ADMIN_ROLE
from clearance.models.comment import COMMENT_VISIBILITIES, ClearanceComment
from clearance.models.profile import PROFESSOR_ROLE, Profile
from clearance.models.request import ClearanceRequest
from clearance.services.notification import notify_safely
from clearance.services.stage_registry import is_admin_role
from clearance.utils.helpers import commit_or_raise, utcnow

logger = logging.getLogger(__name__)

PROFESSOR_ROLES = (PROFESSOR_ROLE, "department_head")
RESOLVER_ROLES = (SUPER_ADMIN_ROLE, "registrar_admin")


def is_professor_role(role: str | None) -> bool:
    return role in PROFESSOR_ROLES


def can_view(visibility: str, role: str | None) -> bool:
    if visibility == "all":
        return True
    if visibility == "admins_only":
        return is_admin_role(role)
    if visibility == "professors_only":
        return is_professor_role(role)
    return False


def _load_profile(user_id) -> Profile:
    if not user_id:
        raise ValidationError("user_id is required", details={"user_id": "required"})
    profile = db.session.get(Profile, user_id)
    if not profile:
        raise NotFoundError("User", user_id)
    return profile


def _load_comment(comment_id) -> ClearanceComment:
    comment = db.session.get(ClearanceComment, comment_id)
    if not comment:
        raise NotFoundError("Comment", comment_id)
    return comment


def add_comment(request_id, user_id, text, visibility="all") -> ClearanceComment:
    if not text or not str(text).strip():
        raise ValidationError("comment_text is required", details={"comment_text": "required"})
    visibility = visibility or "all"
    if visibility not in COMMENT_VISIBILITIES:
        raise ValidationError("Invalid visibility. Must be: all, admins_only, or professors_only",
                              details={"visibility": "invalid"})
    author = _load_profile(user_id)
    if author.is_student:
        raise AuthorizationError("Students cannot add comments")

    req = db.session.get(ClearanceRequest, request_id)
    if not req:
        raise NotFoundError("Request", request_id)

    comment = ClearanceComment(
        request_id=req.id,
        commenter_id=author.id,
        commenter_name=author.full_name,
        commenter_role=author.role,
        comment_text=str(text).strip(),
        visibility=visibility,
    )
    db.session.add(comment)
    commit_or_raise(f"add comment to request {req.id}")
    logger.info("Comment %s added to request %s by %s", comment.id, req.id, author.id,
                extra={"clearance_request_id": req.id, "actor_id": author.id})

    if visibility == "all":
        notify_safely(
            [req.student_id],
            "New comment on your request",
            f"{author.full_name} commented on request #{req.id}.",
            category="comment", request_id=req.id,
        )
    return comment


def list_comments(request_id, user_id) -> list[ClearanceComment]:
    """Comments on a request visible to the viewer, oldest first."""
    viewer = _load_profile(user_id)
    if not db.session.get(ClearanceRequest, request_id):
        raise NotFoundError("Request", request_id)
    comments = (
        ClearanceComment.query.filter_by(request_id=request_id)
        .order_by(ClearanceComment.created_at.asc(), ClearanceComment.id.asc())
        .all()
    )
    if viewer.role == SUPER_ADMIN_ROLE:
        return comments
    return [c for c in comments if can_view(c.visibility, viewer.role)]


def toggle_resolved(comment_id, user_id) -> ClearanceComment:
    user = _load_profile(user_id)
    comment = _load_comment(comment_id)
    if comment.commenter_id != user.id and user.role not in RESOLVER_ROLES:
        raise AuthorizationError("Only the author or a registrar can resolve this comment")

    comment.is_resolved = not comment.is_resolved
    comment.resolved_by = user.id if comment.is_resolved else None
    comment.resolved_at = utcnow() if comment.is_resolved else None
    commit_or_raise(f"resolve comment {comment.id}")
    return comment


def delete_comment(comment_id, user_id) -> None:
    user = _load_profile(user_id)
    comment = _load_comment(comment_id)
    if user.is_student:
        raise AuthorizationError("Students cannot delete comments")
    if comment.commenter_id != user.id and user.role != SUPER_ADMIN_ROLE:
        raise AuthorizationError("Only the author or a super admin can delete this comment")
    db.session.delete(comment)
    commit_or_raise(f"delete comment {comment_id}")
    logger.info("Comment %s deleted by %s", comment_id, user.id, extra={"actor_id": user.id})
