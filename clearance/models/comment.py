"""
Smart Clearance
Request comment model.

Models:
    - ClearanceComment: staff remark on a request with audience visibility
"""

from datetime import datetime, timezone

from clearance.models import db


COMMENT_VISIBILITIES = ("all", "admins_only", "professors_only")


def _utcnow():
    return datetime.now(timezone.utc)


class ClearanceComment(db.Model):
    __tablename__ = "clearance_comments"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("clearance_requests.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    commenter_id = db.Column(db.String(36), nullable=False)
    commenter_name = db.Column(db.String(200), default="")
    commenter_role = db.Column(db.String(50), default="")
    comment_text = db.Column(db.Text, nullable=False)
    visibility = db.Column(db.String(20), default="all",
                           comment="all, admins_only, professors_only")
    is_resolved = db.Column(db.Boolean, default=False)
    resolved_by = db.Column(db.String(36), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    request = db.relationship(
        "ClearanceRequest",
        backref=db.backref("comments", cascade="all, delete-orphan", passive_deletes=True),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "commenter_id": self.commenter_id,
            "commenter_name": self.commenter_name,
            "commenter_role": self.commenter_role,
            "comment_text": self.comment_text,
            "visibility": self.visibility,
            "is_resolved": self.is_resolved,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
