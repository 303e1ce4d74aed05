"""
Smart Clearance
Clearance request domain models.

Models:
    - ClearanceRequest: one (student, document type) request moving through stages
    - RequestHistory: append-only transition trail, one row per transition

Status transitions (``REQUEST_TRANSITIONS``) are validated by
``clearance.services.request_lifecycle``; the lifecycle service is the only
writer of ``current_status`` / ``current_stage_index``.
"""

from datetime import datetime, timezone

from clearance.models import db


# ── Constants ────────────────────────────────────────────────────────────────

REQUEST_STATUSES = {"pending", "approved", "on_hold", "completed"}
OPEN_STATUSES = ("pending", "approved")
DELETABLE_STATUSES = ("pending", "on_hold")
URGENCY_LEVELS = ("low", "medium", "high", "critical")
HISTORY_ACTIONS = {"submitted", "approved", "rejected", "resubmitted"}

# action → allowed source statuses
REQUEST_TRANSITIONS = {
    "approve": {"from": ["pending", "approved"]},
    "reject": {"from": ["pending", "approved"], "to": "on_hold"},
    "resubmit": {"from": ["on_hold"], "to": "pending"},
    "delete": {"from": list(DELETABLE_STATUSES)},
}


def _utcnow():
    return datetime.now(timezone.utc)


class ClearanceRequest(db.Model):
    """
    A student's request for one document type.

    Position in the approval pipeline is ``current_stage_index`` into the
    document type's ``required_stages``. The index stays in range at all
    times and is left unchanged on completion. ``version`` is bumped on every
    lifecycle write and serves as the compare-and-swap token.
    """

    __tablename__ = "clearance_requests"
    __table_args__ = (
        db.Index("idx_request_status", "current_status"),
        db.Index("idx_request_student", "student_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"),
                           nullable=False)
    doc_type_id = db.Column(db.Integer, db.ForeignKey("document_types.id"), nullable=False)
    request_details = db.Column(db.Text, default="")

    current_status = db.Column(db.String(20), nullable=False, default="pending",
                               comment="pending, approved, on_hold, completed")
    current_stage_index = db.Column(db.Integer, nullable=False, default=0)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    version = db.Column(db.Integer, nullable=False, default=1)

    # Classification / routing
    priority_score = db.Column(db.Integer, default=50)
    urgency_level = db.Column(db.String(20), default="medium")
    ai_classified = db.Column(db.Boolean, default=False)
    classification_data = db.Column(db.JSON, nullable=True)
    routing_data = db.Column(db.JSON, nullable=True)
    estimated_completion_hours = db.Column(db.Integer, nullable=True)
    auto_assigned = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    document_type = db.relationship("DocumentType", lazy="joined")
    student = db.relationship("Profile", lazy="joined")
    history = db.relationship(
        "RequestHistory", backref="request",
        order_by="RequestHistory.id",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def stages(self) -> list[str]:
        return self.document_type.stages if self.document_type else []

    @property
    def current_stage(self) -> str | None:
        return self.document_type.stage_at(self.current_stage_index) if self.document_type else None

    @property
    def is_last_stage(self) -> bool:
        return self.current_stage_index >= len(self.stages) - 1

    def to_dict(self, include_document=True):
        d = {
            "id": self.id,
            "student_id": self.student_id,
            "doc_type_id": self.doc_type_id,
            "request_details": self.request_details,
            "current_status": self.current_status,
            "current_stage_index": self.current_stage_index,
            "current_stage": self.current_stage,
            "is_completed": self.is_completed,
            "version": self.version,
            "priority_score": self.priority_score,
            "urgency_level": self.urgency_level,
            "ai_classified": self.ai_classified,
            "classification_data": self.classification_data,
            "routing_data": self.routing_data,
            "estimated_completion_hours": self.estimated_completion_hours,
            "auto_assigned": self.auto_assigned,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_document and self.document_type:
            d["document_type"] = {
                "id": self.document_type.id,
                "name": self.document_type.name,
                "required_stages": self.document_type.stages,
            }
        if include_document and self.student:
            d["student"] = {
                "id": self.student.id,
                "full_name": self.student.full_name,
                "student_number": self.student.student_number,
                "course_year": self.student.course_year,
            }
        return d

    def __repr__(self):
        return f"<ClearanceRequest {self.id} {self.current_status}@{self.current_stage_index}>"


class RequestHistory(db.Model):
    """Immutable transition record. Deleted only together with its request."""

    __tablename__ = "request_history"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("clearance_requests.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    processed_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"),
                             nullable=True)
    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=False)
    action_taken = db.Column(db.String(20), nullable=False,
                             comment="submitted, approved, rejected, resubmitted")
    stage = db.Column(db.String(50), nullable=True, comment="Stage name at the time of the transition")
    comments = db.Column(db.Text, default="")
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    processor = db.relationship("Profile", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "processed_by": self.processed_by,
            "processor": {
                "full_name": self.processor.full_name,
                "role": self.processor.role,
            } if self.processor else None,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "action_taken": self.action_taken,
            "stage": self.stage,
            "comments": self.comments,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<RequestHistory {self.request_id} {self.action_taken}>"
