"""
Smart Clearance
Escalation model.

Models:
    - RequestEscalation: one row each time an open request is escalated at a stage
"""

from datetime import datetime, timezone

from clearance.models import db


ESCALATION_TYPES = {"automatic", "manual"}


class RequestEscalation(db.Model):
    """
    Escalation record.

    Automatic escalations are deduplicated per (request, stage_index): a
    request that stays stuck on one stage is escalated once, and again only
    after it reaches the next stage. Escalation never changes the request
    itself.
    """

    __tablename__ = "request_escalations"
    __table_args__ = (
        db.Index("idx_escalation_request_stage", "request_id", "stage_index"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("clearance_requests.id", ondelete="CASCADE"),
                           nullable=False)
    stage_index = db.Column(db.Integer, nullable=False)
    stage = db.Column(db.String(50), nullable=True)
    escalation_type = db.Column(db.String(20), nullable=False, default="automatic",
                                comment="automatic, manual")
    reason = db.Column(db.Text, default="")
    escalated_by = db.Column(db.String(36), nullable=True, comment="Profile id; NULL for the sweep")
    hours_open = db.Column(db.Float, nullable=True)
    threshold_hours = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "stage_index": self.stage_index,
            "stage": self.stage,
            "escalation_type": self.escalation_type,
            "reason": self.reason,
            "escalated_by": self.escalated_by,
            "hours_open": round(self.hours_open, 1) if self.hours_open is not None else None,
            "threshold_hours": self.threshold_hours,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
