"""
Smart Clearance
Routing decision audit model.

Models:
    - AIRoutingLog: one row per classification decision, feeds routing statistics
"""

from datetime import datetime, timezone

from clearance.models import db


class AIRoutingLog(db.Model):
    """Classification + routing snapshot written after each successful classification."""

    __tablename__ = "ai_routing_logs"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(36), nullable=True, index=True)
    doc_type_id = db.Column(db.Integer, nullable=True)
    classification = db.Column(db.JSON, nullable=False, default=dict)
    routing = db.Column(db.JSON, nullable=False, default=dict)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True,
                          default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "doc_type_id": self.doc_type_id,
            "classification": self.classification or {},
            "routing": self.routing or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
