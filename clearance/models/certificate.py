"""
Smart Clearance
Certificate model.

Models:
    - ClearanceCertificate: issued once per completed request, immutable after creation
"""

from datetime import datetime, timezone

from clearance.models import db


class ClearanceCertificate(db.Model):
    """
    Clearance certificate record.

    ``request_id`` and ``certificate_number`` are both unique; a collision
    on the number surfaces as IntegrityError and the issuer retries.
    """

    __tablename__ = "clearance_certificates"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("clearance_requests.id", ondelete="CASCADE"),
                           unique=True, nullable=False)
    certificate_number = db.Column(db.String(32), unique=True, nullable=False,
                                   comment="CERT-<year>-<6 digits>")
    verification_code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    certificate_url = db.Column(db.String(500), nullable=False)
    storage_key = db.Column(db.String(255), nullable=False)
    generated_by = db.Column(db.String(36), nullable=True)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False,
                             default=lambda: datetime.now(timezone.utc))

    request = db.relationship("ClearanceRequest", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "certificate_number": self.certificate_number,
            "verification_code": self.verification_code,
            "certificate_url": self.certificate_url,
            "generated_by": self.generated_by,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }

    def __repr__(self):
        return f"<ClearanceCertificate {self.certificate_number}>"
