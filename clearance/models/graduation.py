"""
Smart Clearance
Graduation clearance models.

Models:
    - StudentProfessor: professor assigned to a student for a course
    - ProfessorApproval: one professor's sign-off on a graduation request

A graduation request runs through the ``professors`` stage first; the
lifecycle only lets it leave that stage once every ProfessorApproval on it
is approved.
"""

from datetime import datetime, timezone

from clearance.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROFESSOR_STAGE = "professors"
GRADUATION_DOC_TYPE = "Graduation Clearance"
GRADUATION_STAGES = [PROFESSOR_STAGE, "library", "cashier", "registrar"]

APPROVAL_STATUSES = {"pending", "approved", "rejected"}


def _utcnow():
    return datetime.now(timezone.utc)


class StudentProfessor(db.Model):
    """Course assignment; active rows seed the approvals of a new graduation request."""

    __tablename__ = "student_professors"
    __table_args__ = (
        db.UniqueConstraint("student_id", "professor_id", "course_code",
                            name="uq_student_professor_course"),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    professor_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    course_code = db.Column(db.String(30), nullable=False)
    course_name = db.Column(db.String(200), default="")
    semester = db.Column(db.String(30), default="")
    academic_year = db.Column(db.String(20), default="")
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    professor = db.relationship("Profile", foreign_keys=[professor_id], lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "professor_id": self.professor_id,
            "professor_name": self.professor.full_name if self.professor else None,
            "course_code": self.course_code,
            "course_name": self.course_name,
            "semester": self.semester,
            "academic_year": self.academic_year,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ProfessorApproval(db.Model):
    __tablename__ = "professor_approvals"
    __table_args__ = (
        db.UniqueConstraint("request_id", "professor_id", name="uq_approval_request_professor"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer,
                           db.ForeignKey("clearance_requests.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    professor_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending, approved, rejected")
    comments = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    professor = db.relationship("Profile", foreign_keys=[professor_id], lazy="joined")
    request = db.relationship(
        "ClearanceRequest",
        backref=db.backref("professor_approvals", cascade="all, delete-orphan",
                           passive_deletes=True, order_by="ProfessorApproval.id"),
    )

    def to_dict(self, include_student=False):
        d = {
            "id": self.id,
            "request_id": self.request_id,
            "professor_id": self.professor_id,
            "professor": {
                "full_name": self.professor.full_name,
                "email": self.professor.email,
            } if self.professor else None,
            "status": self.status,
            "comments": self.comments,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_student and self.request is not None:
            student = self.request.student
            d["request"] = {
                "id": self.request.id,
                "created_at": self.request.created_at.isoformat() if self.request.created_at else None,
                "current_status": self.request.current_status,
                "current_stage": self.request.current_stage,
                "student": {
                    "id": student.id,
                    "full_name": student.full_name,
                    "student_number": student.student_number,
                    "course_year": student.course_year,
                    "email": student.email,
                } if student else None,
            }
        return d

    def __repr__(self):
        return f"<ProfessorApproval {self.request_id}/{self.professor_id} {self.status}>"
