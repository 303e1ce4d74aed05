"""
Smart Clearance
Clearance catalog models.

Models:
    - StageAuthorization: stage identifier → authorized admin roles
    - DocumentType: named template owning an ordered list of stages
"""

from datetime import datetime, timezone

from clearance.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SUPER_ADMIN_ROLE = "super_admin"

DEFAULT_STAGES = [
    {"stage": "library", "label": "Library"},
    {"stage": "cashier", "label": "Cashier"},
    {"stage": "registrar", "label": "Registrar"},
]


def default_role_for(stage: str) -> str:
    """Conventional admin role for a stage when no explicit mapping exists."""
    return f"{stage}_admin"


class StageAuthorization(db.Model):
    """
    Explicit mapping from a stage identifier to the roles allowed to act on it.

    ``super_admin`` is a universal override and is never stored here.
    """

    __tablename__ = "stage_authorizations"

    id = db.Column(db.Integer, primary_key=True)
    stage = db.Column(db.String(50), unique=True, nullable=False,
                      comment="Lower-case stage identifier: library, cashier, registrar")
    label = db.Column(db.String(100), default="")
    roles = db.Column(db.JSON, nullable=False, default=list,
                      comment="Authorized role names for this stage")

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "stage": self.stage,
            "label": self.label,
            "roles": list(self.roles or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StageAuthorization {self.stage}={self.roles}>"


class DocumentType(db.Model):
    """Document template; ``required_stages`` is the ordered approval pipeline."""

    __tablename__ = "document_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text, default="")
    required_stages = db.Column(db.JSON, nullable=False, default=list,
                                comment="Ordered stage identifiers")
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    @property
    def stages(self) -> list[str]:
        return list(self.required_stages or [])

    def stage_at(self, index: int) -> str | None:
        stages = self.stages
        if 0 <= index < len(stages):
            return stages[index]
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "required_stages": self.stages,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DocumentType {self.id}: {self.name}>"
