"""
Smart Clearance
Stage Registry — stage → role authorization and document type configuration.

Authorization for a request is derived from the stage named at its current
index: the actor may act when their role is listed for that stage in
``StageAuthorization`` or is ``super_admin``. Document types are validated
against this table when they are configured, so every stage a request can
reach has an explicit role set.

Usage:
    from clearance.services import stage_registry

    stage_registry.is_authorized("library_admin", "library")   # True
    stage_registry.create_document_type("Clearance Form", ["library", "registrar"])
"""

from __future__ import annotations

import logging
import re

from clearance.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clearance.models import db
from clearance.models.catalog import (
    DEFAULT_STAGES,
    SUPER_ADMIN_ROLE,
    DocumentType,
    StageAuthorization,
    default_role_for,
)
from clearance.models.profile import Profile
from clearance.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

_STAGE_RE = re.compile(r"^[a-z][a-z0-9_]{1,49}$")


def format_role(role: str) -> str:
    """``library_admin`` → ``Library Admin``."""
    return (role or "").replace("_", " ").title()


# ═══════════════════════════════════════════════════════════════════════════
#  Role lookups
# ═══════════════════════════════════════════════════════════════════════════


def roles_for_stage(stage: str) -> list[str]:
    """Authorized roles for a stage (super_admin excluded)."""
    row = StageAuthorization.query.filter_by(stage=stage).first()
    if row and row.roles:
        return list(row.roles)
    return [default_role_for(stage)]


def is_authorized(role: str | None, stage: str | None) -> bool:
    if not role or not stage:
        return False
    if role == SUPER_ADMIN_ROLE:
        return True
    return role in roles_for_stage(stage)


def stages_for_role(role: str) -> set[str]:
    """All stages the role may act on. Empty for unknown roles.

    Mirrors ``roles_for_stage``: a stage used by a document type but missing
    from the table belongs to its conventional ``<stage>_admin`` role.
    """
    rows = StageAuthorization.query.all()
    stages = {row.stage for row in rows if role in (row.roles or [])}
    mapped = {row.stage for row in rows if row.roles}
    for doc_type in DocumentType.query.all():
        for stage in doc_type.stages:
            if stage not in mapped and default_role_for(stage) == role:
                stages.add(stage)
    return stages


def is_admin_role(role: str | None) -> bool:
    """Office and super administrators; professors and students are not admins."""
    return bool(role) and "admin" in role


def admin_roles() -> set[str]:
    """Every admin role mapped to a stage, plus super_admin (admin signup, escalation checks)."""
    roles = {SUPER_ADMIN_ROLE}
    for row in StageAuthorization.query.all():
        roles.update(r for r in (row.roles or []) if is_admin_role(r))
    return roles


def require_super_admin(actor_id: str | None) -> Profile:
    """Return the actor profile or raise AuthorizationError."""
    actor = db.session.get(Profile, actor_id) if actor_id else None
    if not actor or actor.role != SUPER_ADMIN_ROLE:
        raise AuthorizationError("Only super administrators can change clearance configuration")
    return actor


# ═══════════════════════════════════════════════════════════════════════════
#  Stage configuration
# ═══════════════════════════════════════════════════════════════════════════


def _normalise_roles(stage: str, roles) -> list[str]:
    if roles is None:
        return [default_role_for(stage)]
    if not isinstance(roles, list) or not all(isinstance(r, str) and r.strip() for r in roles):
        raise ValidationError("roles must be a list of non-empty strings",
                              details={"roles": "invalid"})
    cleaned = [r.strip() for r in roles if r.strip() != SUPER_ADMIN_ROLE]
    if not cleaned:
        raise ValidationError("At least one role other than super_admin is required",
                              details={"roles": "empty"})
    return list(dict.fromkeys(cleaned))


def register_stage(stage: str, label: str | None = None, roles=None) -> StageAuthorization:
    """Create or update the role set for a stage."""
    stage = (stage or "").strip().lower()
    if not _STAGE_RE.match(stage):
        raise ValidationError(
            "stage must be a lower-case identifier (letters, digits, underscore)",
            details={"stage": "invalid"},
        )
    role_list = _normalise_roles(stage, roles)

    row = StageAuthorization.query.filter_by(stage=stage).first()
    if row is None:
        row = StageAuthorization(stage=stage)
        db.session.add(row)
    row.label = label or row.label or stage.replace("_", " ").title()
    row.roles = role_list
    commit_or_raise(f"register stage {stage}")
    logger.info("Stage %s authorized for roles %s", stage, role_list)
    return row


def list_stages() -> list[StageAuthorization]:
    return StageAuthorization.query.order_by(StageAuthorization.id).all()


def seed_default_stages() -> int:
    """Insert library / cashier / registrar mappings that are missing. Returns count added."""
    added = 0
    for entry in DEFAULT_STAGES:
        if StageAuthorization.query.filter_by(stage=entry["stage"]).first():
            continue
        db.session.add(StageAuthorization(
            stage=entry["stage"],
            label=entry["label"],
            roles=[default_role_for(entry["stage"])],
        ))
        added += 1
    if added:
        commit_or_raise("seed default stages")
    return added


# ═══════════════════════════════════════════════════════════════════════════
#  Document types
# ═══════════════════════════════════════════════════════════════════════════


def validate_stage_list(required_stages) -> list[str]:
    """Check an ordered stage list against the authorization table."""
    if not isinstance(required_stages, list) or not required_stages:
        raise ValidationError("required_stages must be a non-empty list",
                              details={"required_stages": "required"})
    stages = [str(s).strip().lower() for s in required_stages]
    duplicates = sorted({s for s in stages if stages.count(s) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate stages: {', '.join(duplicates)}",
                              details={"required_stages": duplicates})
    known = {row.stage for row in StageAuthorization.query.all()}
    unknown = [s for s in stages if s not in known]
    if unknown:
        raise ValidationError(
            f"Stages without an authorization mapping: {', '.join(unknown)}",
            details={"unknown_stages": unknown},
        )
    return stages


def create_document_type(name: str, required_stages, description: str = "") -> DocumentType:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    stages = validate_stage_list(required_stages)
    if DocumentType.query.filter_by(name=name).first():
        raise ConflictError("Document type", "name", name)

    doc_type = DocumentType(name=name, description=description or "", required_stages=stages)
    db.session.add(doc_type)
    commit_or_raise(f"create document type {name}")
    logger.info("Document type %s configured with stages %s", name, stages)
    return doc_type


def get_document_type(doc_type_id) -> DocumentType:
    doc_type = db.session.get(DocumentType, doc_type_id)
    if not doc_type:
        raise NotFoundError("Document type", doc_type_id)
    return doc_type


def list_document_types(active_only: bool = False) -> list[DocumentType]:
    q = DocumentType.query
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(DocumentType.name).all()
