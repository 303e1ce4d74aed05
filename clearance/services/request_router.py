"""
Smart Clearance
Request Router — classification + sequential routing for new requests.

``classify_and_route`` never raises: any lookup or classifier failure is
reported as ``RoutingResult(success=False, error=...)`` and request creation
falls back to fixed defaults. Successful decisions are appended to
``ai_routing_logs`` on a best-effort basis.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta

from clearance.core.exceptions import NotFoundError
from clearance.models import db
from clearance.models.catalog import DocumentType
from clearance.models.profile import Profile
from clearance.models.routing import AIRoutingLog
from clearance.services import stage_registry
from clearance.services.classification import (
    Classification,
    escalation_threshold,
    estimate_processing_time,
    get_classifier,
)
from clearance.utils.helpers import utcnow

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_STAGE = "registrar"


@dataclass
class RoutingResult:
    success: bool
    classification: dict = field(default_factory=dict)
    routing: dict = field(default_factory=dict)
    error: str | None = None

    @property
    def ai_insights(self) -> dict:
        """Client-facing summary returned with a newly created request."""
        return {
            "category": self.classification.get("category"),
            "urgency": self.classification.get("urgency"),
            "estimatedTime": self.routing.get("estimated_processing_time"),
            "assignedOffice": self.routing.get("initial_stage"),
        }


def determine_routing(classification: Classification, doc_type: DocumentType) -> dict:
    stages = doc_type.stages
    initial_stage = stages[0] if stages else DEFAULT_INITIAL_STAGE
    estimate = estimate_processing_time(classification.urgency, len(stages))
    return {
        "initial_stage": initial_stage,
        "assigned_role": stage_registry.roles_for_stage(initial_stage)[0],
        "required_stages": stages,
        "total_stages": len(stages),
        "estimated_processing_time": estimate,
        "escalation_threshold": escalation_threshold(estimate),
        "routing_strategy": "sequential",
        "auto_assigned": True,
    }


def classify_and_route(doc_type_id, student_id, details: str | None) -> RoutingResult:
    """Classify a prospective request and compute its routing. Never raises."""
    try:
        doc_type = db.session.get(DocumentType, doc_type_id)
        if not doc_type:
            raise NotFoundError("Document type", doc_type_id)
        student = db.session.get(Profile, student_id)
        if not student:
            raise NotFoundError("Student profile", student_id)

        classification = get_classifier().classify(doc_type, details, student)
        routing = determine_routing(classification, doc_type)
    except Exception as exc:
        logger.warning("Classification failed for doc_type=%s student=%s: %s",
                       doc_type_id, student_id, exc)
        return RoutingResult(success=False, error=str(exc))

    result = RoutingResult(
        success=True,
        classification=classification.to_dict(),
        routing=routing,
    )
    logger.info("Classified request doc_type=%s category=%s urgency=%s score=%s",
                doc_type_id, classification.category, classification.urgency,
                classification.priority_score)
    log_routing_decision(student_id, doc_type_id, result)
    return result


def log_routing_decision(student_id, doc_type_id, result: RoutingResult) -> None:
    """Append an AIRoutingLog row. Failures are logged and swallowed."""
    try:
        db.session.add(AIRoutingLog(
            student_id=student_id,
            doc_type_id=doc_type_id,
            classification=result.classification,
            routing=result.routing,
        ))
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        logger.warning("Failed to log routing decision: %s", exc)


def get_routing_statistics(days: int = 7) -> dict:
    """Aggregate classification decisions logged in the last ``days`` days."""
    since = utcnow() - timedelta(days=days)
    logs = AIRoutingLog.query.filter(AIRoutingLog.timestamp >= since).all()

    categories = Counter()
    urgencies = Counter()
    confidence_total = 0.0
    for entry in logs:
        classification = entry.classification or {}
        categories[classification.get("category") or "unknown"] += 1
        urgencies[classification.get("urgency") or "unknown"] += 1
        confidence_total += float(classification.get("confidence") or 0)

    total = len(logs)
    return {
        "period_days": days,
        "total_processed": total,
        "average_confidence": round(confidence_total / total, 3) if total else 0,
        "category_distribution": dict(categories),
        "urgency_distribution": dict(urgencies),
    }
