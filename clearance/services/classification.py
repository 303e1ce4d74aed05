"""
Smart Clearance
Request Classification — deterministic rule-based scoring.

Pure functions of (document type name, free-text details, stage count):

    extract_keywords          → matched tags from KEYWORD_PATTERNS (table order)
    categorize_request        → first matching category rule
    calculate_priority_score  → base 50 + keyword boosts + stage boost, clamped 0..100
    determine_urgency         → critical / high / medium / low
    estimate_processing_time  → hours, shortened for critical / high urgency
    escalation_threshold      → ceil(estimate × 1.5)

``RequestClassifier`` is the pluggable strategy consumed by the router.
``RuleBasedClassifier`` wires the functions above; a statistical model can
replace it by registering another implementation under
``app.extensions["request_classifier"]``.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field

# ── Constants ────────────────────────────────────────────────────────────────

# Iteration order is significant: extract_keywords returns tags in this order.
KEYWORD_PATTERNS: dict[str, tuple[str, ...]] = {
    "urgent": ("urgent", "asap", "emergency", "immediate"),
    "academic": ("transcript", "grades", "diploma", "certificate"),
    "financial": ("payment", "fee", "tuition", "scholarship"),
    "clearance": ("clearance", "exit", "graduation", "completion"),
}

# (substrings, category); first match wins
CATEGORY_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("clearance",), "clearance"),
    (("transcript", "grades"), "academic_records"),
    (("certificate", "diploma"), "certification"),
    (("id", "card"), "identification"),
)
DEFAULT_CATEGORY = "general"

BASE_SCORE = 50
KEYWORD_BOOSTS = {"urgent": 30, "clearance": 20, "academic": 10}
STAGE_BOOST_PER_STAGE = 5
STAGE_BOOST_CAP = 20

BASE_HOURS = 24
HOURS_PER_STAGE = 12
URGENCY_TIME_FACTORS = {"critical": 0.5, "high": 0.75}
ESCALATION_FACTOR = 1.5

RULE_BASED_CONFIDENCE = 0.95


# ═══════════════════════════════════════════════════════════════════════════
#  Scoring functions
# ═══════════════════════════════════════════════════════════════════════════


def extract_keywords(doc_type_name: str, details: str | None) -> list[str]:
    text = f"{doc_type_name or ''} {details or ''}".lower()
    return [
        tag for tag, words in KEYWORD_PATTERNS.items()
        if any(word in text for word in words)
    ]


def categorize_request(doc_type_name: str) -> str:
    name = (doc_type_name or "").lower()
    for needles, category in CATEGORY_RULES:
        if any(n in name for n in needles):
            return category
    return DEFAULT_CATEGORY


def calculate_priority_score(keywords, stage_count: int | None) -> int:
    """Keyword boosts plus min(stages × 5, 20). Missing or zero stage count counts as one stage."""
    score = BASE_SCORE
    for tag, boost in KEYWORD_BOOSTS.items():
        if tag in keywords:
            score += boost
    stages = stage_count or 1
    score += min(stages * STAGE_BOOST_PER_STAGE, STAGE_BOOST_CAP)
    return max(0, min(100, score))


def determine_urgency(score: int) -> str:
    if score >= 80:
        return "critical"
    if score >= 60:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def estimate_processing_time(urgency: str, stage_count: int) -> int:
    hours = BASE_HOURS + HOURS_PER_STAGE * (stage_count or 0)
    return math.ceil(hours * URGENCY_TIME_FACTORS.get(urgency, 1))


def escalation_threshold(estimate_hours: int) -> int:
    return math.ceil(estimate_hours * ESCALATION_FACTOR)


# ═══════════════════════════════════════════════════════════════════════════
#  Classifier strategy
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class Classification:
    category: str
    priority_score: int
    urgency: str
    keywords: list[str] = field(default_factory=list)
    confidence: float = RULE_BASED_CONFIDENCE
    processing_method: str = "rule-based"

    def to_dict(self) -> dict:
        return asdict(self)


class RequestClassifier(ABC):
    """Scores a request from its document type, free text and student context."""

    name = "base"

    @abstractmethod
    def classify(self, doc_type, details: str | None, student) -> Classification:
        ...


class RuleBasedClassifier(RequestClassifier):
    name = "rule-based"

    def classify(self, doc_type, details, student) -> Classification:
        stage_count = len(doc_type.stages)
        keywords = extract_keywords(doc_type.name, details)
        score = calculate_priority_score(keywords, stage_count)
        return Classification(
            category=categorize_request(doc_type.name),
            priority_score=score,
            urgency=determine_urgency(score),
            keywords=keywords,
        )


def init_classifier(app, classifier: RequestClassifier | None = None) -> None:
    """Register the active classifier on the app (rule-based by default)."""
    app.extensions["request_classifier"] = classifier or RuleBasedClassifier()


def get_classifier() -> RequestClassifier:
    from flask import current_app

    return current_app.extensions.get("request_classifier") or RuleBasedClassifier()
