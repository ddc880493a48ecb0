"""Lead scoring engine - additive 0-100 score over four capped buckets."""

import structlog

from leadengine.schemas.enums import LeadPriority, LeadSource
from leadengine.schemas.lead import Lead, ScoreDetails, utcnow

logger = structlog.get_logger()

BUCKET_CAP = 25
HOT_THRESHOLD = 70

SOURCE_SCORES = {
    LeadSource.REFERRAL: 25,
    LeadSource.WALK_IN: 20,
    LeadSource.PHONE: 18,
    LeadSource.EMAIL: 15,
    LeadSource.WEBSITE: 12,
    LeadSource.SOCIAL_MEDIA: 10,
    LeadSource.OTHER: 5,
}

# (minimum representative budget, points), checked top-down
BUDGET_TIERS = (
    (1_000_000, 25),
    (500_000, 20),
    (250_000, 15),
    (100_000, 10),
    (50_000, 5),
)

TIMELINE_SCORES = {
    "immediate": 25,
    "1_month": 20,
    "3_months": 15,
    "6_months": 10,
    "1_year": 5,
    "flexible": 3,
}

ENGAGEMENT_SIGNAL = 5
MESSAGE_ENGAGEMENT_LENGTH = 50


def _positive(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def representative_budget(budget_min, budget_max) -> float | None:
    low, high = _positive(budget_min), _positive(budget_max)
    if low is not None and high is not None:
        return (low + high) / 2
    return low if low is not None else high


def score_source(source) -> int:
    return SOURCE_SCORES.get(source, SOURCE_SCORES[LeadSource.OTHER])


def score_budget(budget_min, budget_max) -> int:
    value = representative_budget(budget_min, budget_max)
    if value is None:
        return 0
    for threshold, points in BUDGET_TIERS:
        if value >= threshold:
            return points
    return 2


def score_timeline(timeline) -> int:
    if not timeline:
        return 0
    return TIMELINE_SCORES.get(str(timeline), 0)


def score_engagement(lead: Lead) -> int:
    signals = [
        bool(lead.property_id),
        len(lead.inquiry.message or "") > MESSAGE_ENGAGEMENT_LENGTH,
        bool(lead.inquiry.preferred_location),
        bool(lead.inquiry.property_type),
        bool(lead.communications),
    ]
    return min(BUCKET_CAP, ENGAGEMENT_SIGNAL * sum(signals))


def priority_from_score(score: int) -> LeadPriority:
    """Derived priority is Hot or Warm only. Cold/Not_interested are manual."""
    return LeadPriority.HOT if score >= HOT_THRESHOLD else LeadPriority.WARM


class LeadScoringEngine:
    """Computes a lead's score and, unless told otherwise, its priority."""

    def calculate(self, lead: Lead) -> tuple[int, ScoreDetails]:
        budget = lead.inquiry.budget
        details = ScoreDetails(
            source=min(BUCKET_CAP, score_source(lead.source)),
            budget=min(BUCKET_CAP, score_budget(budget.min, budget.max)),
            timeline=min(BUCKET_CAP, score_timeline(lead.inquiry.timeline)),
            engagement=score_engagement(lead),
            calculated_at=utcnow(),
        )
        total = details.source + details.budget + details.timeline + details.engagement
        details.total = max(0, min(100, total))
        return details.total, details

    def apply(self, lead: Lead, update_priority: bool = True) -> Lead:
        """Score the lead in place. A scoring failure never blocks the caller."""
        try:
            score, details = self.calculate(lead)
        except Exception as e:
            logger.error("lead_scoring_failed", lead_id=lead.id, error=str(e))
            return lead

        lead.score = score
        lead.score_details = details
        if update_priority:
            lead.priority = priority_from_score(score)
        logger.debug("lead_scored", lead_id=lead.id, score=score, priority=lead.priority.value)
        return lead
