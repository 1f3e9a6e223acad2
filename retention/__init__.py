"""Student Retention

Engagement scoring, nudge selection, goal progress tracking and
follow-on subject recommendations.
"""

from retention.nudge_types import NudgeType, NUDGE_CONFIGS
from retention.nudge_content import NudgeContentBuilder, NudgeContext
from retention.engagement_scorer import EngagementScorer
from retention.subject_recommendations import SubjectRecommendation, get_recommendations

__all__ = [
    "NudgeType",
    "NUDGE_CONFIGS",
    "NudgeContentBuilder",
    "NudgeContext",
    "EngagementScorer",
    "SubjectRecommendation",
    "get_recommendations",
]
