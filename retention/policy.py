"""
Retention Policy Configuration

Immutable threshold and weight tables injected into each component.
Defaults reproduce the production policy; tests and deployments can pass
their own instances.
"""

from dataclasses import dataclass, field
from typing import Dict

from config.settings import settings

WEIGHT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class EngagementWeights:
    """Weights of the five engagement sub-scores"""
    session_frequency: float = 0.30
    practice_activity: float = 0.25
    conversation_activity: float = 0.20
    goal_progress: float = 0.15
    recency: float = 0.10

    def __post_init__(self):
        total = sum(self.as_dict().values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Engagement weights must sum to 1.0, got {total}")
        if any(w < 0 for w in self.as_dict().values()):
            raise ValueError("Engagement weights must be non-negative")

    def as_dict(self) -> Dict[str, float]:
        return {
            "session_frequency": self.session_frequency,
            "practice_activity": self.practice_activity,
            "conversation_activity": self.conversation_activity,
            "goal_progress": self.goal_progress,
            "recency": self.recency,
        }


@dataclass(frozen=True)
class EngagementPolicy:
    weights: EngagementWeights = field(default_factory=EngagementWeights)

    # session_frequency
    session_window_days: int = 30
    sessions_expected_per_week: int = 2
    new_enrollment_grace_days: int = 7

    # practice_activity
    practice_window_days: int = 14
    practice_expected: int = 7

    # conversation_activity
    conversation_window_days: int = 7
    conversation_weight: int = 10
    conversation_activity_expected: int = 20

    # goal_progress
    neutral_goal_progress: float = 50.0

    # recency
    recency_decay_per_day: int = 10

    # nudge triggers
    new_student_min_days: int = 7
    new_student_max_days: int = 14
    new_student_min_sessions: int = 3
    inactive_days: int = 7
    decline_window_days: int = 14
    decline_ratio: float = 0.5
    stalled_goal_days: int = 14
    stalled_goal_progress_ceiling: int = 80
    encouragement_score_threshold: int = 50


@dataclass(frozen=True)
class EscalationPolicy:
    repeated_confusion_threshold: int = 3
    frustration_threshold: int = 2
    complexity_gap_threshold: int = 3
    low_confidence_threshold: int = 3
    similarity_threshold: float = 0.5
    message_window: int = 5
    min_user_messages_for_repetition: int = 3
    base_topic_difficulty: int = 5
    difficulty_per_indicator: int = 2
    summary_window: int = 10
    summary_truncate_chars: int = 200
    struggle_limit: int = 5
    struggles_in_focus: int = 3
    weaknesses_in_focus: int = 2
    focus_area_limit: int = 5


@dataclass(frozen=True)
class GoalProgressPolicy:
    completion_threshold: int = 90
    comprehension_multiplier: int = 10
    session_progress_per_session: int = 15
    session_progress_cap: int = 50
    history_window_days: int = 30
    trend_window: int = 5
    trend_min_sessions: int = 3
    trend_deadband: float = 0.1
    summary_limit: int = 5
    enforce_monotonic_progress: bool = False

    def __post_init__(self):
        if not 0 < self.completion_threshold <= 100:
            raise ValueError("completion_threshold must be within (0, 100]")


@dataclass(frozen=True)
class NudgePolicy:
    dedup_days: int = 3

    # goal_completed_followup becomes due this many days after completion and
    # stays due for dedup_days daily runs, so the claim lets it out once
    followup_delay_days: int = 3

    @property
    def dedup_seconds(self) -> int:
        return self.dedup_days * 24 * 60 * 60


def goal_progress_policy_from_settings() -> GoalProgressPolicy:
    return GoalProgressPolicy(completion_threshold=settings.GOAL_COMPLETION_THRESHOLD)


def nudge_policy_from_settings() -> NudgePolicy:
    return NudgePolicy(dedup_days=settings.NUDGE_DEDUP_DAYS)
