"""
Engagement Scorer

Computes a 0-100 engagement score from five weighted sub-scores and decides
whether a student should be nudged, and with which nudge type. All methods
are pure functions of an ActivitySnapshot.
"""

from datetime import timedelta
from typing import Callable, List, Optional, Tuple
import logging
import math

from models.domain import ActiveGoalSummary, ActivitySnapshot, EngagementScore, NudgeDecision
from retention.nudge_content import NudgeContentBuilder, NudgeContext
from retention.nudge_types import NudgeType
from retention.policy import EngagementPolicy


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, value))


class EngagementScorer:
    """Scores engagement and picks nudges from an activity snapshot"""

    def __init__(
        self,
        policy: Optional[EngagementPolicy] = None,
        content_builder: Optional[NudgeContentBuilder] = None,
    ):
        self.policy = policy or EngagementPolicy()
        self.content_builder = content_builder or NudgeContentBuilder()
        self.logger = logging.getLogger("EngagementScorer")

    # ------------------------------------------------------------------
    # Score
    # ------------------------------------------------------------------

    def score(self, snapshot: ActivitySnapshot) -> EngagementScore:
        """
        Calculate the overall engagement score.

        Args:
            snapshot: Student activity snapshot

        Returns:
            EngagementScore with overall value, sub-scores and weights
        """
        components = {
            "session_frequency": self.session_frequency_score(snapshot),
            "practice_activity": self.practice_activity_score(snapshot),
            "conversation_activity": self.conversation_activity_score(snapshot),
            "goal_progress": self.goal_progress_score(snapshot),
            "recency": self.recency_score(snapshot),
        }
        weights = self.policy.weights.as_dict()

        weighted = sum(components[name] * weights[name] for name in components)
        overall = int(clamp(round_half_up(weighted)))

        self.logger.debug(f"Engagement for student {snapshot.student_id}: {overall} {components}")
        return EngagementScore(overall=overall, component_scores=components, weights=weights)

    def session_frequency_score(self, snapshot: ActivitySnapshot) -> float:
        # Enrollment day counts as an active day
        days_active = snapshot.days_since_enrollment + 1
        if days_active < self.policy.new_enrollment_grace_days:
            return 100.0

        expected = math.ceil(days_active / 7) * self.policy.sessions_expected_per_week
        return clamp(snapshot.tutoring_sessions_last_30_days / expected * 100)

    def practice_activity_score(self, snapshot: ActivitySnapshot) -> float:
        return clamp(snapshot.practice_sessions_last_14_days / self.policy.practice_expected * 100)

    def conversation_activity_score(self, snapshot: ActivitySnapshot) -> float:
        activity = (
            snapshot.conversations_last_7_days * self.policy.conversation_weight
            + snapshot.messages_last_7_days
        )
        return clamp(activity / self.policy.conversation_activity_expected * 100)

    def goal_progress_score(self, snapshot: ActivitySnapshot) -> float:
        if not snapshot.active_goals:
            return self.policy.neutral_goal_progress
        total = sum(goal.progress_percentage for goal in snapshot.active_goals)
        return clamp(total / len(snapshot.active_goals))

    def recency_score(self, snapshot: ActivitySnapshot) -> float:
        days_since = snapshot.days_since_last_activity()
        if days_since is None:
            return 0.0
        return clamp(100 - days_since * self.policy.recency_decay_per_day)

    # ------------------------------------------------------------------
    # Nudge triggers
    # ------------------------------------------------------------------

    def new_student_low_sessions(self, snapshot: ActivitySnapshot) -> bool:
        days = snapshot.days_since_enrollment
        if not self.policy.new_student_min_days <= days <= self.policy.new_student_max_days:
            return False
        return snapshot.tutoring_sessions_since_enrollment < self.policy.new_student_min_sessions

    def inactive_too_long(self, snapshot: ActivitySnapshot) -> bool:
        days_since = snapshot.days_since_last_activity()
        if days_since is None:
            return True
        return days_since >= self.policy.inactive_days

    def declining_engagement(self, snapshot: ActivitySnapshot) -> bool:
        previous = snapshot.previous_window.weighted_activity()
        if previous == 0:
            return False
        recent = snapshot.recent_window.weighted_activity()
        return recent < previous * self.policy.decline_ratio

    def stalled_goals(self, snapshot: ActivitySnapshot) -> List[ActiveGoalSummary]:
        cutoff = snapshot.as_of - timedelta(days=self.policy.stalled_goal_days)
        return [
            goal for goal in snapshot.active_goals
            if goal.updated_at <= cutoff
            and goal.progress_percentage < self.policy.stalled_goal_progress_ceiling
        ]

    def stalled_goal_progress(self, snapshot: ActivitySnapshot) -> bool:
        return bool(self.stalled_goals(snapshot))

    def _ordered_triggers(self) -> List[Tuple[NudgeType, Callable[[ActivitySnapshot], bool]]]:
        return [
            (NudgeType.NEW_STUDENT_SESSIONS, self.new_student_low_sessions),
            (NudgeType.INACTIVE_REMINDER, self.inactive_too_long),
            (NudgeType.DECLINING_ENGAGEMENT, self.declining_engagement),
            (NudgeType.GOAL_STALLED, self.stalled_goal_progress),
            (
                NudgeType.GENERAL_ENCOURAGEMENT,
                lambda s: self.score(s).overall < self.policy.encouragement_score_threshold,
            ),
        ]

    def recommended_nudge(self, snapshot: ActivitySnapshot) -> Optional[NudgeType]:
        """First trigger that fires, in priority order"""
        for nudge_type, trigger in self._ordered_triggers():
            if trigger(snapshot):
                return nudge_type
        return None

    def needs_nudge(self, snapshot: ActivitySnapshot) -> bool:
        return self.recommended_nudge(snapshot) is not None

    def evaluate(self, snapshot: ActivitySnapshot, student_name: Optional[str] = None) -> NudgeDecision:
        """
        Decide whether to nudge and render the nudge content.

        Args:
            snapshot: Student activity snapshot
            student_name: Name used in the nudge copy

        Returns:
            NudgeDecision (needed=False when no trigger fires)
        """
        nudge_type = self.recommended_nudge(snapshot)
        if nudge_type is None:
            return NudgeDecision(needed=False)

        context = NudgeContext(
            student_name=student_name,
            days_inactive=self._days_inactive(snapshot),
        )
        if nudge_type == NudgeType.GOAL_STALLED:
            stalled = self.stalled_goals(snapshot)
            if stalled:
                context.stalled_goal_title = stalled[0].title
                context.stalled_goal_subject = stalled[0].subject

        content = self.content_builder.build(nudge_type, context)
        self.logger.info(f"Nudge {nudge_type.value} selected for student {snapshot.student_id}")
        return NudgeDecision(needed=True, nudge_type=nudge_type.value, content=content)

    @staticmethod
    def _days_inactive(snapshot: ActivitySnapshot) -> int:
        days_since = snapshot.days_since_last_activity()
        if days_since is None:
            return snapshot.days_since_enrollment
        return days_since
