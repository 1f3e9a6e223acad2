"""
Retention Engine

Single entry point for callers (HTTP routes, the daily scheduler) that
wires the repository, the scoring and escalation components, goal
progress tracking and the outbound platform.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional
import logging
import time

from escalation.detector import EscalationDetector
from escalation.escalation_types import EscalationContext
from models.domain import EngagementScore, NudgeDecision, ProgressSignal, ProgressUpdate
from models.schemas import CompletionEvaluation
from retention.engagement_scorer import EngagementScorer
from retention.goal_progress import GoalProgressEngine
from retention.nudge_content import NudgeContext
from retention.nudge_types import NudgeType
from retention.policy import EngagementPolicy, NudgePolicy
from retention.subject_recommendations import SubjectRecommendation, get_recommendations
from services.activity_repository import ActivityRepository, collect_activity_snapshot
from services.concurrency import KeyedLock
from services.metrics import MetricsSink, NullMetricsSink
from services.nudge_dispatcher import NotificationDispatcher


@dataclass
class EscalationCheck:
    should_escalate: bool
    context: Optional[EscalationContext] = None


class RetentionEngine:
    """Facade over the retention and escalation components"""

    def __init__(
        self,
        repository: ActivityRepository,
        scorer: Optional[EngagementScorer] = None,
        detector: Optional[EscalationDetector] = None,
        goal_engine: Optional[GoalProgressEngine] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        metrics: Optional[MetricsSink] = None,
        locks: Optional[KeyedLock] = None,
        nudge_policy: Optional[NudgePolicy] = None,
    ):
        self.repository = repository
        self.scorer = scorer or EngagementScorer()
        self.detector = detector or EscalationDetector()
        self.goal_engine = goal_engine or GoalProgressEngine(repository)
        self.dispatcher = dispatcher
        self.metrics = metrics or NullMetricsSink()
        self.locks = locks or KeyedLock()
        if nudge_policy is None:
            nudge_policy = dispatcher.policy if dispatcher is not None else NudgePolicy()
        self.nudge_policy = nudge_policy
        self.logger = logging.getLogger("RetentionEngine")

    @property
    def engagement_policy(self) -> EngagementPolicy:
        return self.scorer.policy

    async def compute_engagement(self, student_id: str, as_of: Optional[datetime] = None) -> EngagementScore:
        snapshot = await collect_activity_snapshot(
            self.repository, student_id, as_of or datetime.utcnow(), self.engagement_policy
        )
        return self.scorer.score(snapshot)

    async def evaluate_nudge(self, student_id: str, as_of: Optional[datetime] = None) -> NudgeDecision:
        student = await self.repository.get_student(student_id)
        snapshot = await collect_activity_snapshot(
            self.repository, student_id, as_of or datetime.utcnow(), self.engagement_policy
        )
        return self.scorer.evaluate(snapshot, student_name=student.first_name)

    async def evaluate_goal_followup(self, student_id: str, as_of: Optional[datetime] = None) -> NudgeDecision:
        """
        Follow-up for a student whose most recent goal was completed a few days ago.

        Due while the latest goal (by creation time) is completed and its
        completion is at least followup_delay_days old, for dedup_days daily
        runs. A newer goal makes it the latest one, which cancels the follow-up.
        """
        as_of = as_of or datetime.utcnow()
        student = await self.repository.get_student(student_id)
        goal = await self.repository.latest_goal(student_id)
        if goal is None or not goal.is_completed or goal.completed_at is None:
            return NudgeDecision(needed=False)

        days_since = (as_of.date() - goal.completed_at.date()).days
        first_day = self.nudge_policy.followup_delay_days
        if not first_day <= days_since < first_day + self.nudge_policy.dedup_days:
            return NudgeDecision(needed=False)

        context = NudgeContext(
            student_name=student.first_name,
            completed_goal_title=goal.title,
            completed_goal_id=goal.id,
        )
        content = self.scorer.content_builder.build(NudgeType.GOAL_COMPLETED_FOLLOWUP, context)
        return NudgeDecision(needed=True, nudge_type=NudgeType.GOAL_COMPLETED_FOLLOWUP.value, content=content)

    async def run_engagement_check(self, student_id: str, as_of: Optional[datetime] = None) -> bool:
        """
        Evaluate one student and send the resulting nudge.

        A due goal follow-up takes precedence over the engagement nudge.

        Returns:
            True if a nudge was delivered
        """
        decision = await self.evaluate_goal_followup(student_id, as_of)
        if not decision.needed:
            decision = await self.evaluate_nudge(student_id, as_of)
        if not decision.needed:
            return False
        if self.dispatcher is None:
            self.logger.warning(f"No dispatcher configured, nudge for {student_id} not sent")
            return False

        student = await self.repository.get_student(student_id)
        return await self.dispatcher.dispatch(student, decision, now=as_of)

    async def check_escalation(self, conversation_id: str) -> EscalationCheck:
        async with self.locks.hold(conversation_id):
            conversation = await self.repository.get_conversation(conversation_id)
            profile = await self.repository.get_learning_profile(conversation.student_id, conversation.subject)

            if not self.detector.should_escalate(conversation, profile):
                return EscalationCheck(should_escalate=False)

            context = await self.detector.build_context(conversation, profile)

        self.metrics.increment("escalations.detected", tags={"urgency": context.urgency.value})
        return EscalationCheck(should_escalate=True, context=context)

    async def update_goal_progress(
        self,
        goal_id: str,
        signals: Iterable[ProgressSignal],
        now: Optional[datetime] = None
    ) -> ProgressUpdate:
        """
        Recompute goal progress from new evidence and persist the result.

        Args:
            goal_id: Goal to update
            signals: Signals from the event that triggered the update; when none
                of them carries a score, stored practice and session history is used
            now: Evaluation instant

        Returns:
            ProgressUpdate for the goal
        """
        now = now or datetime.utcnow()
        goal = await self.repository.get_goal(goal_id)
        if goal.is_completed:
            # Completed goals keep their final state
            return ProgressUpdate(goal_id=goal.id, progress_percentage=goal.progress_percentage, completed=True)

        resolved = await self.goal_engine.resolve_signals(goal, signals, now)
        return await self.goal_engine.check_and_update(goal, resolved, now)

    async def evaluate_goal_completion(self, goal_id: str, now: Optional[datetime] = None) -> CompletionEvaluation:
        goal = await self.repository.get_goal(goal_id)

        started = time.perf_counter()
        try:
            return await self.goal_engine.evaluate_completion(goal, now)
        finally:
            self.metrics.observe("llm.completion_evaluation_seconds", time.perf_counter() - started)

    def recommend_next_subjects(self, subject: str) -> SubjectRecommendation:
        return get_recommendations(subject)
