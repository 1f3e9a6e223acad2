"""
Goal Progress Engine

Blends session and practice signals into a goal completion percentage,
completes goals that cross the completion threshold, and asks the language
model for a holistic completion judgment on demand.
"""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional
import json
import logging

from pydantic import ValidationError

from models.domain import (
    CompletionSignals,
    HistoricalPracticeSignal,
    LearningGoal,
    GoalStatus,
    PracticeSessionRecord,
    PracticeSessionSignal,
    ProgressSignal,
    ProgressUpdate,
    SessionAnalysisSignal,
    SessionCountSignal,
    SuggestedGoal,
)
from models.schemas import CompletionEvaluation
from retention.engagement_scorer import clamp, round_half_up
from retention.errors import CollaboratorError, CompletionEvaluationError
from retention.policy import GoalProgressPolicy
from retention.prompt_templates import COMPLETION_EVALUATION_PROMPT
from retention.subject_recommendations import get_recommendations, humanize_subject, priority_of
from services.activity_repository import ActivityRepository
from services.text_generation import JSON_FORMAT, TextGenerationClient

GoalCompletedHook = Callable[[LearningGoal], Awaitable[None]]

TREND_IMPROVING = "improving"
TREND_DECLINING = "declining"
TREND_STABLE = "stable"


def average_accuracy(sessions: Iterable[PracticeSessionRecord]) -> Optional[float]:
    """Mean accuracy over sessions that had problems"""
    accuracies = [s.accuracy for s in sessions if s.accuracy is not None]
    if not accuracies:
        return None
    return sum(accuracies) / len(accuracies)


class GoalProgressEngine:
    """Computes goal progress and drives goal completion"""

    def __init__(
        self,
        repository: ActivityRepository,
        text_generator: Optional[TextGenerationClient] = None,
        policy: Optional[GoalProgressPolicy] = None,
        on_goal_completed: Optional[GoalCompletedHook] = None,
    ):
        self.repository = repository
        self.text_generator = text_generator
        self.policy = policy or GoalProgressPolicy()
        self.on_goal_completed = on_goal_completed
        self.logger = logging.getLogger("GoalProgressEngine")

    # ------------------------------------------------------------------
    # Progress blending
    # ------------------------------------------------------------------

    def score_signal(self, signal: ProgressSignal) -> Optional[int]:
        """
        Convert one signal to a 0-100 progress score.

        Returns:
            The score, or None when the signal carries no usable evidence
        """
        if isinstance(signal, SessionAnalysisSignal):
            return int(clamp(int(signal.comprehension_score) * self.policy.comprehension_multiplier))
        if isinstance(signal, PracticeSessionSignal):
            if signal.total_problems <= 0:
                return None
            return int(clamp(round_half_up(signal.correct_answers / signal.total_problems * 100)))
        if isinstance(signal, HistoricalPracticeSignal):
            return int(clamp(round_half_up(signal.average_accuracy * 100)))
        if isinstance(signal, SessionCountSignal):
            return min(signal.session_count * self.policy.session_progress_per_session,
                       self.policy.session_progress_cap)
        raise TypeError(f"Unsupported progress signal: {type(signal).__name__}")

    def calculate_progress(self, goal: LearningGoal, signals: Iterable[ProgressSignal]) -> int:
        """Average of the applicable signal scores; unchanged when none apply"""
        scores = [score for score in (self.score_signal(s) for s in signals) if score is not None]
        if not scores:
            return goal.progress_percentage

        progress = sum(scores) // len(scores)
        if self.policy.enforce_monotonic_progress:
            progress = max(progress, goal.progress_percentage)
        return progress

    async def collect_history_signals(self, goal: LearningGoal, as_of: datetime) -> List[ProgressSignal]:
        """Signals derived from stored activity rather than the triggering event"""
        signals: List[ProgressSignal] = []

        since = as_of - timedelta(days=self.policy.history_window_days)
        recent_practices = await self.repository.practice_sessions(goal.student_id, goal.subject, since=since)
        if recent_practices:
            signals.append(HistoricalPracticeSignal(average_accuracy=average_accuracy(recent_practices) or 0.0))

        session_count = await self.repository.count_tutoring_sessions(
            goal.student_id, since=goal.created_at, subject=goal.subject
        )
        signals.append(SessionCountSignal(session_count=session_count))
        return signals

    async def resolve_signals(
        self,
        goal: LearningGoal,
        event_signals: Iterable[ProgressSignal],
        as_of: datetime
    ) -> List[ProgressSignal]:
        """
        Signals to blend for an update.

        Stored history is fallback evidence, used only when none of the
        event signals carries a score.
        """
        event_signals = list(event_signals)
        if any(self.score_signal(signal) is not None for signal in event_signals):
            return event_signals

        history = await self.collect_history_signals(goal, as_of)
        self.logger.debug(f"Goal {goal.id}: no usable event signal, using {len(history)} history signals")
        return event_signals + history

    async def check_and_update(
        self,
        goal: LearningGoal,
        signals: Iterable[ProgressSignal],
        now: Optional[datetime] = None
    ) -> ProgressUpdate:
        """
        Recompute progress, persist it, and complete the goal past the threshold.

        Args:
            goal: Goal to update (mutated in place)
            signals: Progress signals to blend
            now: Evaluation instant

        Returns:
            ProgressUpdate; newly_completed is True only for the call that completed the goal
        """
        now = now or datetime.utcnow()
        progress = self.calculate_progress(goal, list(signals))

        await self.repository.save_goal_progress(goal.id, progress, now)
        goal.progress_percentage = progress
        goal.updated_at = now

        newly_completed = False
        if progress >= self.policy.completion_threshold and not goal.is_completed:
            newly_completed = await self.complete_goal(goal, now)

        return ProgressUpdate(
            goal_id=goal.id,
            progress_percentage=progress,
            completed=goal.is_completed,
            newly_completed=newly_completed,
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def build_next_goal_suggestions(self, subject: str) -> List[SuggestedGoal]:
        recommendation = get_recommendations(subject)
        suggestions = [
            SuggestedGoal(
                subject=next_subject,
                reason=(
                    f"Based on your progress in {subject}, "
                    f"{humanize_subject(next_subject)} is a natural next step."
                ),
                priority=priority_of(recommendation, next_subject),
            )
            for next_subject in recommendation.next_subjects
        ]
        return sorted(suggestions, key=lambda s: s.priority)

    async def complete_goal(self, goal: LearningGoal, now: datetime) -> bool:
        """
        Mark the goal completed with compare-and-set semantics.

        Returns:
            True if this call completed the goal, False if another update already had
        """
        suggestions = self.build_next_goal_suggestions(goal.subject)
        won = await self.repository.complete_goal(goal.id, now, suggestions)

        goal.status = GoalStatus.COMPLETED
        if not won:
            self.logger.info(f"Goal {goal.id} completion already recorded elsewhere")
            return False

        goal.completed_at = now
        goal.suggested_next_goals = suggestions
        self.logger.info(f"🎉 Goal {goal.id} completed for student {goal.student_id}")

        if self.on_goal_completed is not None:
            try:
                await self.on_goal_completed(goal)
            except Exception as e:
                self.logger.error(f"Goal completion follow-up failed for {goal.id}: {e}", exc_info=True)
        return True

    # ------------------------------------------------------------------
    # Holistic evaluation
    # ------------------------------------------------------------------

    def accuracy_trend(self, sessions: List[PracticeSessionRecord]) -> str:
        """Compare the newest practice sessions with the ones before them"""
        ordered = sorted(sessions, key=lambda s: s.created_at, reverse=True)
        window = self.policy.trend_window
        recent = ordered[:window]
        older = ordered[window:window * 2]

        if len(recent) < self.policy.trend_min_sessions or len(older) < self.policy.trend_min_sessions:
            return TREND_STABLE

        recent_avg = average_accuracy(recent) or 0.0
        older_avg = average_accuracy(older) or 0.0
        if recent_avg > older_avg + self.policy.trend_deadband:
            return TREND_IMPROVING
        if recent_avg < older_avg - self.policy.trend_deadband:
            return TREND_DECLINING
        return TREND_STABLE

    async def gather_completion_signals(self, goal: LearningGoal) -> CompletionSignals:
        practices = await self.repository.practice_sessions(goal.student_id, goal.subject, since=goal.created_at)

        practice_stats = {}
        if practices:
            avg = average_accuracy(practices)
            practice_stats = {
                "total_sessions": len(practices),
                "average_accuracy": round(avg, 2) if avg is not None else None,
                "total_problems_attempted": sum(p.total_problems for p in practices),
                "recent_accuracy_trend": self.accuracy_trend(practices),
            }

        summaries = await self.repository.session_summaries(
            goal.student_id, goal.subject, since=goal.created_at, limit=self.policy.summary_limit
        )

        profile = await self.repository.get_learning_profile(goal.student_id, goal.subject)
        profile_summary = {}
        if profile is not None:
            profile_summary = {
                "proficiency_level": profile.proficiency_level,
                "strengths": profile.strengths,
                "weaknesses": profile.weaknesses,
            }

        return CompletionSignals(
            goal_title=goal.title,
            goal_subject=goal.subject,
            goal_description=goal.description,
            target_outcome=goal.target_outcome,
            practice_stats=practice_stats,
            session_summaries=summaries,
            learning_profile=profile_summary,
            milestones_completed=len(goal.completed_milestones()),
        )

    async def request_verdict(self, signals: CompletionSignals) -> CompletionEvaluation:
        if self.text_generator is None:
            raise CompletionEvaluationError("No text generator configured for completion evaluation")

        messages = COMPLETION_EVALUATION_PROMPT.format_messages(
            goal_title=signals.goal_title,
            goal_description=signals.goal_description or "",
            target_outcome=signals.target_outcome or "",
            subject=signals.goal_subject,
            practice_stats=json.dumps(signals.practice_stats),
            session_summaries="\n".join(signals.session_summaries),
            learning_profile=json.dumps(signals.learning_profile),
            milestones_completed=signals.milestones_completed,
        )

        try:
            raw = await self.text_generator.generate(messages, response_format=JSON_FORMAT)
        except CollaboratorError as e:
            raise CompletionEvaluationError(f"Completion evaluation unavailable: {e}") from e

        try:
            return CompletionEvaluation.model_validate(raw)
        except ValidationError as e:
            raise CompletionEvaluationError(f"Malformed completion verdict: {e}") from e

    async def evaluate_completion(self, goal: LearningGoal, now: Optional[datetime] = None) -> CompletionEvaluation:
        """
        Ask the language model whether the goal is met and apply the verdict.

        Raises:
            CompletionEvaluationError: the verdict could not be obtained; the goal is left untouched
        """
        signals = await self.gather_completion_signals(goal)
        verdict = await self.request_verdict(signals)

        now = now or datetime.utcnow()
        if verdict.is_complete:
            await self.repository.save_goal_progress(goal.id, 100, now)
            goal.progress_percentage = 100
            if not goal.is_completed:
                await self.complete_goal(goal, now)
        else:
            await self.repository.save_goal_progress(goal.id, verdict.estimated_progress, now)
            goal.progress_percentage = verdict.estimated_progress
        goal.updated_at = now

        self.logger.info(
            f"Completion evaluation for goal {goal.id}: complete={verdict.is_complete} "
            f"progress={goal.progress_percentage}"
        )
        return verdict
