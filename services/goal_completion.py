"""
Goal Completion Handler

Runs once for each goal that becomes completed: congratulates the student
with next-subject suggestions, publishes a completion event and logs an
analytics record.
"""

import json
import logging
from typing import Optional

from config.redis_client import RedisClient
from models.domain import LearningGoal
from retention.subject_recommendations import get_recommendations
from services.activity_repository import ActivityRepository
from services.metrics import MetricsSink, NullMetricsSink
from services.platform_client import PlatformClient

GOAL_COMPLETED = "goal_completed"
RETENTION_EVENTS_CHANNEL = "retention:events"


class GoalCompletionHandler:
    """Follow-up actions for a newly completed goal"""

    def __init__(
        self,
        repository: ActivityRepository,
        platform: PlatformClient,
        events: Optional[RedisClient] = None,
        metrics: Optional[MetricsSink] = None,
    ):
        self.repository = repository
        self.platform = platform
        self.events = events
        self.metrics = metrics or NullMetricsSink()
        self.logger = logging.getLogger("GoalCompletionHandler")

    async def __call__(self, goal: LearningGoal):
        await self.handle(goal)

    async def handle(self, goal: LearningGoal):
        student = await self.repository.get_student(goal.student_id)
        recommendations = get_recommendations(goal.subject)

        sent = await self.platform.send_notification(
            student_id=student.external_id,
            notification_type=GOAL_COMPLETED,
            title=f"🎉 Goal Achieved: {goal.title}!",
            message=recommendations.message,
            data={
                "goal_id": goal.id,
                "subject": goal.subject,
                "next_subjects": list(recommendations.next_subjects),
                "cta_type": "explore_subjects",
            },
        )
        if not sent:
            self.logger.warning(f"Completion notification for goal {goal.id} was not delivered")

        if self.events is not None:
            await self.events.publish_event(RETENTION_EVENTS_CHANNEL, {
                "type": GOAL_COMPLETED,
                "student_id": student.id,
                "goal_id": goal.id,
                "goal_title": goal.title,
                "subject": goal.subject,
                "suggested_next": [s.to_dict() for s in goal.suggested_next_goals],
            })

        self.track_completion(goal)

    def track_completion(self, goal: LearningGoal):
        completed_at = goal.completed_at or goal.updated_at
        days_to_complete = (completed_at.date() - goal.created_at.date()).days

        self.logger.info(json.dumps({
            "event": GOAL_COMPLETED,
            "student_id": goal.student_id,
            "goal_id": goal.id,
            "subject": goal.subject,
            "days_to_complete": days_to_complete,
        }))
        self.metrics.increment("goals.completed", tags={"subject": goal.subject})
        self.metrics.observe("goals.days_to_complete", days_to_complete)
