"""
Nudge Dispatcher

Delivers retention nudges through the tutoring platform, at most once per
student and nudge type inside the de-duplication window.
"""

from datetime import datetime
from typing import Optional
import logging

from config.redis_client import RedisClient
from models.domain import NudgeDecision, StudentRecord
from retention.policy import NudgePolicy
from services.activity_repository import ActivityRepository
from services.metrics import MetricsSink, NullMetricsSink
from services.platform_client import PlatformClient


class NotificationDispatcher:
    """Sends nudge decisions to students"""

    def __init__(
        self,
        repository: ActivityRepository,
        platform: PlatformClient,
        claims: RedisClient,
        policy: Optional[NudgePolicy] = None,
        metrics: Optional[MetricsSink] = None,
    ):
        self.repository = repository
        self.platform = platform
        self.claims = claims
        self.policy = policy or NudgePolicy()
        self.metrics = metrics or NullMetricsSink()
        self.logger = logging.getLogger("NotificationDispatcher")

    @staticmethod
    def claim_key(student_id: str, nudge_type: str) -> str:
        return f"nudge:{student_id}:{nudge_type}"

    async def dispatch(self, student: StudentRecord, decision: NudgeDecision, now: Optional[datetime] = None) -> bool:
        """
        Send a nudge if one is needed and none of the same type went out recently.

        Returns:
            True if a notification was delivered
        """
        if not decision.needed or decision.content is None:
            return False

        key = self.claim_key(student.id, decision.nudge_type)
        if not await self.claims.claim_once(key, self.policy.dedup_seconds):
            self.logger.info(f"Nudge {decision.nudge_type} already sent to {student.id} recently, skipping")
            self.metrics.increment("nudges.deduplicated", tags={"type": decision.nudge_type})
            return False

        content = decision.content
        sent = await self.platform.send_notification(
            student_id=student.external_id,
            notification_type=decision.nudge_type,
            title=content.title,
            message=content.message,
            data={
                "cta": content.cta,
                "cta_action": content.cta_action,
                "cta_data": content.cta_data,
            },
        )

        if not sent:
            # Let the next run retry
            await self.claims.release(key)
            self.logger.warning(f"❌ Nudge {decision.nudge_type} delivery failed for {student.id}")
            self.metrics.increment("nudges.failed", tags={"type": decision.nudge_type})
            return False

        await self.repository.record_nudge(
            student.id, decision.nudge_type, content.to_dict(), now or datetime.utcnow()
        )
        self.logger.info(f"📤 Nudge {decision.nudge_type} sent to {student.id}")
        self.metrics.increment("nudges.sent", tags={"type": decision.nudge_type})
        return True
