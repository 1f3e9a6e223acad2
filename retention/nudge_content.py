"""
Nudge Content Builder

Turns a resolved nudge type into user-facing copy. Templates are fixed per
type; placeholders are filled from engagement and goal data, and any
reference whose data is missing is dropped from the copy.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from models.domain import NudgeContent
from retention.nudge_types import NudgeType, NUDGE_CONFIGS


@dataclass
class NudgeContext:
    """Data available for filling nudge templates"""
    student_name: Optional[str] = None
    days_inactive: Optional[int] = None
    stalled_goal_title: Optional[str] = None
    stalled_goal_subject: Optional[str] = None
    completed_goal_title: Optional[str] = None
    completed_goal_id: Optional[str] = None


class NudgeContentBuilder:
    """Fills the per-type nudge templates"""

    def __init__(self):
        self.logger = logging.getLogger("NudgeContentBuilder")

    def build(self, nudge_type: NudgeType, context: Optional[NudgeContext] = None) -> NudgeContent:
        context = context or NudgeContext()
        nudge_type = NudgeType(nudge_type)
        config = NUDGE_CONFIGS[nudge_type]

        renderers = {
            NudgeType.NEW_STUDENT_SESSIONS: self._new_student_copy,
            NudgeType.INACTIVE_REMINDER: self._inactive_copy,
            NudgeType.DECLINING_ENGAGEMENT: self._declining_copy,
            NudgeType.GOAL_STALLED: self._goal_stalled_copy,
            NudgeType.GENERAL_ENCOURAGEMENT: self._encouragement_copy,
            NudgeType.GOAL_COMPLETED_FOLLOWUP: self._followup_copy,
        }
        title, message, cta_data = renderers[nudge_type](context)

        return NudgeContent(
            nudge_type=nudge_type.value,
            title=title,
            message=message,
            cta=config.cta,
            cta_action=config.cta_action.value,
            priority=config.priority.value,
            cta_data=cta_data,
        )

    @staticmethod
    def _greeting(context: NudgeContext, fallback: str) -> str:
        if context.student_name:
            return f"{fallback}, {context.student_name}"
        return fallback

    def _new_student_copy(self, context: NudgeContext):
        title = f"{self._greeting(context, 'Keep the momentum going')}! 🚀"
        message = (
            "Students who have 3+ sessions in their first week see 2x better results. "
            "Book your next session to stay on track!"
        )
        return title, message, {}

    def _inactive_copy(self, context: NudgeContext):
        title = f"{self._greeting(context, 'We miss you')}! 👋"
        if context.days_inactive is not None:
            lead = f"It's been {context.days_inactive} days since your last activity."
        else:
            lead = "It's been a while since your last activity."
        message = f"{lead} Your AI companion is ready to help you practice anytime!"
        return title, message, {}

    def _declining_copy(self, context: NudgeContext):
        title = f"{self._greeting(context, 'Need a hand')}? 🤝"
        message = (
            "We noticed you've been less active lately. Is there something we can help with? "
            "A quick practice session can help you get back on track."
        )
        return title, message, {}

    def _goal_stalled_copy(self, context: NudgeContext):
        title = f"{self._greeting(context, 'Let’s get you unstuck')}! 💪"
        if context.stalled_goal_title:
            lead = f"Your goal '{context.stalled_goal_title}' hasn't seen progress in a while."
        else:
            self.logger.debug("Stalled-goal nudge built without a goal reference")
            lead = "One of your goals hasn't seen progress in a while."
        message = f"{lead} A tutor session could help break through!"

        cta_data: Dict[str, Any] = {}
        if context.stalled_goal_subject:
            cta_data["subject"] = context.stalled_goal_subject
        return title, message, cta_data

    def _encouragement_copy(self, context: NudgeContext):
        title = f"{self._greeting(context, 'You’re doing great')}! 🌟"
        message = "Every bit of practice counts. Your AI companion has some new questions ready for you!"
        return title, message, {}

    def _followup_copy(self, context: NudgeContext):
        title = f"{self._greeting(context, 'What’s next')}? 🎯"
        if context.completed_goal_title:
            lead = f"You completed '{context.completed_goal_title}'."
        else:
            lead = "You completed a goal recently."
        message = f"{lead} Setting your next goal keeps the streak alive. We've picked a few subjects for you."

        cta_data: Dict[str, Any] = {}
        if context.completed_goal_id:
            cta_data["completed_goal_id"] = context.completed_goal_id
        return title, message, cta_data
