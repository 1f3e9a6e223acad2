"""
Nudge Types Configuration

Defines nudge type configurations including priorities,
calls to action, and trigger descriptions.
"""

from enum import Enum
from dataclasses import dataclass


class NudgeType(str, Enum):
    """Available nudge types"""
    NEW_STUDENT_SESSIONS = "new_student_sessions"
    INACTIVE_REMINDER = "inactive_reminder"
    DECLINING_ENGAGEMENT = "declining_engagement"
    GOAL_STALLED = "goal_stalled"
    GENERAL_ENCOURAGEMENT = "general_encouragement"
    GOAL_COMPLETED_FOLLOWUP = "goal_completed_followup"


class NudgePriority(str, Enum):
    """Nudge priority levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CtaAction(str, Enum):
    """Client-side actions a nudge button can trigger"""
    BOOK_SESSION = "book_session"
    OPEN_PRACTICE = "open_practice"
    OPEN_COMPANION = "open_companion"
    EXPLORE_SUBJECTS = "explore_subjects"


@dataclass(frozen=True)
class NudgeConfig:
    """Configuration for a nudge type"""
    type: NudgeType
    priority: NudgePriority
    cta: str
    cta_action: CtaAction
    description: str


NUDGE_CONFIGS = {
    NudgeType.NEW_STUDENT_SESSIONS: NudgeConfig(
        type=NudgeType.NEW_STUDENT_SESSIONS,
        priority=NudgePriority.HIGH,
        cta="Book a Session",
        cta_action=CtaAction.BOOK_SESSION,
        description="Student is in their second week with fewer than three tutoring sessions"
    ),

    NudgeType.INACTIVE_REMINDER: NudgeConfig(
        type=NudgeType.INACTIVE_REMINDER,
        priority=NudgePriority.MEDIUM,
        cta="Start Practicing",
        cta_action=CtaAction.OPEN_PRACTICE,
        description="No activity of any kind for a week or more"
    ),

    NudgeType.DECLINING_ENGAGEMENT: NudgeConfig(
        type=NudgeType.DECLINING_ENGAGEMENT,
        priority=NudgePriority.MEDIUM,
        cta="Quick Practice",
        cta_action=CtaAction.OPEN_PRACTICE,
        description="Activity over the last two weeks fell below half of the two weeks before"
    ),

    NudgeType.GOAL_STALLED: NudgeConfig(
        type=NudgeType.GOAL_STALLED,
        priority=NudgePriority.HIGH,
        cta="Book Tutor Session",
        cta_action=CtaAction.BOOK_SESSION,
        description="An unfinished active goal has not moved for two weeks"
    ),

    NudgeType.GENERAL_ENCOURAGEMENT: NudgeConfig(
        type=NudgeType.GENERAL_ENCOURAGEMENT,
        priority=NudgePriority.LOW,
        cta="Start Learning",
        cta_action=CtaAction.OPEN_COMPANION,
        description="Overall engagement score is below the encouragement threshold"
    ),

    NudgeType.GOAL_COMPLETED_FOLLOWUP: NudgeConfig(
        type=NudgeType.GOAL_COMPLETED_FOLLOWUP,
        priority=NudgePriority.MEDIUM,
        cta="Set a New Goal",
        cta_action=CtaAction.EXPLORE_SUBJECTS,
        description="A goal was completed and no new goal has been set since"
    ),
}
