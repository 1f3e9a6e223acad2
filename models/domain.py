"""
Domain Records

Plain dataclasses for the learning records the retention engine reads,
the activity snapshot it scores, and the progress signals it blends.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class GoalStatus(str, Enum):
    """Learning goal lifecycle states"""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"

    @property
    def code(self) -> int:
        """Integer code used by the learning_goals.status column"""
        return _GOAL_STATUS_CODES[self]

    @classmethod
    def from_code(cls, code: int) -> "GoalStatus":
        for status, value in _GOAL_STATUS_CODES.items():
            if value == code:
                return status
        raise ValueError(f"Unknown goal status code: {code}")


_GOAL_STATUS_CODES = {
    GoalStatus.PENDING: 0,
    GoalStatus.ACTIVE: 1,
    GoalStatus.COMPLETED: 2,
    GoalStatus.PAUSED: 3,
}


@dataclass
class StudentRecord:
    id: str
    external_id: str
    created_at: datetime
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.first_name or "there"


@dataclass
class Milestone:
    id: str
    title: str
    completed: bool = False


@dataclass
class SuggestedGoal:
    subject: str
    reason: str
    priority: int

    def to_dict(self) -> Dict[str, Any]:
        return {"subject": self.subject, "reason": self.reason, "priority": self.priority}


@dataclass
class LearningGoal:
    """A student's learning goal and its computed progress"""
    id: str
    student_id: str
    subject: str
    title: str
    created_at: datetime
    updated_at: datetime
    status: GoalStatus = GoalStatus.ACTIVE
    progress_percentage: int = 0
    milestones: List[Milestone] = field(default_factory=list)
    completed_at: Optional[datetime] = None
    suggested_next_goals: List[SuggestedGoal] = field(default_factory=list)
    description: Optional[str] = None
    target_outcome: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == GoalStatus.COMPLETED

    def completed_milestones(self) -> List[Milestone]:
        return [m for m in self.milestones if m.completed]


@dataclass
class PracticeSessionRecord:
    id: str
    subject: str
    correct_answers: int
    total_problems: int
    created_at: datetime

    @property
    def accuracy(self) -> Optional[float]:
        if not self.total_problems:
            return None
        return self.correct_answers / self.total_problems


@dataclass
class LearningProfile:
    subject: str
    proficiency_level: int
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)


@dataclass
class ChatMessage:
    role: str  # user or assistant
    content: str
    created_at: datetime


@dataclass
class Conversation:
    id: str
    student_id: str
    subject: Optional[str]
    messages: List[ChatMessage] = field(default_factory=list)

    def user_messages(self) -> List[ChatMessage]:
        return [m for m in self.messages if m.role == "user"]

    def assistant_messages(self) -> List[ChatMessage]:
        return [m for m in self.messages if m.role == "assistant"]


# ============================================================================
# Engagement snapshot
# ============================================================================

@dataclass
class ActivityWindow:
    """Activity counts inside one time window"""
    tutoring_sessions: int = 0
    practice_sessions: int = 0
    conversations: int = 0

    def weighted_activity(self) -> int:
        return self.tutoring_sessions * 3 + self.practice_sessions * 2 + self.conversations


@dataclass
class ActiveGoalSummary:
    id: str
    title: str
    subject: str
    progress_percentage: int
    updated_at: datetime


@dataclass
class ActivitySnapshot:
    """Everything the engagement scorer reads for one student at one instant"""
    student_id: str
    as_of: datetime
    enrolled_at: datetime
    tutoring_sessions_last_30_days: int = 0
    practice_sessions_last_14_days: int = 0
    conversations_last_7_days: int = 0
    messages_last_7_days: int = 0
    tutoring_sessions_since_enrollment: int = 0
    last_tutoring_session_at: Optional[datetime] = None
    last_practice_session_at: Optional[datetime] = None
    last_conversation_at: Optional[datetime] = None
    active_goals: List[ActiveGoalSummary] = field(default_factory=list)
    recent_window: ActivityWindow = field(default_factory=ActivityWindow)
    previous_window: ActivityWindow = field(default_factory=ActivityWindow)

    @property
    def last_activity_at(self) -> Optional[datetime]:
        stamps = [
            stamp for stamp in (
                self.last_tutoring_session_at,
                self.last_practice_session_at,
                self.last_conversation_at,
            )
            if stamp is not None
        ]
        return max(stamps) if stamps else None

    @property
    def days_since_enrollment(self) -> int:
        return (self.as_of.date() - self.enrolled_at.date()).days

    def days_since_last_activity(self) -> Optional[int]:
        last = self.last_activity_at
        if last is None:
            return None
        return (self.as_of.date() - last.date()).days


@dataclass
class EngagementScore:
    overall: int
    component_scores: Dict[str, float]
    weights: Dict[str, float]


@dataclass
class NudgeContent:
    nudge_type: str
    title: str
    message: str
    cta: str
    cta_action: str
    priority: str
    cta_data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.nudge_type,
            "title": self.title,
            "message": self.message,
            "cta": self.cta,
            "cta_action": self.cta_action,
            "cta_data": self.cta_data,
            "priority": self.priority,
        }


@dataclass
class NudgeDecision:
    needed: bool
    nudge_type: Optional[str] = None
    content: Optional[NudgeContent] = None


# ============================================================================
# Goal progress signals
# ============================================================================

@dataclass(frozen=True)
class SessionAnalysisSignal:
    """Comprehension score (0-10) from a just-analysed tutoring session"""
    comprehension_score: float


@dataclass(frozen=True)
class PracticeSessionSignal:
    """Result of a just-completed practice session"""
    correct_answers: int
    total_problems: int


@dataclass(frozen=True)
class HistoricalPracticeSignal:
    """Average practice accuracy (0-1) for the goal's subject in the history window"""
    average_accuracy: float


@dataclass(frozen=True)
class SessionCountSignal:
    """Tutoring sessions for the goal's subject since the goal was created"""
    session_count: int


ProgressSignal = Union[
    SessionAnalysisSignal,
    PracticeSessionSignal,
    HistoricalPracticeSignal,
    SessionCountSignal,
]


@dataclass
class ProgressUpdate:
    goal_id: str
    progress_percentage: int
    completed: bool
    newly_completed: bool = False


@dataclass
class CompletionSignals:
    """Evidence gathered for the holistic completion judgment"""
    goal_title: str
    goal_subject: str
    goal_description: Optional[str]
    target_outcome: Optional[str]
    practice_stats: Dict[str, Any]
    session_summaries: List[str]
    learning_profile: Dict[str, Any]
    milestones_completed: int


# ============================================================================
# Tutor handoff
# ============================================================================

@dataclass
class TutorSlot:
    tutor_id: str
    tutor_name: str
    datetime: str
    duration: Optional[int] = None


@dataclass
class HandoffRecord:
    student_id: str
    conversation_id: str
    tutor_external_id: str
    subject: Optional[str]
    escalation_reasons: List[str]
    context_summary: str
    focus_areas: List[str]
    booking_external_id: Optional[str]
    scheduled_at: datetime
