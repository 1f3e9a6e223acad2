"""
Shared fixtures: an in-memory activity repository, fake collaborators
and sample records.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest

from models.domain import (
    ChatMessage,
    Conversation,
    GoalStatus,
    HandoffRecord,
    LearningGoal,
    LearningProfile,
    PracticeSessionRecord,
    StudentRecord,
    SuggestedGoal,
)
from retention.errors import ConversationNotFoundError, GoalNotFoundError, StudentNotFoundError
from services.activity_repository import (
    ActivityRepository,
    CONVERSATION,
    PRACTICE_SESSION,
    TUTORING_SESSION,
)

NOW = datetime(2025, 3, 15, 12, 0, 0)


def _in_window(stamp: datetime, since: Optional[datetime], until: Optional[datetime]) -> bool:
    if since is not None and stamp < since:
        return False
    if until is not None and stamp >= until:
        return False
    return True


@dataclass
class TutoringSessionRow:
    student_id: str
    subject: str
    created_at: datetime
    summary: Optional[str] = None


@dataclass
class ConversationRow:
    conversation: Conversation
    updated_at: datetime
    message_metadata: List[Dict[str, Any]] = field(default_factory=list)


class InMemoryActivityRepository(ActivityRepository):
    """Dict-backed repository with the same semantics as the SQL one"""

    def __init__(self):
        self.students: Dict[str, StudentRecord] = {}
        self.goals: Dict[str, LearningGoal] = {}
        self.tutoring_sessions: List[TutoringSessionRow] = []
        self.practices: Dict[str, List[PracticeSessionRecord]] = {}
        self.conversations: Dict[str, ConversationRow] = {}
        self.profiles: Dict[tuple, LearningProfile] = {}
        self.handoffs: List[HandoffRecord] = []
        self.nudges: List[Dict[str, Any]] = []
        self.complete_calls = 0

    # Seeding helpers

    def add_student(self, student_id: str, enrolled_at: datetime, first_name: Optional[str] = None) -> StudentRecord:
        student = StudentRecord(
            id=student_id, external_id=f"ext-{student_id}", created_at=enrolled_at, first_name=first_name
        )
        self.students[student_id] = student
        return student

    def add_goal(self, goal: LearningGoal) -> LearningGoal:
        self.goals[goal.id] = goal
        return goal

    def add_tutoring_session(self, student_id: str, subject: str, created_at: datetime, summary: Optional[str] = None):
        self.tutoring_sessions.append(TutoringSessionRow(student_id, subject, created_at, summary))

    def add_practice(self, student_id: str, record: PracticeSessionRecord):
        self.practices.setdefault(student_id, []).append(record)

    def add_conversation(self, conversation: Conversation, updated_at: datetime):
        self.conversations[conversation.id] = ConversationRow(conversation, updated_at)

    def add_profile(self, student_id: str, profile: LearningProfile):
        self.profiles[(student_id, profile.subject)] = profile

    # ActivityRepository

    async def get_student(self, student_id: str) -> StudentRecord:
        if student_id not in self.students:
            raise StudentNotFoundError(f"Student {student_id} not found")
        return self.students[student_id]

    async def list_student_ids(self) -> List[str]:
        return sorted(self.students)

    async def count_tutoring_sessions(self, student_id, since=None, until=None, subject=None) -> int:
        return sum(
            1 for row in self.tutoring_sessions
            if row.student_id == student_id
            and _in_window(row.created_at, since, until)
            and (subject is None or row.subject == subject)
        )

    async def count_practice_sessions(self, student_id, since=None, until=None) -> int:
        return sum(1 for p in self.practices.get(student_id, []) if _in_window(p.created_at, since, until))

    async def count_conversations(self, student_id, since=None, until=None) -> int:
        return sum(
            1 for row in self.conversations.values()
            if row.conversation.student_id == student_id and _in_window(row.updated_at, since, until)
        )

    async def count_messages(self, student_id: str, since: datetime) -> int:
        return sum(
            1 for row in self.conversations.values()
            if row.conversation.student_id == student_id
            for message in row.conversation.messages
            if message.created_at >= since
        )

    async def last_activity_times(self, student_id: str) -> Dict[str, Optional[datetime]]:
        sessions = [r.created_at for r in self.tutoring_sessions if r.student_id == student_id]
        practices = [p.created_at for p in self.practices.get(student_id, [])]
        conversations = [
            r.updated_at for r in self.conversations.values() if r.conversation.student_id == student_id
        ]
        return {
            TUTORING_SESSION: max(sessions) if sessions else None,
            PRACTICE_SESSION: max(practices) if practices else None,
            CONVERSATION: max(conversations) if conversations else None,
        }

    async def active_goals(self, student_id: str) -> List[LearningGoal]:
        return [
            copy.deepcopy(g) for g in self.goals.values()
            if g.student_id == student_id and g.status == GoalStatus.ACTIVE
        ]

    async def latest_goal(self, student_id: str) -> Optional[LearningGoal]:
        goals = [g for g in self.goals.values() if g.student_id == student_id]
        if not goals:
            return None
        return copy.deepcopy(max(goals, key=lambda g: g.created_at))

    async def get_goal(self, goal_id: str) -> LearningGoal:
        if goal_id not in self.goals:
            raise GoalNotFoundError(f"Goal {goal_id} not found")
        return copy.deepcopy(self.goals[goal_id])

    async def save_goal_progress(self, goal_id: str, progress_percentage: int, updated_at: datetime):
        goal = self.goals[goal_id]
        goal.progress_percentage = progress_percentage
        goal.updated_at = updated_at

    async def complete_goal(self, goal_id: str, completed_at: datetime, suggestions: List[SuggestedGoal]) -> bool:
        self.complete_calls += 1
        goal = self.goals[goal_id]
        if goal.status == GoalStatus.COMPLETED:
            return False
        goal.status = GoalStatus.COMPLETED
        goal.completed_at = completed_at
        goal.suggested_next_goals = list(suggestions)
        goal.updated_at = completed_at
        return True

    async def practice_sessions(self, student_id: str, subject: str, since: Optional[datetime] = None):
        rows = [
            p for p in self.practices.get(student_id, [])
            if p.subject == subject and _in_window(p.created_at, since, None)
        ]
        return sorted(rows, key=lambda p: p.created_at, reverse=True)

    async def session_summaries(self, student_id: str, subject: str, since: datetime, limit: int = 5) -> List[str]:
        rows = sorted(
            (
                r for r in self.tutoring_sessions
                if r.student_id == student_id and r.subject == subject
                and r.created_at >= since and r.summary is not None
            ),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return [r.summary for r in rows[:limit]]

    async def get_learning_profile(self, student_id: str, subject: Optional[str]) -> Optional[LearningProfile]:
        return self.profiles.get((student_id, subject))

    async def get_conversation(self, conversation_id: str) -> Conversation:
        if conversation_id not in self.conversations:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return copy.deepcopy(self.conversations[conversation_id].conversation)

    async def append_message(self, conversation_id, role, content, metadata=None):
        row = self.conversations[conversation_id]
        row.conversation.messages.append(ChatMessage(role=role, content=content, created_at=datetime.utcnow()))
        row.message_metadata.append(metadata or {})

    async def record_handoff(self, record: HandoffRecord):
        self.handoffs.append(record)

    async def record_nudge(self, student_id, nudge_type, content, sent_at):
        self.nudges.append({
            "student_id": student_id,
            "nudge_type": nudge_type,
            "content": content,
            "sent_at": sent_at,
        })


class FakeLLM:
    """Stands in for a LangChain chat model"""

    def __init__(self, content: Any = "", error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: List[Any] = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return type("AIMessage", (), {"content": self.content})()


class FakeClaims:
    """In-memory stand-in for the Redis claim helpers"""

    def __init__(self):
        self.keys: Dict[str, int] = {}
        self.released: List[str] = []
        self.published: List[tuple] = []

    async def claim_once(self, key: str, ttl_seconds: int) -> bool:
        if key in self.keys:
            return False
        self.keys[key] = ttl_seconds
        return True

    async def release(self, key: str):
        self.keys.pop(key, None)
        self.released.append(key)

    async def publish_event(self, channel: str, message: dict):
        self.published.append((channel, message))


def user(content: str, minutes: int = 0) -> ChatMessage:
    return ChatMessage(role="user", content=content, created_at=NOW - timedelta(minutes=60 - minutes))


def assistant(content: str, minutes: int = 0) -> ChatMessage:
    return ChatMessage(role="assistant", content=content, created_at=NOW - timedelta(minutes=60 - minutes))


@pytest.fixture
def repository():
    return InMemoryActivityRepository()


@pytest.fixture
def claims():
    return FakeClaims()


@pytest.fixture
def chemistry_goal():
    return LearningGoal(
        id="goal_1",
        student_id="student_123",
        subject="chemistry",
        title="Master stoichiometry",
        created_at=NOW - timedelta(days=20),
        updated_at=NOW - timedelta(days=1),
        progress_percentage=85,
        description="Balance equations and compute yields",
        target_outcome="Score 90% on unit test",
    )


@pytest.fixture
def factoring_conversation():
    """Five student messages, three asking the same factoring question"""
    return Conversation(
        id="conv_1",
        student_id="student_123",
        subject="algebra",
        messages=[
            user("how do I factor x^2-9?", 1),
            assistant("Look for a difference of squares.", 2),
            user("what is a polynomial?", 3),
            assistant("An expression with several terms.", 4),
            user("how do I factor x^2-9 again?", 5),
            assistant("Write it as (x-3)(x+3).", 6),
            user("thanks for the help", 7),
            assistant("You're welcome.", 8),
            user("so how do I factor x^2-9?", 9),
        ],
    )
