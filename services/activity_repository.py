"""
Activity Repository

Read access to per-student learning activity, plus the few field updates the
retention engine performs (goal progress/status, nudges, hand-offs, messages).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import json
import logging

from sqlalchemy import text

from config.database import get_async_db
from models.domain import (
    ActiveGoalSummary,
    ActivitySnapshot,
    ActivityWindow,
    ChatMessage,
    Conversation,
    GoalStatus,
    HandoffRecord,
    LearningGoal,
    LearningProfile,
    Milestone,
    PracticeSessionRecord,
    StudentRecord,
    SuggestedGoal,
)
from retention.errors import ConversationNotFoundError, GoalNotFoundError, StudentNotFoundError
from retention.policy import EngagementPolicy

TUTORING_SESSION = "tutoring_session"
PRACTICE_SESSION = "practice_session"
CONVERSATION = "conversation"


class ActivityRepository(ABC):
    """Persistence collaborator consumed by the retention engine"""

    @abstractmethod
    async def get_student(self, student_id: str) -> StudentRecord:
        """Raises StudentNotFoundError when missing"""

    @abstractmethod
    async def list_student_ids(self) -> List[str]:
        pass

    @abstractmethod
    async def count_tutoring_sessions(
        self,
        student_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        subject: Optional[str] = None
    ) -> int:
        pass

    @abstractmethod
    async def count_practice_sessions(
        self,
        student_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> int:
        pass

    @abstractmethod
    async def count_conversations(
        self,
        student_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> int:
        """Conversations whose updated_at falls in the window"""

    @abstractmethod
    async def count_messages(self, student_id: str, since: datetime) -> int:
        pass

    @abstractmethod
    async def last_activity_times(self, student_id: str) -> Dict[str, Optional[datetime]]:
        """Latest timestamp per activity type (tutoring_session, practice_session, conversation)"""

    @abstractmethod
    async def active_goals(self, student_id: str) -> List[LearningGoal]:
        pass

    @abstractmethod
    async def latest_goal(self, student_id: str) -> Optional[LearningGoal]:
        """Most recently created goal in any status, or None"""

    @abstractmethod
    async def get_goal(self, goal_id: str) -> LearningGoal:
        """Raises GoalNotFoundError when missing"""

    @abstractmethod
    async def save_goal_progress(self, goal_id: str, progress_percentage: int, updated_at: datetime):
        pass

    @abstractmethod
    async def complete_goal(
        self,
        goal_id: str,
        completed_at: datetime,
        suggestions: List[SuggestedGoal]
    ) -> bool:
        """
        Compare-and-set the goal to completed.

        Returns:
            True only for the call that moved the goal out of a non-completed state
        """

    @abstractmethod
    async def practice_sessions(
        self,
        student_id: str,
        subject: str,
        since: Optional[datetime] = None
    ) -> List[PracticeSessionRecord]:
        """Practice sessions for a subject, newest first"""

    @abstractmethod
    async def session_summaries(
        self,
        student_id: str,
        subject: str,
        since: datetime,
        limit: int = 5
    ) -> List[str]:
        pass

    @abstractmethod
    async def get_learning_profile(self, student_id: str, subject: Optional[str]) -> Optional[LearningProfile]:
        pass

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Raises ConversationNotFoundError when missing"""

    @abstractmethod
    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        pass

    @abstractmethod
    async def record_handoff(self, record: HandoffRecord):
        pass

    @abstractmethod
    async def record_nudge(self, student_id: str, nudge_type: str, content: Dict[str, Any], sent_at: datetime):
        pass


async def collect_activity_snapshot(
    repository: ActivityRepository,
    student_id: str,
    as_of: datetime,
    policy: Optional[EngagementPolicy] = None
) -> ActivitySnapshot:
    """
    Gather the aggregates the engagement scorer reads.

    Args:
        repository: Activity repository
        student_id: Student identifier
        as_of: Evaluation instant
        policy: Window sizes (defaults to the production policy)

    Returns:
        ActivitySnapshot for the student at as_of
    """
    policy = policy or EngagementPolicy()
    student = await repository.get_student(student_id)

    decline_start = as_of - timedelta(days=policy.decline_window_days)
    previous_start = decline_start - timedelta(days=policy.decline_window_days)

    last_times = await repository.last_activity_times(student_id)
    goals = await repository.active_goals(student_id)

    return ActivitySnapshot(
        student_id=student_id,
        as_of=as_of,
        enrolled_at=student.created_at,
        tutoring_sessions_last_30_days=await repository.count_tutoring_sessions(
            student_id, since=as_of - timedelta(days=policy.session_window_days)
        ),
        practice_sessions_last_14_days=await repository.count_practice_sessions(
            student_id, since=as_of - timedelta(days=policy.practice_window_days)
        ),
        conversations_last_7_days=await repository.count_conversations(
            student_id, since=as_of - timedelta(days=policy.conversation_window_days)
        ),
        messages_last_7_days=await repository.count_messages(
            student_id, since=as_of - timedelta(days=policy.conversation_window_days)
        ),
        tutoring_sessions_since_enrollment=await repository.count_tutoring_sessions(
            student_id, since=student.created_at
        ),
        last_tutoring_session_at=last_times.get(TUTORING_SESSION),
        last_practice_session_at=last_times.get(PRACTICE_SESSION),
        last_conversation_at=last_times.get(CONVERSATION),
        active_goals=[
            ActiveGoalSummary(
                id=goal.id,
                title=goal.title,
                subject=goal.subject,
                progress_percentage=goal.progress_percentage,
                updated_at=goal.updated_at,
            )
            for goal in goals
        ],
        recent_window=ActivityWindow(
            tutoring_sessions=await repository.count_tutoring_sessions(student_id, since=decline_start, until=as_of),
            practice_sessions=await repository.count_practice_sessions(student_id, since=decline_start, until=as_of),
            conversations=await repository.count_conversations(student_id, since=decline_start, until=as_of),
        ),
        previous_window=ActivityWindow(
            tutoring_sessions=await repository.count_tutoring_sessions(
                student_id, since=previous_start, until=decline_start
            ),
            practice_sessions=await repository.count_practice_sessions(
                student_id, since=previous_start, until=decline_start
            ),
            conversations=await repository.count_conversations(
                student_id, since=previous_start, until=decline_start
            ),
        ),
    )


# ============================================================================
# PostgreSQL implementation
# ============================================================================

def _load_json(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default
    return value


def _window_clause(column: str, since: Optional[datetime], until: Optional[datetime], params: Dict[str, Any]) -> str:
    clauses = []
    if since is not None:
        clauses.append(f"{column} >= :since")
        params["since"] = since
    if until is not None:
        clauses.append(f"{column} < :until")
        params["until"] = until
    return "".join(f" AND {clause}" for clause in clauses)


class SqlActivityRepository(ActivityRepository):
    """Activity repository backed by the application's PostgreSQL tables"""

    def __init__(self, session_scope: Callable = get_async_db):
        self.session_scope = session_scope
        self.logger = logging.getLogger("SqlActivityRepository")

    async def _fetch_all(self, query: str, params: Dict[str, Any]):
        async with self.session_scope() as db:
            result = await db.execute(text(query), params)
            return result.fetchall()

    async def _fetch_one(self, query: str, params: Dict[str, Any]):
        async with self.session_scope() as db:
            result = await db.execute(text(query), params)
            return result.fetchone()

    async def _scalar(self, query: str, params: Dict[str, Any]) -> int:
        row = await self._fetch_one(query, params)
        return int(row[0] or 0) if row else 0

    async def get_student(self, student_id: str) -> StudentRecord:
        row = await self._fetch_one(
            """
            SELECT id, external_id, first_name, last_name, created_at
            FROM students
            WHERE id = :student_id
            """,
            {"student_id": student_id}
        )
        if row is None:
            raise StudentNotFoundError(f"Student {student_id} not found")
        return StudentRecord(
            id=str(row[0]),
            external_id=row[1],
            first_name=row[2],
            last_name=row[3],
            created_at=row[4],
        )

    async def list_student_ids(self) -> List[str]:
        rows = await self._fetch_all("SELECT id FROM students ORDER BY id", {})
        return [str(row[0]) for row in rows]

    async def count_tutoring_sessions(self, student_id, since=None, until=None, subject=None) -> int:
        params: Dict[str, Any] = {"student_id": student_id}
        query = "SELECT COUNT(*) FROM tutoring_sessions WHERE student_id = :student_id"
        query += _window_clause("created_at", since, until, params)
        if subject is not None:
            query += " AND subject = :subject"
            params["subject"] = subject
        return await self._scalar(query, params)

    async def count_practice_sessions(self, student_id, since=None, until=None) -> int:
        params: Dict[str, Any] = {"student_id": student_id}
        query = "SELECT COUNT(*) FROM practice_sessions WHERE student_id = :student_id"
        query += _window_clause("created_at", since, until, params)
        return await self._scalar(query, params)

    async def count_conversations(self, student_id, since=None, until=None) -> int:
        params: Dict[str, Any] = {"student_id": student_id}
        query = "SELECT COUNT(*) FROM conversations WHERE student_id = :student_id"
        query += _window_clause("updated_at", since, until, params)
        return await self._scalar(query, params)

    async def count_messages(self, student_id: str, since: datetime) -> int:
        return await self._scalar(
            """
            SELECT COUNT(*)
            FROM messages m
            JOIN conversations c ON c.id = m.conversation_id
            WHERE c.student_id = :student_id
            AND m.created_at >= :since
            """,
            {"student_id": student_id, "since": since}
        )

    async def last_activity_times(self, student_id: str) -> Dict[str, Optional[datetime]]:
        row = await self._fetch_one(
            """
            SELECT
                (SELECT MAX(created_at) FROM tutoring_sessions WHERE student_id = :student_id),
                (SELECT MAX(created_at) FROM practice_sessions WHERE student_id = :student_id),
                (SELECT MAX(updated_at) FROM conversations WHERE student_id = :student_id)
            """,
            {"student_id": student_id}
        )
        row = row or (None, None, None)
        return {
            TUTORING_SESSION: row[0],
            PRACTICE_SESSION: row[1],
            CONVERSATION: row[2],
        }

    _GOAL_COLUMNS = """
        id, student_id, subject, title, status, progress_percentage, milestones,
        created_at, updated_at, completed_at, suggested_next_goals, description, target_outcome
    """

    def _row_to_goal(self, row) -> LearningGoal:
        milestones = [
            Milestone(id=str(m.get("id", "")), title=m.get("title", ""), completed=bool(m.get("completed")))
            for m in _load_json(row[6], [])
            if isinstance(m, dict)
        ]
        suggestions = [
            SuggestedGoal(subject=s.get("subject", ""), reason=s.get("reason", ""), priority=int(s.get("priority", 99)))
            for s in _load_json(row[10], [])
            if isinstance(s, dict)
        ]
        return LearningGoal(
            id=str(row[0]),
            student_id=str(row[1]),
            subject=row[2],
            title=row[3],
            status=GoalStatus.from_code(row[4]),
            progress_percentage=int(row[5] or 0),
            milestones=milestones,
            created_at=row[7],
            updated_at=row[8],
            completed_at=row[9],
            suggested_next_goals=suggestions,
            description=row[11],
            target_outcome=row[12],
        )

    async def active_goals(self, student_id: str) -> List[LearningGoal]:
        rows = await self._fetch_all(
            f"""
            SELECT {self._GOAL_COLUMNS}
            FROM learning_goals
            WHERE student_id = :student_id
            AND status = :active
            ORDER BY updated_at ASC
            """,
            {"student_id": student_id, "active": GoalStatus.ACTIVE.code}
        )
        return [self._row_to_goal(row) for row in rows]

    async def latest_goal(self, student_id: str) -> Optional[LearningGoal]:
        row = await self._fetch_one(
            f"""
            SELECT {self._GOAL_COLUMNS}
            FROM learning_goals
            WHERE student_id = :student_id
            ORDER BY created_at DESC
            LIMIT 1
            """,
            {"student_id": student_id}
        )
        return self._row_to_goal(row) if row is not None else None

    async def get_goal(self, goal_id: str) -> LearningGoal:
        row = await self._fetch_one(
            f"SELECT {self._GOAL_COLUMNS} FROM learning_goals WHERE id = :goal_id",
            {"goal_id": goal_id}
        )
        if row is None:
            raise GoalNotFoundError(f"Goal {goal_id} not found")
        return self._row_to_goal(row)

    async def save_goal_progress(self, goal_id: str, progress_percentage: int, updated_at: datetime):
        async with self.session_scope() as db:
            await db.execute(
                text("""
                    UPDATE learning_goals
                    SET progress_percentage = :progress, updated_at = :updated_at
                    WHERE id = :goal_id
                """),
                {"goal_id": goal_id, "progress": progress_percentage, "updated_at": updated_at}
            )

    async def complete_goal(self, goal_id: str, completed_at: datetime, suggestions: List[SuggestedGoal]) -> bool:
        async with self.session_scope() as db:
            result = await db.execute(
                text("""
                    UPDATE learning_goals
                    SET status = :completed,
                        completed_at = :completed_at,
                        suggested_next_goals = CAST(:suggestions AS jsonb),
                        updated_at = :completed_at
                    WHERE id = :goal_id
                    AND status <> :completed
                """),
                {
                    "goal_id": goal_id,
                    "completed": GoalStatus.COMPLETED.code,
                    "completed_at": completed_at,
                    "suggestions": json.dumps([s.to_dict() for s in suggestions]),
                }
            )
            won = result.rowcount == 1

        if not won:
            self.logger.info(f"Goal {goal_id} was already completed; skipping completion")
        return won

    async def practice_sessions(self, student_id: str, subject: str, since: Optional[datetime] = None):
        params: Dict[str, Any] = {"student_id": student_id, "subject": subject}
        query = """
            SELECT id, subject, correct_answers, total_problems, created_at
            FROM practice_sessions
            WHERE student_id = :student_id
            AND subject = :subject
        """
        query += _window_clause("created_at", since, None, params)
        query += " ORDER BY created_at DESC"

        rows = await self._fetch_all(query, params)
        return [
            PracticeSessionRecord(
                id=str(row[0]),
                subject=row[1],
                correct_answers=int(row[2] or 0),
                total_problems=int(row[3] or 0),
                created_at=row[4],
            )
            for row in rows
        ]

    async def session_summaries(self, student_id: str, subject: str, since: datetime, limit: int = 5) -> List[str]:
        rows = await self._fetch_all(
            """
            SELECT summary
            FROM tutoring_sessions
            WHERE student_id = :student_id
            AND subject = :subject
            AND created_at >= :since
            AND summary IS NOT NULL
            ORDER BY created_at DESC
            LIMIT :limit
            """,
            {"student_id": student_id, "subject": subject, "since": since, "limit": limit}
        )
        return [row[0] for row in rows]

    async def get_learning_profile(self, student_id: str, subject: Optional[str]) -> Optional[LearningProfile]:
        if not subject:
            return None
        row = await self._fetch_one(
            """
            SELECT subject, proficiency_level, strengths, weaknesses
            FROM learning_profiles
            WHERE student_id = :student_id
            AND subject = :subject
            """,
            {"student_id": student_id, "subject": subject}
        )
        if row is None:
            return None
        return LearningProfile(
            subject=row[0],
            proficiency_level=int(row[1] or 1),
            strengths=list(_load_json(row[2], [])),
            weaknesses=list(_load_json(row[3], [])),
        )

    async def get_conversation(self, conversation_id: str) -> Conversation:
        header = await self._fetch_one(
            "SELECT id, student_id, subject FROM conversations WHERE id = :conversation_id",
            {"conversation_id": conversation_id}
        )
        if header is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

        rows = await self._fetch_all(
            """
            SELECT role, content, created_at
            FROM messages
            WHERE conversation_id = :conversation_id
            ORDER BY created_at ASC, id ASC
            """,
            {"conversation_id": conversation_id}
        )
        return Conversation(
            id=str(header[0]),
            student_id=str(header[1]),
            subject=header[2],
            messages=[ChatMessage(role=row[0], content=row[1], created_at=row[2]) for row in rows],
        )

    async def append_message(self, conversation_id, role, content, metadata=None):
        now = datetime.utcnow()
        async with self.session_scope() as db:
            await db.execute(
                text("""
                    INSERT INTO messages (conversation_id, role, content, metadata, created_at, updated_at)
                    VALUES (:conversation_id, :role, :content, CAST(:metadata AS jsonb), :now, :now)
                """),
                {
                    "conversation_id": conversation_id,
                    "role": role,
                    "content": content,
                    "metadata": json.dumps(metadata or {}, default=str),
                    "now": now,
                }
            )

    async def record_handoff(self, record: HandoffRecord):
        now = datetime.utcnow()
        async with self.session_scope() as db:
            await db.execute(
                text("""
                    INSERT INTO tutor_handoffs (
                        student_id, conversation_id, tutor_external_id, subject,
                        escalation_reasons, context_summary, focus_areas,
                        booking_external_id, scheduled_at, created_at, updated_at
                    )
                    VALUES (
                        :student_id, :conversation_id, :tutor_external_id, :subject,
                        :escalation_reasons, :context_summary, :focus_areas,
                        :booking_external_id, :scheduled_at, :now, :now
                    )
                """),
                {
                    "student_id": record.student_id,
                    "conversation_id": record.conversation_id,
                    "tutor_external_id": record.tutor_external_id,
                    "subject": record.subject,
                    "escalation_reasons": record.escalation_reasons,
                    "context_summary": record.context_summary,
                    "focus_areas": record.focus_areas,
                    "booking_external_id": record.booking_external_id,
                    "scheduled_at": record.scheduled_at,
                    "now": now,
                }
            )
        self.logger.info(f"Recorded handoff for conversation {record.conversation_id}")

    async def record_nudge(self, student_id, nudge_type, content, sent_at):
        async with self.session_scope() as db:
            await db.execute(
                text("""
                    INSERT INTO student_nudges (student_id, nudge_type, content, sent_at, created_at, updated_at)
                    VALUES (:student_id, :nudge_type, CAST(:content AS jsonb), :sent_at, :sent_at, :sent_at)
                """),
                {
                    "student_id": student_id,
                    "nudge_type": nudge_type,
                    "content": json.dumps(content, default=str),
                    "sent_at": sent_at,
                }
            )
