"""
Tutor Handoff Coordinator

When a conversation needs a human tutor, suggests available tutors and
slots, posts a hand-off message in the conversation, and books a session
carrying the escalation context as tutor notes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from escalation.detector import EscalationDetector
from escalation.escalation_types import EscalationContext, Urgency
from models.domain import Conversation, HandoffRecord, TutorSlot
from services.activity_repository import ActivityRepository
from services.concurrency import KeyedLock
from services.metrics import MetricsSink, NullMetricsSink
from services.platform_client import PlatformClient

MAX_SLOTS = 10
SUGGESTED_TUTORS = 5
SUGGESTED_SLOTS = 5
HANDOFF_FOCUS_AREAS = 2
SESSION_DURATION_MINUTES = 60

URGENCY_MESSAGES = {
    Urgency.HIGH: (
        "I can see you're working hard on this, and I think a human tutor "
        "could really help you break through right now."
    ),
    Urgency.MEDIUM: "This is a great question that might benefit from working through with a tutor.",
    Urgency.LOW: "Would you like to book a session with a tutor to dive deeper into this topic?",
}


@dataclass
class HandoffSuggestion:
    """Tutor options offered to a student whose conversation was escalated"""
    context: EscalationContext
    available_tutors: List[Dict[str, Any]] = field(default_factory=list)
    available_slots: List[TutorSlot] = field(default_factory=list)

    @property
    def urgency(self) -> Urgency:
        return self.context.urgency

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.context.subject,
            "reasons": [r.value for r in self.context.reasons],
            "summary": self.context.summary,
            "focus_areas": self.context.focus_areas,
            "urgency": self.urgency.value,
            "available_tutors": self.available_tutors[:SUGGESTED_TUTORS],
            "available_slots": [vars(slot) for slot in self.available_slots[:SUGGESTED_SLOTS]],
        }


def collect_slots(tutors: List[Dict[str, Any]], limit: int = MAX_SLOTS) -> List[TutorSlot]:
    """Flatten every tutor's open slots, earliest first"""
    slots = [
        TutorSlot(
            tutor_id=str(tutor.get("id")),
            tutor_name=f"{tutor.get('first_name', '')} {tutor.get('last_name', '')}".strip(),
            datetime=slot.get("datetime", ""),
            duration=slot.get("duration"),
        )
        for tutor in tutors
        for slot in tutor.get("available_slots") or []
    ]
    slots.sort(key=lambda s: s.datetime)
    return slots[:limit]


def handoff_message(context: EscalationContext) -> str:
    focus = " and ".join(context.focus_areas[:HANDOFF_FOCUS_AREAS]) or "this topic"
    subject = context.subject or "this subject"
    return (
        f"{URGENCY_MESSAGES[context.urgency]}\n\n"
        f"**I can help you book a session** where you can:\n"
        f"- Work through {focus} in detail\n"
        f"- Get personalized explanations and practice\n"
        f"- Ask all your questions in real-time\n\n"
        f"Would you like me to show you available tutors for {subject}?"
    )


def tutor_notes(context: EscalationContext) -> str:
    focus_lines = "\n".join(f"- {area}" for area in context.focus_areas)
    reasons = ", ".join(r.value for r in context.reasons)
    return (
        f"**AI Companion Handoff Notes**\n\n"
        f"Student has been working with AI companion on: {context.subject}\n\n"
        f"**Summary:** {context.summary}\n\n"
        f"**Recommended Focus Areas:**\n{focus_lines}\n\n"
        f"**Escalation Reason:** {reasons}\n\n"
        f"**Urgency:** {context.urgency.value}"
    )


class TutorHandoffCoordinator:
    """Serializes hand-off work per conversation"""

    def __init__(
        self,
        repository: ActivityRepository,
        detector: EscalationDetector,
        platform: PlatformClient,
        metrics: Optional[MetricsSink] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.repository = repository
        self.detector = detector
        self.platform = platform
        self.metrics = metrics or NullMetricsSink()
        # Shared with RetentionEngine so every per-conversation path queues on one lock
        self.locks = locks or KeyedLock()
        self.logger = logging.getLogger("TutorHandoffCoordinator")

    async def _profile_for(self, conversation: Conversation):
        return await self.repository.get_learning_profile(conversation.student_id, conversation.subject)

    async def check_and_suggest(self, conversation_id: str, now: Optional[datetime] = None) -> Optional[HandoffSuggestion]:
        """
        Suggest a human tutor if the conversation warrants one.

        Args:
            conversation_id: Conversation to inspect
            now: Instant used for the availability lookup

        Returns:
            HandoffSuggestion, or None when no escalation is needed
        """
        async with self.locks.hold(conversation_id):
            conversation = await self.repository.get_conversation(conversation_id)
            profile = await self._profile_for(conversation)
            if not self.detector.should_escalate(conversation, profile):
                return None

            context = await self.detector.build_context(conversation, profile)
            tutors = await self.platform.get_available_tutors(
                context.subject or "", now or datetime.utcnow(), SESSION_DURATION_MINUTES
            )
            suggestion = HandoffSuggestion(
                context=context,
                available_tutors=tutors,
                available_slots=collect_slots(tutors),
            )

            await self.repository.append_message(
                conversation_id,
                "assistant",
                handoff_message(context),
                metadata={"type": "handoff_suggestion", "context": context.to_dict()},
            )

        self.logger.info(
            f"🧑‍🏫 Hand-off suggested for conversation {conversation_id} "
            f"(urgency={context.urgency.value}, tutors={len(tutors)})"
        )
        self.metrics.increment("escalations.suggested", tags={"urgency": context.urgency.value})
        return suggestion

    async def create_booking(
        self,
        conversation_id: str,
        tutor_id: Optional[str],
        scheduled_at: datetime
    ) -> Optional[Dict[str, Any]]:
        """
        Book a tutor session carrying the escalation context.

        Returns:
            The platform booking, or None when no tutor was available or booking failed
        """
        async with self.locks.hold(conversation_id):
            conversation = await self.repository.get_conversation(conversation_id)
            student = await self.repository.get_student(conversation.student_id)
            context = await self.detector.build_context(conversation, await self._profile_for(conversation))

            if tutor_id is None:
                tutors = await self.platform.get_available_tutors(
                    context.subject or "", datetime.utcnow(), SESSION_DURATION_MINUTES
                )
                if tutors:
                    tutor_id = str(tutors[0].get("id"))

            if tutor_id is None:
                self.logger.warning(f"No tutor available for conversation {conversation_id}")
                return None

            booking = await self.platform.create_booking(
                student_id=student.external_id,
                tutor_id=tutor_id,
                subject=context.subject,
                scheduled_at=scheduled_at,
                notes=tutor_notes(context),
            )
            if booking is None:
                return None

            await self.repository.record_handoff(HandoffRecord(
                student_id=student.id,
                conversation_id=conversation_id,
                tutor_external_id=tutor_id,
                subject=context.subject,
                escalation_reasons=[r.value for r in context.reasons],
                context_summary=context.summary,
                focus_areas=context.focus_areas,
                booking_external_id=booking.get("id"),
                scheduled_at=scheduled_at,
            ))

        self.logger.info(f"✅ Booked tutor {tutor_id} for conversation {conversation_id}")
        self.metrics.increment("escalations.booked")
        return booking
