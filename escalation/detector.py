"""
Escalation Detector

Inspects a conversation's message history to decide whether the AI
companion should hand the student to a human tutor, and builds the
context the tutor receives.
"""

from collections import Counter
from itertools import combinations
from typing import List, Optional
import logging
import math

from escalation.escalation_types import EscalationContext, EscalationReason, Urgency
from escalation.patterns import (
    ADVANCED_TOPIC_PATTERNS,
    FRUSTRATION_PATTERNS,
    HEDGING_PATTERNS,
    QUESTION_TOPIC_PATTERN,
    WORD_PATTERN,
    matches_any,
)
from models.domain import Conversation, LearningProfile
from retention.errors import CollaboratorError
from retention.policy import EscalationPolicy
from retention.prompt_templates import CONVERSATION_SUMMARY_PROMPT
from services.text_generation import TextGenerationClient


def jaccard_similarity(text1: str, text2: str) -> float:
    words1 = set(WORD_PATTERN.findall(text1.lower()))
    words2 = set(WORD_PATTERN.findall(text2.lower()))
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


class EscalationDetector:
    """Detects when a conversation should be escalated to a human tutor"""

    def __init__(
        self,
        policy: Optional[EscalationPolicy] = None,
        text_generator: Optional[TextGenerationClient] = None,
    ):
        self.policy = policy or EscalationPolicy()
        self.text_generator = text_generator
        self.logger = logging.getLogger("EscalationDetector")

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def repeat_count(self, messages: List[str]) -> int:
        """Approximate number of times the same question was asked"""
        if len(messages) < 2:
            return 0
        similar_pairs = sum(
            1 for first, second in combinations(messages, 2)
            if jaccard_similarity(first, second) > self.policy.similarity_threshold
        )
        return math.ceil(similar_pairs / 2) + 1

    def repeated_confusion(self, conversation: Conversation) -> bool:
        user_messages = [m.content for m in conversation.user_messages()]
        if len(user_messages) < self.policy.min_user_messages_for_repetition:
            return False
        recent = user_messages[-self.policy.message_window:]
        return self.repeat_count(recent) >= self.policy.repeated_confusion_threshold

    def frustration_detected(self, conversation: Conversation) -> bool:
        recent = conversation.user_messages()[-self.policy.message_window:]
        frustrated = sum(1 for m in recent if matches_any(m.content, FRUSTRATION_PATTERNS))
        return frustrated >= self.policy.frustration_threshold

    def estimate_topic_difficulty(self, conversation: Conversation) -> int:
        recent_content = " ".join(m.content for m in conversation.messages[-self.policy.message_window:])
        indicators = sum(1 for pattern in ADVANCED_TOPIC_PATTERNS if pattern.search(recent_content))
        return self.policy.base_topic_difficulty + indicators * self.policy.difficulty_per_indicator

    def topic_too_complex(self, conversation: Conversation, profile: Optional[LearningProfile]) -> bool:
        # No proficiency on record means the check does not apply
        if profile is None:
            return False
        gap = self.estimate_topic_difficulty(conversation) - profile.proficiency_level
        return gap >= self.policy.complexity_gap_threshold

    def ai_struggling(self, conversation: Conversation) -> bool:
        recent = conversation.assistant_messages()[-self.policy.message_window:]
        hedged = sum(1 for m in recent if matches_any(m.content, HEDGING_PATTERNS))
        return hedged >= self.policy.low_confidence_threshold

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def escalation_reasons(
        self,
        conversation: Conversation,
        profile: Optional[LearningProfile] = None
    ) -> List[EscalationReason]:
        reasons = []
        if self.repeated_confusion(conversation):
            reasons.append(EscalationReason.REPEATED_CONFUSION)
        if self.frustration_detected(conversation):
            reasons.append(EscalationReason.STUDENT_FRUSTRATION)
        if self.topic_too_complex(conversation, profile):
            reasons.append(EscalationReason.COMPLEX_TOPIC)
        if self.ai_struggling(conversation):
            reasons.append(EscalationReason.AI_LIMITATIONS)
        return reasons

    def should_escalate(self, conversation: Conversation, profile: Optional[LearningProfile] = None) -> bool:
        return bool(self.escalation_reasons(conversation, profile))

    @staticmethod
    def urgency_for(reasons: List[EscalationReason]) -> Urgency:
        frustrated = EscalationReason.STUDENT_FRUSTRATION in reasons
        confused = EscalationReason.REPEATED_CONFUSION in reasons
        if frustrated and confused:
            return Urgency.HIGH
        if frustrated or confused:
            return Urgency.MEDIUM
        return Urgency.LOW

    def urgency(self, conversation: Conversation, profile: Optional[LearningProfile] = None) -> Urgency:
        return self.urgency_for(self.escalation_reasons(conversation, profile))

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    @staticmethod
    def extract_topics(text: str) -> List[str]:
        return [match.group(2).strip() for match in QUESTION_TOPIC_PATTERN.finditer(text.lower())]

    def identify_struggles(self, conversation: Conversation) -> List[str]:
        """Most frequently asked-about topics across the student's questions"""
        tally = Counter()
        for message in conversation.user_messages():
            tally.update(self.extract_topics(message.content))
        return [topic for topic, _ in tally.most_common(self.policy.struggle_limit)]

    def recommend_focus_areas(
        self,
        conversation: Conversation,
        profile: Optional[LearningProfile] = None,
        struggles: Optional[List[str]] = None
    ) -> List[str]:
        if struggles is None:
            struggles = self.identify_struggles(conversation)
        areas = list(struggles[: self.policy.struggles_in_focus])
        if profile is not None:
            areas.extend(profile.weaknesses[: self.policy.weaknesses_in_focus])

        unique = list(dict.fromkeys(areas))
        return unique[: self.policy.focus_area_limit]

    async def summarize(self, conversation: Conversation) -> str:
        """LLM summary of the recent exchange; empty string when unavailable"""
        if self.text_generator is None or not conversation.messages:
            return ""

        transcript = "\n".join(
            f"{m.role}: {truncate(m.content, self.policy.summary_truncate_chars)}"
            for m in conversation.messages[-self.policy.summary_window:]
        )
        try:
            summary = await self.text_generator.generate(
                CONVERSATION_SUMMARY_PROMPT.format_messages(transcript=transcript)
            )
        except CollaboratorError as e:
            self.logger.warning(f"Summary unavailable for conversation {conversation.id}: {e}")
            return ""
        return summary or ""

    async def build_context(
        self,
        conversation: Conversation,
        profile: Optional[LearningProfile] = None
    ) -> EscalationContext:
        """
        Build the hand-off context for a conversation.

        Args:
            conversation: Conversation with ordered messages
            profile: Student's learning profile for the conversation subject, if any

        Returns:
            EscalationContext; summary is empty when the LLM is unavailable
        """
        reasons = self.escalation_reasons(conversation, profile)
        struggles = self.identify_struggles(conversation)

        return EscalationContext(
            conversation_id=conversation.id,
            student_id=conversation.student_id,
            subject=conversation.subject,
            reasons=reasons,
            urgency=self.urgency_for(reasons),
            summary=await self.summarize(conversation),
            student_struggles=struggles,
            focus_areas=self.recommend_focus_areas(conversation, profile, struggles),
        )
