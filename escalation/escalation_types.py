"""
Escalation Types

Reasons and urgency levels for handing an AI conversation to a human tutor.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EscalationReason(str, Enum):
    REPEATED_CONFUSION = "repeated_confusion"
    STUDENT_FRUSTRATION = "student_frustration"
    COMPLEX_TOPIC = "complex_topic"
    AI_LIMITATIONS = "ai_limitations"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class EscalationContext:
    """Everything a tutor needs to pick up an escalated conversation"""
    conversation_id: str
    student_id: str
    subject: Optional[str]
    reasons: List[EscalationReason]
    urgency: Urgency
    summary: str = ""
    student_struggles: List[str] = field(default_factory=list)
    focus_areas: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "student_id": self.student_id,
            "subject": self.subject,
            "reasons": [reason.value for reason in self.reasons],
            "urgency": self.urgency.value,
            "summary": self.summary,
            "student_struggles": list(self.student_struggles),
            "focus_areas": list(self.focus_areas),
        }
