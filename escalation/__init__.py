"""Tutor Escalation

Heuristic detection of conversations that should be handed from the
AI companion to a human tutor.
"""

from escalation.escalation_types import EscalationContext, EscalationReason, Urgency
from escalation.detector import EscalationDetector

__all__ = [
    "EscalationContext",
    "EscalationReason",
    "Urgency",
    "EscalationDetector",
]
