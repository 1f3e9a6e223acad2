from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Dict, Any, Optional
from enum import Enum


class CompletionEvaluation(BaseModel):
    """Structured completion verdict returned by the language model"""
    is_complete: bool
    estimated_progress: int = Field(..., ge=0, le=100)
    reasoning: str
    remaining_gaps: List[str] = Field(default_factory=list)

    @field_validator("estimated_progress", mode="before")
    @classmethod
    def round_fractional_progress(cls, value):
        if isinstance(value, float):
            return int(round(value))
        return value


class EngagementScoreResponse(BaseModel):
    student_id: str
    overall: int = Field(..., ge=0, le=100)
    component_scores: Dict[str, float]
    weights: Dict[str, float]


class NudgeContentSchema(BaseModel):
    type: str
    title: str
    message: str
    cta: str
    cta_action: str
    cta_data: Dict[str, Any] = Field(default_factory=dict)
    priority: str = Field(..., description="low, medium, high")


class NudgeDecisionResponse(BaseModel):
    student_id: str
    needed: bool
    nudge_type: Optional[str] = None
    content: Optional[NudgeContentSchema] = None


class EscalationContextSchema(BaseModel):
    conversation_id: str
    student_id: str
    subject: Optional[str] = None
    reasons: List[str]
    urgency: str = Field(..., description="low, medium, high")
    summary: str = ""
    student_struggles: List[str] = Field(default_factory=list)
    focus_areas: List[str] = Field(default_factory=list)


class EscalationCheckResponse(BaseModel):
    conversation_id: str
    should_escalate: bool
    context: Optional[EscalationContextSchema] = None


class ProgressSignalKind(str, Enum):
    SESSION_ANALYSIS = "session_analysis"
    PRACTICE_SESSION = "practice_session"


class ProgressSignalSchema(BaseModel):
    """One caller-supplied progress signal"""
    kind: ProgressSignalKind
    comprehension_score: Optional[float] = Field(None, ge=0, le=10)
    correct_answers: Optional[int] = Field(None, ge=0)
    total_problems: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_fields_for_kind(self):
        if self.kind == ProgressSignalKind.SESSION_ANALYSIS and self.comprehension_score is None:
            raise ValueError("session_analysis signals need comprehension_score")
        if self.kind == ProgressSignalKind.PRACTICE_SESSION and (
            self.correct_answers is None or self.total_problems is None
        ):
            raise ValueError("practice_session signals need correct_answers and total_problems")
        return self


class GoalProgressRequest(BaseModel):
    signals: List[ProgressSignalSchema] = Field(default_factory=list)


class GoalProgressResponse(BaseModel):
    goal_id: str
    progress_percentage: int = Field(..., ge=0, le=100)
    completed: bool


class CompletionEvaluationResponse(CompletionEvaluation):
    goal_id: str


class SubjectRecommendationResponse(BaseModel):
    subject: str
    next_subjects: List[str]
    message: str
    priority_order: List[str]


class HealthCheckResponse(BaseModel):
    status: str
    timestamp: str
    services: Dict[str, str]
