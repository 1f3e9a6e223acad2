"""
Retention API Endpoints

REST access to engagement scoring, nudge decisions, escalation checks,
goal progress and next-subject recommendations.
"""

from datetime import datetime
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from models.domain import PracticeSessionSignal, SessionAnalysisSignal
from models.schemas import (
    CompletionEvaluationResponse,
    EngagementScoreResponse,
    EscalationCheckResponse,
    EscalationContextSchema,
    GoalProgressRequest,
    GoalProgressResponse,
    NudgeContentSchema,
    NudgeDecisionResponse,
    ProgressSignalKind,
    ProgressSignalSchema,
    SubjectRecommendationResponse,
)
from retention.errors import CollaboratorError, CompletionEvaluationError, MissingDataError
from services.retention_engine import RetentionEngine
from services.tutor_handoff import TutorHandoffCoordinator

router = APIRouter(prefix="/api/retention", tags=["retention"])
logger = logging.getLogger(__name__)


class BookingRequest(BaseModel):
    """Request model for booking a tutor from an escalated conversation"""
    tutor_id: Optional[str] = None
    scheduled_at: datetime


def get_retention_engine(request: Request) -> RetentionEngine:
    return request.app.state.retention_engine


def get_handoff_coordinator(request: Request) -> TutorHandoffCoordinator:
    return request.app.state.handoff_coordinator


def to_progress_signal(signal: ProgressSignalSchema):
    if signal.kind == ProgressSignalKind.SESSION_ANALYSIS:
        return SessionAnalysisSignal(comprehension_score=signal.comprehension_score)
    return PracticeSessionSignal(correct_answers=signal.correct_answers, total_problems=signal.total_problems)


def to_http_error(error: Exception) -> HTTPException:
    if isinstance(error, MissingDataError):
        return HTTPException(status_code=404, detail=str(error))
    return HTTPException(status_code=502, detail=str(error))


@router.get("/students/{student_id}/engagement", response_model=EngagementScoreResponse)
async def get_engagement(student_id: str, engine: RetentionEngine = Depends(get_retention_engine)):
    """Current 0-100 engagement score with its components"""
    try:
        score = await engine.compute_engagement(student_id)
    except MissingDataError as e:
        raise to_http_error(e)

    return EngagementScoreResponse(
        student_id=student_id,
        overall=score.overall,
        component_scores=score.component_scores,
        weights=score.weights,
    )


@router.get("/students/{student_id}/nudge", response_model=NudgeDecisionResponse)
async def get_nudge_decision(student_id: str, engine: RetentionEngine = Depends(get_retention_engine)):
    """Which nudge, if any, the student should receive now"""
    try:
        decision = await engine.evaluate_nudge(student_id)
    except MissingDataError as e:
        raise to_http_error(e)

    content = NudgeContentSchema(**decision.content.to_dict()) if decision.content else None
    return NudgeDecisionResponse(
        student_id=student_id,
        needed=decision.needed,
        nudge_type=decision.nudge_type,
        content=content,
    )


@router.post("/students/{student_id}/nudge")
async def send_nudge(student_id: str, engine: RetentionEngine = Depends(get_retention_engine)) -> Dict[str, Any]:
    """Evaluate and deliver a nudge immediately"""
    try:
        sent = await engine.run_engagement_check(student_id)
    except MissingDataError as e:
        raise to_http_error(e)
    return {"student_id": student_id, "sent": sent}


@router.get("/conversations/{conversation_id}/escalation", response_model=EscalationCheckResponse)
async def check_escalation(conversation_id: str, engine: RetentionEngine = Depends(get_retention_engine)):
    """Whether the conversation should be handed to a human tutor"""
    try:
        check = await engine.check_escalation(conversation_id)
    except MissingDataError as e:
        raise to_http_error(e)

    context = EscalationContextSchema(**check.context.to_dict()) if check.context else None
    return EscalationCheckResponse(
        conversation_id=conversation_id,
        should_escalate=check.should_escalate,
        context=context,
    )


@router.post("/conversations/{conversation_id}/handoff")
async def suggest_handoff(
    conversation_id: str,
    coordinator: TutorHandoffCoordinator = Depends(get_handoff_coordinator)
) -> Dict[str, Any]:
    try:
        suggestion = await coordinator.check_and_suggest(conversation_id)
    except MissingDataError as e:
        raise to_http_error(e)

    if suggestion is None:
        return {"conversation_id": conversation_id, "suggested": False}
    return {"conversation_id": conversation_id, "suggested": True, **suggestion.to_dict()}


@router.post("/conversations/{conversation_id}/bookings")
async def book_tutor(
    conversation_id: str,
    payload: BookingRequest,
    coordinator: TutorHandoffCoordinator = Depends(get_handoff_coordinator)
) -> Dict[str, Any]:
    try:
        booking = await coordinator.create_booking(conversation_id, payload.tutor_id, payload.scheduled_at)
    except MissingDataError as e:
        raise to_http_error(e)

    if booking is None:
        raise HTTPException(status_code=502, detail="Booking could not be created")
    return booking


@router.post("/goals/{goal_id}/progress", response_model=GoalProgressResponse)
async def update_goal_progress(
    goal_id: str,
    payload: GoalProgressRequest,
    engine: RetentionEngine = Depends(get_retention_engine)
):
    """Recompute goal progress from new session or practice evidence"""
    try:
        update = await engine.update_goal_progress(goal_id, [to_progress_signal(s) for s in payload.signals])
    except MissingDataError as e:
        raise to_http_error(e)

    return GoalProgressResponse(
        goal_id=update.goal_id,
        progress_percentage=update.progress_percentage,
        completed=update.completed,
    )


@router.post("/goals/{goal_id}/completion-evaluation", response_model=CompletionEvaluationResponse)
async def evaluate_goal_completion(goal_id: str, engine: RetentionEngine = Depends(get_retention_engine)):
    """Ask the language model whether the goal has been met"""
    try:
        verdict = await engine.evaluate_goal_completion(goal_id)
    except (MissingDataError, CollaboratorError, CompletionEvaluationError) as e:
        logger.warning(f"Completion evaluation for goal {goal_id} failed: {e}")
        raise to_http_error(e)

    return CompletionEvaluationResponse(goal_id=goal_id, **verdict.model_dump())


@router.get("/subjects/{subject}/recommendations", response_model=SubjectRecommendationResponse)
async def recommend_next_subjects(subject: str, engine: RetentionEngine = Depends(get_retention_engine)):
    recommendation = engine.recommend_next_subjects(subject)
    return SubjectRecommendationResponse(
        subject=subject,
        next_subjects=list(recommendation.next_subjects),
        message=recommendation.message,
        priority_order=list(recommendation.priority_order),
    )
