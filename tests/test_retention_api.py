"""
Integration Tests for Retention API Endpoints

Runs the retention router against an in-memory repository and mocked
platform collaborators.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from datetime import datetime, timedelta
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from conftest import FakeLLM
from api.retention import router as retention_router
from escalation.detector import EscalationDetector
from models.domain import LearningGoal
from retention.goal_progress import GoalProgressEngine
from services.retention_engine import RetentionEngine
from services.text_generation import TextGenerationClient
from services.tutor_handoff import TutorHandoffCoordinator


@pytest.fixture
def platform():
    platform = AsyncMock()
    platform.get_available_tutors.return_value = [
        {"id": "t1", "first_name": "Marie", "last_name": "Curie",
         "available_slots": [{"datetime": "2025-03-16T10:00:00", "duration": 60}]},
    ]
    platform.create_booking.return_value = {"id": "booking_1"}
    return platform


@pytest.fixture
def llm():
    return FakeLLM(content='{"is_complete": false, "estimated_progress": 64, "reasoning": "Needs practice"}')


@pytest.fixture
def app(repository, factoring_conversation, platform, llm):
    now = datetime.utcnow()
    repository.add_student("student_123", now - timedelta(days=60), first_name="Ana")
    repository.add_conversation(factoring_conversation, now)
    repository.add_goal(LearningGoal(
        id="goal_1",
        student_id="student_123",
        subject="chemistry",
        title="Master stoichiometry",
        created_at=now - timedelta(days=20),
        updated_at=now - timedelta(days=1),
        progress_percentage=50,
    ))

    text_generator = TextGenerationClient(llm, timeout_seconds=1)
    goal_engine = GoalProgressEngine(repository, text_generator=text_generator)

    app = FastAPI()
    app.include_router(retention_router)
    app.state.retention_engine = RetentionEngine(repository, goal_engine=goal_engine)
    app.state.handoff_coordinator = TutorHandoffCoordinator(repository, EscalationDetector(), platform)
    return app


@pytest.fixture
def client(app):
    """Create test client without running the production lifespan."""
    return TestClient(app)


# ============================================================================
# STUDENTS
# ============================================================================

def test_engagement_score(client):
    response = client.get("/api/retention/students/student_123/engagement")

    assert response.status_code == 200
    data = response.json()
    assert data["student_id"] == "student_123"
    assert 0 <= data["overall"] <= 100
    assert set(data["component_scores"]) == {
        "session_frequency", "practice_activity", "conversation_activity", "goal_progress", "recency"
    }


def test_unknown_student_is_404(client):
    response = client.get("/api/retention/students/nobody/engagement")
    assert response.status_code == 404


def test_nudge_decision(client):
    response = client.get("/api/retention/students/student_123/nudge")

    assert response.status_code == 200
    data = response.json()
    # No tutoring sessions or practice in sixty days keeps the score low
    assert data["needed"] is True
    assert data["content"]["type"] == data["nudge_type"]


def test_send_nudge_without_dispatcher(client):
    response = client.post("/api/retention/students/student_123/nudge")

    assert response.status_code == 200
    assert response.json() == {"student_id": "student_123", "sent": False}


# ============================================================================
# CONVERSATIONS
# ============================================================================

def test_escalation_check(client):
    response = client.get("/api/retention/conversations/conv_1/escalation")

    assert response.status_code == 200
    data = response.json()
    assert data["should_escalate"] is True
    assert data["context"]["reasons"] == ["repeated_confusion"]
    assert data["context"]["urgency"] == "medium"


def test_escalation_unknown_conversation(client):
    response = client.get("/api/retention/conversations/missing/escalation")
    assert response.status_code == 404


def test_handoff_suggestion(client):
    response = client.post("/api/retention/conversations/conv_1/handoff")

    assert response.status_code == 200
    data = response.json()
    assert data["suggested"] is True
    assert data["available_slots"][0]["tutor_id"] == "t1"


def test_booking(client, repository):
    response = client.post(
        "/api/retention/conversations/conv_1/bookings",
        json={"scheduled_at": "2025-03-16T10:00:00"},
    )

    assert response.status_code == 200
    assert response.json() == {"id": "booking_1"}
    assert len(repository.handoffs) == 1


def test_failed_booking_is_502(client, platform):
    platform.create_booking.return_value = None

    response = client.post(
        "/api/retention/conversations/conv_1/bookings",
        json={"tutor_id": "t1", "scheduled_at": "2025-03-16T10:00:00"},
    )

    assert response.status_code == 502


# ============================================================================
# GOALS
# ============================================================================

def test_goal_progress_update(client, repository):
    response = client.post(
        "/api/retention/goals/goal_1/progress",
        json={"signals": [{"kind": "session_analysis", "comprehension_score": 8}]},
    )

    assert response.status_code == 200
    data = response.json()
    # Comprehension 8 carries a score, so stored history is left out
    assert data == {"goal_id": "goal_1", "progress_percentage": 80, "completed": False}
    assert repository.goals["goal_1"].progress_percentage == 80


def test_goal_progress_rejects_incomplete_signal(client):
    response = client.post(
        "/api/retention/goals/goal_1/progress",
        json={"signals": [{"kind": "practice_session", "correct_answers": 3}]},
    )
    assert response.status_code == 422


def test_goal_progress_unknown_goal(client):
    response = client.post("/api/retention/goals/missing/progress", json={"signals": []})
    assert response.status_code == 404


def test_completion_evaluation(client, repository):
    response = client.post("/api/retention/goals/goal_1/completion-evaluation")

    assert response.status_code == 200
    data = response.json()
    assert data["goal_id"] == "goal_1"
    assert data["is_complete"] is False
    assert data["estimated_progress"] == 64
    assert repository.goals["goal_1"].progress_percentage == 64


def test_completion_evaluation_failure_is_502(client, llm, repository):
    llm.content = "not json"

    response = client.post("/api/retention/goals/goal_1/completion-evaluation")

    assert response.status_code == 502
    assert repository.goals["goal_1"].progress_percentage == 50


# ============================================================================
# SUBJECTS
# ============================================================================

def test_subject_recommendations(client):
    response = client.get("/api/retention/subjects/chemistry/recommendations")

    assert response.status_code == 200
    data = response.json()
    assert data["priority_order"][0] == "physics"
    assert "physics" in data["next_subjects"]
