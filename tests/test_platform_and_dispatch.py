"""
Unit Tests for Platform Client, Nudge Dispatcher and Goal Completion Handler
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
import pytest
import httpx
from datetime import timedelta
from unittest.mock import AsyncMock

from conftest import NOW
from models.domain import GoalStatus, NudgeDecision, SuggestedGoal
from retention.nudge_content import NudgeContentBuilder, NudgeContext
from retention.nudge_types import NudgeType
from retention.policy import NudgePolicy
from services.goal_completion import GoalCompletionHandler, RETENTION_EVENTS_CHANNEL
from services.metrics import LoggingMetricsSink, MetricsSink
from services.nudge_dispatcher import NotificationDispatcher
from services.platform_client import PlatformClient


def platform_with(handler) -> PlatformClient:
    return PlatformClient(
        base_url="https://platform.test",
        api_key="secret",
        timeout_seconds=1,
        transport=httpx.MockTransport(handler),
    )


def inactive_decision() -> NudgeDecision:
    content = NudgeContentBuilder().build(NudgeType.INACTIVE_REMINDER, NudgeContext(student_name="Ana", days_inactive=9))
    return NudgeDecision(needed=True, nudge_type=NudgeType.INACTIVE_REMINDER.value, content=content)


# ============================================================================
# PLATFORM CLIENT
# ============================================================================

@pytest.mark.asyncio
async def test_available_tutors_request():
    seen = {}

    def handler(request: httpx.Request):
        seen["request"] = request
        return httpx.Response(200, json={"tutors": [{"id": "t1"}]})

    client = platform_with(handler)
    tutors = await client.get_available_tutors("chemistry", NOW, 60)

    assert tutors == [{"id": "t1"}]
    request = seen["request"]
    assert request.url.path == "/api/v1/tutors/availability"
    assert request.url.params["subject"] == "chemistry"
    assert request.url.params["duration"] == "60"
    assert request.headers["Authorization"] == "Bearer secret"
    await client.close()


@pytest.mark.asyncio
async def test_server_error_means_empty_result():
    client = platform_with(lambda request: httpx.Response(500))

    assert await client.get_available_tutors("chemistry", NOW) == []
    assert await client.create_booking("s1", "t1", "chemistry", NOW) is None
    assert await client.send_notification("s1", "inactive_reminder", "Hi", "Hello") is False


@pytest.mark.asyncio
async def test_transport_error_is_not_raised():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = platform_with(handler)

    assert await client.send_notification("s1", "inactive_reminder", "Hi", "Hello") is False


@pytest.mark.asyncio
async def test_non_json_success_body_means_empty_result():
    client = platform_with(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    assert await client.get_available_tutors("chemistry", NOW) == []
    assert await client.create_booking("s1", "t1", "chemistry", NOW) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [[{"id": "t1"}], "tutors", 42])
async def test_non_object_json_body_means_empty_result(body):
    client = platform_with(lambda request: httpx.Response(200, json=body))

    assert await client.get_available_tutors("chemistry", NOW) == []
    assert await client.create_booking("s1", "t1", "chemistry", NOW) is None


@pytest.mark.asyncio
async def test_malformed_tutor_list_is_filtered():
    client = platform_with(lambda request: httpx.Response(200, json={"tutors": [{"id": "t1"}, "t2", None]}))

    assert await client.get_available_tutors("chemistry", NOW) == [{"id": "t1"}]


@pytest.mark.asyncio
async def test_booking_payload():
    seen = {}

    def handler(request: httpx.Request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "booking_1"})

    client = platform_with(handler)
    booking = await client.create_booking("ext-1", "t1", "algebra", NOW, notes="notes")

    assert booking == {"id": "booking_1"}
    assert seen["body"]["scheduled_at"] == NOW.isoformat()
    assert seen["body"]["notes"] == "notes"


# ============================================================================
# NUDGE DISPATCHER
# ============================================================================

@pytest.fixture
def student(repository):
    return repository.add_student("student_123", NOW - timedelta(days=60), first_name="Ana")


@pytest.mark.asyncio
async def test_dispatch_sends_and_records(repository, claims, student):
    platform = AsyncMock()
    platform.send_notification.return_value = True
    metrics = LoggingMetricsSink()
    dispatcher = NotificationDispatcher(repository, platform, claims, metrics=metrics)

    sent = await dispatcher.dispatch(student, inactive_decision(), now=NOW)

    assert sent is True
    kwargs = platform.send_notification.await_args.kwargs
    assert kwargs["student_id"] == "ext-student_123"
    assert kwargs["notification_type"] == "inactive_reminder"
    assert kwargs["data"]["cta_action"] == "open_practice"
    assert repository.nudges[0]["nudge_type"] == "inactive_reminder"
    assert claims.keys == {"nudge:student_123:inactive_reminder": 3 * 24 * 60 * 60}
    assert metrics.get_metrics()["counters"]["nudges.sent[type=inactive_reminder]"] == 1


@pytest.mark.asyncio
async def test_same_nudge_not_sent_twice_in_window(repository, claims, student):
    platform = AsyncMock()
    platform.send_notification.return_value = True
    dispatcher = NotificationDispatcher(repository, platform, claims)

    assert await dispatcher.dispatch(student, inactive_decision()) is True
    assert await dispatcher.dispatch(student, inactive_decision()) is False

    assert platform.send_notification.await_count == 1
    assert len(repository.nudges) == 1


@pytest.mark.asyncio
async def test_failed_delivery_releases_claim(repository, claims, student):
    platform = AsyncMock()
    platform.send_notification.return_value = False
    dispatcher = NotificationDispatcher(repository, platform, claims, policy=NudgePolicy(dedup_days=1))

    assert await dispatcher.dispatch(student, inactive_decision()) is False

    assert claims.keys == {}
    assert claims.released == ["nudge:student_123:inactive_reminder"]
    assert repository.nudges == []


@pytest.mark.asyncio
async def test_no_nudge_needed_sends_nothing(repository, claims, student):
    platform = AsyncMock()
    dispatcher = NotificationDispatcher(repository, platform, claims)

    assert await dispatcher.dispatch(student, NudgeDecision(needed=False)) is False
    platform.send_notification.assert_not_awaited()


# ============================================================================
# GOAL COMPLETION HANDLER
# ============================================================================

@pytest.mark.asyncio
async def test_completion_notifies_and_publishes(repository, claims, student, chemistry_goal):
    platform = AsyncMock()
    platform.send_notification.return_value = True
    metrics = LoggingMetricsSink()
    handler = GoalCompletionHandler(repository, platform, events=claims, metrics=metrics)

    chemistry_goal.status = GoalStatus.COMPLETED
    chemistry_goal.completed_at = NOW
    chemistry_goal.suggested_next_goals = [SuggestedGoal(subject="physics", reason="next", priority=0)]

    await handler(chemistry_goal)

    kwargs = platform.send_notification.await_args.kwargs
    assert kwargs["notification_type"] == "goal_completed"
    assert kwargs["title"] == "🎉 Goal Achieved: Master stoichiometry!"
    assert kwargs["data"]["next_subjects"] == ["physics", "biology", "ap_chemistry", "organic_chemistry"]
    assert kwargs["data"]["cta_type"] == "explore_subjects"

    channel, event = claims.published[0]
    assert channel == RETENTION_EVENTS_CHANNEL
    assert event["type"] == "goal_completed"
    assert event["suggested_next"][0]["subject"] == "physics"

    assert metrics.get_metrics()["averages"]["goals.days_to_complete"] == 20


# ============================================================================
# METRICS
# ============================================================================

def test_metrics_sink_requires_both_methods():
    class CountersOnly(MetricsSink):
        def increment(self, name, value=1, tags=None):
            pass

    with pytest.raises(TypeError):
        MetricsSink()
    with pytest.raises(TypeError):
        CountersOnly()
