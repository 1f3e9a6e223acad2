"""
Unit Tests for Nudge Content and Subject Recommendations
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from types import MappingProxyType

from retention.nudge_content import NudgeContentBuilder, NudgeContext
from retention.nudge_types import NudgeType, NUDGE_CONFIGS
from retention.subject_recommendations import (
    RECOMMENDATIONS,
    SubjectRecommendation,
    default_recommendation,
    get_recommendations,
    humanize_subject,
    normalize_subject,
    validate_table,
)


@pytest.fixture
def builder():
    return NudgeContentBuilder()


# ============================================================================
# NUDGE CONTENT
# ============================================================================

def test_every_nudge_type_has_config_and_copy(builder):
    for nudge_type in NudgeType:
        content = builder.build(nudge_type)
        config = NUDGE_CONFIGS[nudge_type]

        assert content.nudge_type == nudge_type.value
        assert content.title
        assert content.message
        assert content.cta == config.cta
        assert content.cta_action == config.cta_action.value
        assert content.priority == config.priority.value


def test_stalled_goal_without_goal_data_uses_generic_copy(builder):
    content = builder.build(NudgeType.GOAL_STALLED, NudgeContext())

    assert "One of your goals" in content.message
    assert "''" not in content.message
    assert content.cta_data == {}


def test_followup_carries_completed_goal(builder):
    context = NudgeContext(completed_goal_title="Master stoichiometry", completed_goal_id="goal_1")

    content = builder.build(NudgeType.GOAL_COMPLETED_FOLLOWUP, context)

    assert "Master stoichiometry" in content.message
    assert content.cta_data == {"completed_goal_id": "goal_1"}
    assert content.cta_action == "explore_subjects"


def test_title_without_name_has_no_dangling_comma(builder):
    content = builder.build(NudgeType.INACTIVE_REMINDER, NudgeContext(days_inactive=8))

    assert content.title == "We miss you! 👋"
    assert "8 days" in content.message


def test_content_serializes_with_type_key(builder):
    payload = builder.build(NudgeType.NEW_STUDENT_SESSIONS).to_dict()

    assert payload["type"] == "new_student_sessions"
    assert set(payload) == {"type", "title", "message", "cta", "cta_action", "cta_data", "priority"}


# ============================================================================
# SUBJECT RECOMMENDATIONS
# ============================================================================

def test_scenario_chemistry_recommends_physics_first():
    recommendation = get_recommendations("chemistry")

    assert "physics" in recommendation.next_subjects
    assert recommendation.priority_order[0] == "physics"


@pytest.mark.parametrize("subject", sorted(RECOMMENDATIONS) + ["underwater_basket_weaving"])
def test_priority_order_is_subset_of_next_subjects(subject):
    recommendation = get_recommendations(subject)
    assert set(recommendation.priority_order) <= set(recommendation.next_subjects)


def test_subject_lookup_is_normalized():
    assert normalize_subject("  SAT Prep ") == "sat_prep"
    assert get_recommendations("SAT Prep") is RECOMMENDATIONS["sat_prep"]


def test_unknown_subject_gets_generic_suggestions():
    recommendation = get_recommendations("Music Theory")

    assert recommendation == default_recommendation("Music Theory")
    assert recommendation.next_subjects == ("study_skills", "test_prep", "writing")
    assert "Music Theory" in recommendation.message


def test_table_is_read_only():
    with pytest.raises(TypeError):
        RECOMMENDATIONS["new_subject"] = default_recommendation("new_subject")


def test_validation_rejects_priority_outside_next_subjects():
    broken = MappingProxyType({
        "art": SubjectRecommendation(
            next_subjects=("painting",),
            message="Nice work!",
            priority_order=("sculpture",),
        ),
    })
    with pytest.raises(ValueError):
        validate_table(broken)


def test_humanize_subject():
    assert humanize_subject("ap_chemistry") == "Ap chemistry"
