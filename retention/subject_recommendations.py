"""
Subject Recommendations

Static mapping from a completed subject to prioritised next subjects.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Tuple
import re


@dataclass(frozen=True)
class SubjectRecommendation:
    next_subjects: Tuple[str, ...]
    message: str
    priority_order: Tuple[str, ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "next_subjects": list(self.next_subjects),
            "message": self.message,
            "priority_order": list(self.priority_order),
        }


RECOMMENDATIONS: Mapping[str, SubjectRecommendation] = MappingProxyType({
    "sat_prep": SubjectRecommendation(
        next_subjects=("college_essays", "study_skills", "ap_courses", "act_prep"),
        message="Great job completing SAT prep! Many students find success continuing with college application support.",
        priority_order=("college_essays", "ap_courses", "study_skills"),
    ),
    "act_prep": SubjectRecommendation(
        next_subjects=("college_essays", "study_skills", "sat_prep", "ap_courses"),
        message="ACT prep complete! Consider getting help with college essays or AP courses.",
        priority_order=("college_essays", "ap_courses"),
    ),
    "chemistry": SubjectRecommendation(
        next_subjects=("physics", "biology", "ap_chemistry", "organic_chemistry"),
        message="Chemistry mastered! Physics and biology are natural next steps for STEM success.",
        priority_order=("physics", "ap_chemistry", "biology"),
    ),
    "physics": SubjectRecommendation(
        next_subjects=("ap_physics", "chemistry", "calculus", "engineering_prep"),
        message="Physics complete! Consider AP Physics or strengthen your calculus foundation.",
        priority_order=("ap_physics", "calculus"),
    ),
    "algebra": SubjectRecommendation(
        next_subjects=("geometry", "algebra_2", "pre_calculus", "trigonometry"),
        message="Algebra mastered! You're ready to tackle geometry or move to Algebra 2.",
        priority_order=("geometry", "algebra_2"),
    ),
    "geometry": SubjectRecommendation(
        next_subjects=("algebra_2", "trigonometry", "pre_calculus"),
        message="Geometry complete! Algebra 2 or trigonometry is your next math milestone.",
        priority_order=("algebra_2", "trigonometry"),
    ),
    "calculus": SubjectRecommendation(
        next_subjects=("ap_calculus", "statistics", "linear_algebra", "physics"),
        message="Calculus done! AP Calculus or statistics will strengthen your math foundation.",
        priority_order=("ap_calculus", "statistics"),
    ),
    "biology": SubjectRecommendation(
        next_subjects=("chemistry", "ap_biology", "anatomy", "environmental_science"),
        message="Biology mastered! Chemistry pairs perfectly, or dive deeper with AP Biology.",
        priority_order=("chemistry", "ap_biology"),
    ),
    "english": SubjectRecommendation(
        next_subjects=("ap_english", "creative_writing", "sat_reading", "literature"),
        message="English skills strong! Consider AP English or focus on SAT reading.",
        priority_order=("ap_english", "sat_reading"),
    ),
    "spanish": SubjectRecommendation(
        next_subjects=("ap_spanish", "spanish_literature", "french", "latin"),
        message="¡Muy bien! Ready for AP Spanish or explore another language?",
        priority_order=("ap_spanish", "french"),
    ),
})

DEFAULT_NEXT_SUBJECTS = ("study_skills", "test_prep", "writing")
DEFAULT_PRIORITY_ORDER = ("study_skills", "test_prep")
DEFAULT_MESSAGE = "Congratulations on completing {subject}! Here are some ways to continue learning."


def normalize_subject(subject: str) -> str:
    return re.sub(r"\s+", "_", str(subject or "").strip().lower())


def humanize_subject(subject: str) -> str:
    """ap_chemistry -> Ap chemistry"""
    return subject.replace("_", " ").strip().capitalize()


def default_recommendation(subject: str) -> SubjectRecommendation:
    return SubjectRecommendation(
        next_subjects=DEFAULT_NEXT_SUBJECTS,
        message=DEFAULT_MESSAGE.format(subject=subject),
        priority_order=DEFAULT_PRIORITY_ORDER,
    )


def get_recommendations(subject: str) -> SubjectRecommendation:
    """Look up next-subject suggestions, falling back to the generic set"""
    return RECOMMENDATIONS.get(normalize_subject(subject)) or default_recommendation(subject)


def priority_of(recommendation: SubjectRecommendation, subject: str) -> int:
    """Rank of subject in priority_order; unranked subjects sort last"""
    if subject in recommendation.priority_order:
        return recommendation.priority_order.index(subject)
    return 99


def validate_table(table: Mapping[str, SubjectRecommendation]):
    entries = dict(table)
    entries["<default>"] = default_recommendation("<default>")
    for key, entry in entries.items():
        if not entry.next_subjects:
            raise ValueError(f"Recommendation '{key}' has no next subjects")
        missing = set(entry.priority_order) - set(entry.next_subjects)
        if missing:
            raise ValueError(
                f"Recommendation '{key}' prioritises subjects it does not suggest: {sorted(missing)}"
            )
        if len(set(entry.priority_order)) != len(entry.priority_order):
            raise ValueError(f"Recommendation '{key}' repeats a subject in priority_order")


validate_table(RECOMMENDATIONS)
