"""Regex heuristics used by the escalation detector."""

import re

FRUSTRATION_PATTERNS = [
    re.compile(r"i don'?t (understand|get it)", re.IGNORECASE),
    re.compile(r"this (doesn'?t|does not) make sense", re.IGNORECASE),
    re.compile(r"i('m| am) (so )?(confused|lost|frustrated)", re.IGNORECASE),
    re.compile(r"can you explain (again|differently)", re.IGNORECASE),
    re.compile(r"i give up", re.IGNORECASE),
    re.compile(r"this is (too )?hard", re.IGNORECASE),
    re.compile(r"help me", re.IGNORECASE),
    re.compile(r"\?{2,}"),
    re.compile(r"!{2,}"),
]

ADVANCED_TOPIC_PATTERNS = [
    re.compile(r"theorem|proof|derive|integral|differential", re.IGNORECASE),
    re.compile(r"synthesis|analysis|evaluate|critique", re.IGNORECASE),
    re.compile(r"advanced|complex|challenging", re.IGNORECASE),
]

HEDGING_PATTERNS = [
    re.compile(r"i('m| am) not (entirely )?sure", re.IGNORECASE),
    re.compile(r"this (might|may) be", re.IGNORECASE),
    re.compile(r"i think", re.IGNORECASE),
    re.compile(r"it'?s possible that", re.IGNORECASE),
    re.compile(r"you (should|might want to) (ask|consult|check with)", re.IGNORECASE),
]

# Topic phrase after an interrogative, up to the next ? or .
QUESTION_TOPIC_PATTERN = re.compile(r"\b(how|what|why|when|where|explain|help with)\s+(.+?)[?.]")

WORD_PATTERN = re.compile(r"\w+")


def matches_any(text: str, patterns) -> bool:
    return any(pattern.search(text) for pattern in patterns)
