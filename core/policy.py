# core/policy.py
"""
Resolution policy tables.

These are data, not algorithms: which metrics need a target, which expect a
date window, which phrases count as broad or as a continuation. Keep them
here so they can be inspected and tested on their own.
"""

import re
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from core.intent import EntityKind
from core.metric import Metric, QueryIntent


# -----------------------------
# Result limits
# -----------------------------
MAX_RESULT_LIMIT = 20

DEFAULT_RESULT_LIMITS: Dict[QueryIntent, int] = {
    QueryIntent.TOP_CATEGORIES_THIS_MONTH: 3,
    QueryIntent.LARGEST_RECENT_TRANSACTIONS: 5,
    QueryIntent.CARD_VARIABLE_SPENDING_HABITS: 3,
    QueryIntent.SAVINGS_AVERAGE_RECENT_PERIODS: 3,
    QueryIntent.INCOME_SOURCE_SHARE_TREND: 3,
    QueryIntent.CATEGORY_SPEND_SHARE_TREND: 3,
    QueryIntent.PRESET_DUE_SOON: 3,
    QueryIntent.PRESET_HIGHEST_COST: 3,
    QueryIntent.PRESET_TOP_CATEGORY: 3,
    QueryIntent.CATEGORY_POTENTIAL_SAVINGS: 3,
    QueryIntent.CATEGORY_REALLOCATION_GUIDANCE: 3,
}


def sanitized_result_limit(intent: QueryIntent, requested: Optional[int]) -> int:
    if requested is None:
        return DEFAULT_RESULT_LIMITS.get(intent, 1)
    return min(max(1, requested), MAX_RESULT_LIMIT)


# -----------------------------
# Metric traits
# -----------------------------
TARGET_REQUIREMENTS: Dict[Metric, EntityKind] = {
    Metric.CATEGORY_SPEND_SHARE: EntityKind.CATEGORY,
    Metric.CATEGORY_SPEND_SHARE_TREND: EntityKind.CATEGORY,
    Metric.CATEGORY_POTENTIAL_SAVINGS: EntityKind.CATEGORY,
    Metric.CATEGORY_REALLOCATION_GUIDANCE: EntityKind.CATEGORY,
    Metric.PRESET_CATEGORY_SPEND: EntityKind.CATEGORY,
    Metric.CARD_SPEND_TOTAL: EntityKind.CARD,
    Metric.CARD_VARIABLE_SPENDING_HABITS: EntityKind.CARD,
    Metric.INCOME_SOURCE_SHARE: EntityKind.INCOME_SOURCE,
    Metric.INCOME_SOURCE_SHARE_TREND: EntityKind.INCOME_SOURCE,
}

DATELESS_METRICS: FrozenSet[Metric] = frozenset({
    Metric.PRESET_HIGHEST_COST,
    Metric.PRESET_TOP_CATEGORY,
    Metric.PRESET_CATEGORY_SPEND,
    Metric.SAVINGS_AVERAGE_RECENT_PERIODS,
    Metric.INCOME_SOURCE_SHARE_TREND,
    Metric.CATEGORY_SPEND_SHARE_TREND,
})

# Lookback metrics: their limit is a period count, not a row count
LOOKBACK_METRICS: FrozenSet[Metric] = frozenset({
    Metric.SAVINGS_AVERAGE_RECENT_PERIODS,
    Metric.INCOME_SOURCE_SHARE_TREND,
    Metric.CATEGORY_SPEND_SHARE_TREND,
})

RANKABLE_METRICS: FrozenSet[Metric] = frozenset({
    Metric.TOP_CATEGORIES,
    Metric.LARGEST_TRANSACTIONS,
    Metric.CARD_VARIABLE_SPENDING_HABITS,
    Metric.SAVINGS_AVERAGE_RECENT_PERIODS,
    Metric.INCOME_SOURCE_SHARE_TREND,
    Metric.CATEGORY_SPEND_SHARE_TREND,
    Metric.PRESET_DUE_SOON,
    Metric.PRESET_HIGHEST_COST,
    Metric.PRESET_TOP_CATEGORY,
    Metric.CATEGORY_POTENTIAL_SAVINGS,
    Metric.CATEGORY_REALLOCATION_GUIDANCE,
})


def required_target(metric: Metric) -> Optional[EntityKind]:
    return TARGET_REQUIREMENTS.get(metric)


def expects_date(metric: Metric) -> bool:
    return metric not in DATELESS_METRICS


def is_rankable(metric: Metric) -> bool:
    return metric in RANKABLE_METRICS


# -----------------------------
# Phrase tables (matched against normalized text)
# -----------------------------
HEDGE_WORDS: Tuple[str, ...] = ("maybe", "roughly", "kind of", "not sure", "i guess")

BROAD_PHRASES: Tuple[str, ...] = (
    "how am i doing",
    "how are we doing",
    "how did i do",
    "budget check in",
    "budget checkin",
    "overview",
    "summary",
    "snapshot",
)

CONTINUATION_PHRASES: Tuple[str, ...] = (
    "how about",
    "what about",
    "and last",
    "and this",
    "same for",
    "again",
    "instead",
    "now for",
)

EXPLICIT_DATE_PHRASES: Tuple[str, ...] = (
    "today",
    "yesterday",
    "this month",
    "last month",
    "this year",
    "last year",
    "past ",
    "last ",
    "from ",
    "between ",
)

EXPLICIT_DATE_PATTERN = re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b")

ALL_SCOPE_PHRASES: Dict[EntityKind, Tuple[str, ...]] = {
    EntityKind.CATEGORY: ("all categories",),
    EntityKind.CARD: ("all cards",),
    EntityKind.INCOME_SOURCE: ("all income", "all sources"),
    EntityKind.PRESET: ("all presets",),
}


def contains_any(text: str, phrases) -> bool:
    return any(phrase in text for phrase in phrases)


def has_hedge_language(normalized: str) -> bool:
    return contains_any(normalized, HEDGE_WORDS)


def has_broad_phrase(normalized: str) -> bool:
    return contains_any(normalized, BROAD_PHRASES)


def has_continuation_phrase(normalized: str) -> bool:
    return contains_any(normalized, CONTINUATION_PHRASES)


def has_explicit_date_phrase(normalized: str) -> bool:
    if contains_any(normalized, EXPLICIT_DATE_PHRASES):
        return True
    return EXPLICIT_DATE_PATTERN.search(normalized) is not None


def mentions_all_scope(normalized: str, kind: EntityKind) -> bool:
    return contains_any(normalized, ALL_SCOPE_PHRASES[kind])


# -----------------------------
# Clarification reasons
# -----------------------------
class ClarificationReason(str, Enum):
    MISSING_DATE = "missingDate"
    MISSING_CATEGORY_TARGET = "missingCategoryTarget"
    MISSING_CARD_TARGET = "missingCardTarget"
    MISSING_INCOME_SOURCE_TARGET = "missingIncomeSourceTarget"
    BROAD_PROMPT = "broadPrompt"
    LOW_CONFIDENCE_LANGUAGE = "lowConfidenceLanguage"


REASON_PROMPTS: Dict[ClarificationReason, str] = {
    ClarificationReason.MISSING_DATE: "Choose a date window so I can scope the query.",
    ClarificationReason.MISSING_CATEGORY_TARGET: "Choose a category, or run it across all categories.",
    ClarificationReason.MISSING_CARD_TARGET: "Choose a card, or run it across all cards.",
    ClarificationReason.MISSING_INCOME_SOURCE_TARGET: "Choose an income source, or run it across all sources.",
    ClarificationReason.BROAD_PROMPT: "Your request is broad, so narrowing will improve precision.",
    ClarificationReason.LOW_CONFIDENCE_LANGUAGE: "Your phrasing is ambiguous, so I need one clear direction.",
}

MISSING_TARGET_REASONS: Dict[EntityKind, ClarificationReason] = {
    EntityKind.CATEGORY: ClarificationReason.MISSING_CATEGORY_TARGET,
    EntityKind.CARD: ClarificationReason.MISSING_CARD_TARGET,
    EntityKind.INCOME_SOURCE: ClarificationReason.MISSING_INCOME_SOURCE_TARGET,
}

# Checked in this order, at most one is reported
MISSING_TARGET_PRIORITY: Tuple[EntityKind, ...] = (
    EntityKind.CATEGORY,
    EntityKind.CARD,
    EntityKind.INCOME_SOURCE,
)

MAX_SUGGESTIONS = 4
MAX_DISAMBIGUATION_CANDIDATES = 3
