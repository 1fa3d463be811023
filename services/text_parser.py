# FILE: services/text_parser.py
"""
Pattern parser for budgeting questions.

Pure regex/keyword matching over a normalized prompt. Produces a QueryPlan
(metric, date window, limit, period unit, confidence) or None.
"""

import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from dateutil import parser as date_parser

from core.metric import ConfidenceBand, Metric, PeriodUnit, QueryIntent
from core.policy import (
    LOOKBACK_METRICS,
    contains_any,
    has_hedge_language,
    is_rankable,
    mentions_all_scope,
    required_target,
)
from models.query import DateRange, QueryPlan
from services import date_resolver

# -----------------------------
# Normalization
# -----------------------------
TYPO_REPLACEMENTS: Tuple[Tuple[str, str], ...] = (
    ("spnd", "spend"),
    ("spnding", "spending"),
    ("spnt", "spent"),
    ("spening", "spending"),
    ("expnse", "expense"),
    ("expnses", "expenses"),
    ("catgory", "category"),
    ("catgories", "categories"),
    ("grocereis", "groceries"),
    ("incom", "income"),
    ("salery", "salary"),
    ("paychek", "paycheck"),
    ("paymnt", "payment"),
    ("recuring", "recurring"),
    ("recurrng", "recurring"),
    ("budjet", "budget"),
)

_TYPO_PATTERNS = [(re.compile(rf"\b{typo}\b"), fix) for typo, fix in TYPO_REPLACEMENTS]


def normalize_for_parsing(raw_text: str) -> str:
    """Like services.utils.normalize, but keeps '-' and '/' for dates and repairs common typos."""
    text = raw_text.replace("%", " percent ").lower()
    text = re.sub(r"[^a-z0-9\s\-/]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    for pattern, fix in _TYPO_PATTERNS:
        text = pattern.sub(fix, text)
    return text


# -----------------------------
# Keyword tables
# -----------------------------
SPEND_WORDS = ("spend", "spent", "spending", "expense", "expenses", "outflow", "total", "total spend", "how much")
COMPARE_WORDS = ("compare", "comparison", "difference", "vs", "versus", "against", "changed", "change", "month over month", "mom")
RANKING_WORDS = ("top", "highest", "most", "biggest", "largest")
CATEGORY_WORDS = ("category", "categories")
CARD_WORDS = ("card", "cards", "all cards")
AVERAGE_WORDS = ("average", "avg", "mean")
SAVINGS_WORDS = ("savings", "save", "saved")
PRESET_WORDS = ("preset", "presets", "recurring", "autopay", "auto pay")
REDUCTION_WORDS = ("reduce", "cut", "lower", "decrease")
TREND_WORDS = (
    "last", "past", "period", "periods", "day", "days", "week", "weeks",
    "month", "months", "quarter", "quarters", "year", "years",
)
NAMED_CATEGORY_WORDS = (
    "groceries", "shopping", "dining", "transportation", "utilities",
    "rent", "travel", "entertainment",
)

OVERVIEW_PHRASES = (
    "how am i doing", "how are we doing", "how did i do", "how is my budget",
    "how s my budget looking", "how is my budget looking", "how are my finances",
    "budget check in", "budget checkin", "total available", "projected savings",
    "left after planned expenses", "current balance", "over budget",
)
OVERVIEW_WORDS = ("overview", "summary", "snapshot", "status", "health", "performance", "check in", "checkin")
FINANCE_CONTEXT_WORDS = ("budget", "spend", "spending", "expense", "expenses", "month", "year", "finances", "money")

MONTH_TOKENS = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

# -----------------------------
# Regexes
# -----------------------------
_EXPLICIT_RANGE_RE = re.compile(
    r"\b(?:from|between)\s+([a-z0-9\-/ ]{3,40}?)\s+(?:to|and|-|through|thru)\s+([a-z0-9\-/ ]{3,40}?)"
    r"(?=\s+(?:for|on|at|using|with)\b|$)"
)
_SINGLE_DATE_RE = re.compile(
    r"\b(?:on|for)\s+([a-z0-9\-/ ]{3,40}?)(?=\s+(?:from|to|and|through|thru|at|using|with|for)\b|$)"
)
_PAST_PERIODS_RE = re.compile(r"\b(?:last|past)\s+(\d{1,3})\s+periods?\b")
_ROLLING_RE = re.compile(r"\b(?:last|past)\s+(\d{1,3})\s+(days?|weeks?|months?)\b")
_LOOKBACK_RE = re.compile(
    r"\b(?:last|past)\s+(\d{1,2})\s+(periods?|days?|weeks?|months?|quarters?|years?)\b"
)
_LIMIT_RE = re.compile(r"\b\d+\b")

# Date literals removed before looking for a bare number
_DAY_LITERAL_RES = (
    re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b"),
    re.compile(r"\b\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?\b"),
    _LOOKBACK_RE,
    re.compile(r"\b(?:" + "|".join(MONTH_TOKENS) + r")\s+\d{1,2}\b"),
    re.compile(r"\b\d{1,2}\s+(?:" + "|".join(MONTH_TOKENS) + r")\b"),
)
_YEAR_LITERAL_RE = re.compile(r"\b(?:19|20|21)\d{2}\b")
_DATE_LITERAL_RES = _DAY_LITERAL_RES + (_YEAR_LITERAL_RE,)

_DATE_SHAPES = (
    re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$"),
    re.compile(r"^\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?$"),
    re.compile(r"^(?:" + "|".join(MONTH_TOKENS) + r") \d{1,2}(?: \d{4})?$"),
    re.compile(r"^\d{1,2} (?:" + "|".join(MONTH_TOKENS) + r")(?: \d{4})?$"),
)

_UNIT_BY_WORD = {
    "day": PeriodUnit.DAY,
    "week": PeriodUnit.WEEK,
    "month": PeriodUnit.MONTH,
    "quarter": PeriodUnit.QUARTER,
    "year": PeriodUnit.YEAR,
}


def strip_date_literals(text: str, include_years: bool = True) -> str:
    """
    Blank out dates and lookback windows so their digits are not read as
    numbers. `include_years=False` keeps bare years ("$2000" is an amount).
    """
    stripped = text
    for pattern in _DATE_LITERAL_RES if include_years else _DAY_LITERAL_RES:
        stripped = pattern.sub(" ", stripped)
    return stripped


# ---------------------------------------------------------------------
# Intent matching
# ---------------------------------------------------------------------
def _lookback(text: str) -> Optional[Tuple[int, str]]:
    match = _LOOKBACK_RE.search(text)
    if not match:
        return None
    return int(match.group(1)), match.group(2).rstrip("s")


def _matches_compare(text: str) -> bool:
    return contains_any(text, COMPARE_WORDS)


def _matches_savings_average(text: str) -> bool:
    return (
        contains_any(text, SAVINGS_WORDS)
        and contains_any(text, AVERAGE_WORDS)
        and contains_any(text, ("period", "periods", "month", "months", "last", "past"))
    )


def _matches_savings_status(text: str) -> bool:
    return contains_any(text, SAVINGS_WORDS) and contains_any(
        text, ("how am i doing", "how are we doing", "status", "outlook", "doing")
    )


def _matches_income_share(text: str) -> bool:
    income_words = ("income", "paycheck", "paychecks", "source", "sources", "salary", "wages")
    share_words = (
        "how much", "share", "comes from", "from", "percent", "percentage", "portion",
        "split", "contribution", "received", "scheduled", "recurring", "planned income", "total income",
    )
    return contains_any(text, income_words) and contains_any(text, share_words)


def _matches_income_share_trend(text: str) -> bool:
    return _matches_income_share(text) and contains_any(text, TREND_WORDS) and _lookback(text) is not None


def _matches_category_share(text: str) -> bool:
    spend_words = ("spend", "spent", "spending", "expenses")
    share_words = ("share", "how much", "percent", "percentage", "portion", "split", "contribution", "of my")

    explicit = (
        contains_any(text, CATEGORY_WORDS)
        and contains_any(text, spend_words)
        and contains_any(text, share_words)
    )
    # "what share of my spending is groceries" names no category keyword
    implicit = (
        contains_any(text, spend_words)
        and contains_any(text, share_words)
        and contains_any(f" {text} ", (" is ", " in ", " from "))
        and not contains_any(text, ("income", "source", "paycheck", "salary"))
        and not contains_any(text, ("card", "cards"))
    )
    return explicit or implicit


def _matches_category_share_trend(text: str) -> bool:
    return _matches_category_share(text) and contains_any(text, TREND_WORDS) and _lookback(text) is not None


def _matches_preset_due(text: str) -> bool:
    preset_words = PRESET_WORDS + ("scheduled payment", "scheduled payments")
    due_words = (
        "due", "coming up", "upcoming", "due soon", "next due",
        "planned expenses are coming up", "owe in planned expenses", "overdue",
    )
    return contains_any(text, preset_words) and contains_any(text, due_words)


def _matches_preset_highest_cost(text: str) -> bool:
    preset_words = PRESET_WORDS + ("planned expense", "planned expenses")
    cost_words = ("costs me the most", "most expensive", "highest cost", "costliest", "cost me the most")
    return contains_any(text, preset_words) and contains_any(text, cost_words)


def _matches_preset_top_category(text: str) -> bool:
    assignment_words = (
        "assigned", "most presets", "most preset", "most recurring",
        "most recurring charges", "most autopay",
    )
    return (
        contains_any(text, PRESET_WORDS)
        and contains_any(text, CATEGORY_WORDS)
        and contains_any(text, assignment_words)
    )


def _matches_preset_category_spend(text: str) -> bool:
    spend_words = ("how much", "spend", "cost", "per period", "each period", "per month", "monthly")
    category_scope = contains_any(text, CATEGORY_WORDS) or contains_any(f" {text} ", (" on ", " for "))
    return contains_any(text, PRESET_WORDS) and category_scope and contains_any(text, spend_words)


def _matches_category_potential_savings(text: str) -> bool:
    category_words = CATEGORY_WORDS + ("this category",) + NAMED_CATEGORY_WORDS
    return (
        contains_any(text, category_words)
        and contains_any(text, REDUCTION_WORDS)
        and contains_any(text, ("savings", "save", "potential savings"))
    )


def _matches_category_reallocation(text: str) -> bool:
    category_words = CATEGORY_WORDS + ("this category", "other categories") + NAMED_CATEGORY_WORDS
    allocation_words = (
        "realistically spend", "what could i spend", "what can i spend", "other categories",
        "reallocate", "allocation", "rebalance", "redistribute",
    )
    return (
        contains_any(text, category_words)
        and contains_any(text, allocation_words)
        and (contains_any(text, ("spend", "spending")) or contains_any(text, REDUCTION_WORDS))
    )


def _matches_overview(text: str) -> bool:
    if contains_any(text, OVERVIEW_PHRASES):
        return True
    return contains_any(text, OVERVIEW_WORDS) and contains_any(text, FINANCE_CONTEXT_WORDS)


def _matches_top_categories(text: str) -> bool:
    if contains_any(text, RANKING_WORDS) and contains_any(text, CATEGORY_WORDS + ("bucket", "buckets")):
        return True
    if contains_any(text, (
        "where am i spending most", "where am i spending the most",
        "where do i spend most", "where do i spend the most",
    )):
        return True
    return "where" in text and contains_any(text, ("spend most", "spending most", "most spending"))


def _matches_largest_transactions(text: str) -> bool:
    transaction_words = (
        "transaction", "transactions", "purchase", "purchases",
        "charge", "charges", "expense", "expenses",
    )
    return contains_any(text, ("largest", "biggest", "highest", "top")) and contains_any(text, transaction_words)


def _matches_card_habits(text: str) -> bool:
    habit_words = ("habits", "habit", "patterns", "pattern", "behavior", "trends", "trend")
    variable_words = ("variable spend", "variable spending", "spending habits")
    return (contains_any(text, CARD_WORDS) and contains_any(text, habit_words)) or contains_any(text, variable_words)


def _matches_card_spend(text: str) -> bool:
    return contains_any(text, ("spend", "spent", "spending", "total spent", "charges")) and contains_any(text, CARD_WORDS)


def _matches_income_average(text: str) -> bool:
    return contains_any(text, ("income", "actual income")) and contains_any(text, AVERAGE_WORDS)


def _matches_spend(text: str) -> bool:
    return contains_any(text, SPEND_WORDS)


# First match wins
INTENT_RULES: Tuple[Tuple[QueryIntent, Callable[[str], bool]], ...] = (
    (QueryIntent.COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH, _matches_compare),
    (QueryIntent.SAVINGS_AVERAGE_RECENT_PERIODS, _matches_savings_average),
    (QueryIntent.SAVINGS_STATUS, _matches_savings_status),
    (QueryIntent.INCOME_SOURCE_SHARE_TREND, _matches_income_share_trend),
    (QueryIntent.CATEGORY_SPEND_SHARE_TREND, _matches_category_share_trend),
    (QueryIntent.INCOME_SOURCE_SHARE, _matches_income_share),
    (QueryIntent.CATEGORY_SPEND_SHARE, _matches_category_share),
    (QueryIntent.PRESET_DUE_SOON, _matches_preset_due),
    (QueryIntent.PRESET_HIGHEST_COST, _matches_preset_highest_cost),
    (QueryIntent.PRESET_TOP_CATEGORY, _matches_preset_top_category),
    (QueryIntent.PRESET_CATEGORY_SPEND, _matches_preset_category_spend),
    (QueryIntent.CATEGORY_POTENTIAL_SAVINGS, _matches_category_potential_savings),
    (QueryIntent.CATEGORY_REALLOCATION_GUIDANCE, _matches_category_reallocation),
    (QueryIntent.PERIOD_OVERVIEW, _matches_overview),
    (QueryIntent.TOP_CATEGORIES_THIS_MONTH, _matches_top_categories),
    (QueryIntent.LARGEST_RECENT_TRANSACTIONS, _matches_largest_transactions),
    (QueryIntent.CARD_VARIABLE_SPENDING_HABITS, _matches_card_habits),
    (QueryIntent.CARD_SPEND_TOTAL, _matches_card_spend),
    (QueryIntent.INCOME_AVERAGE_ACTUAL, _matches_income_average),
    (QueryIntent.SPEND_THIS_MONTH, _matches_spend),
)


def resolved_intent(text: str) -> Optional[QueryIntent]:
    for intent, matches in INTENT_RULES:
        if matches(text):
            return intent
    return None


# ---------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------
class TextParser:
    """
    Stateless apart from the clock. Pass `now_provider` for reproducible windows.
    """

    def __init__(self, now_provider: Callable[[], datetime] = date_resolver.get_now):
        self.now_provider = now_provider

    # -----------------------------
    # Public API
    # -----------------------------
    def parse_plan(
        self,
        raw_text: str,
        default_period_unit: PeriodUnit = PeriodUnit.MONTH,
        now: Optional[datetime] = None,
    ) -> Optional[QueryPlan]:
        text = normalize_for_parsing(raw_text)
        if not text:
            return None

        intent = resolved_intent(text)
        if intent is None:
            return None

        now = now or self.now_provider()
        metric = intent.metric
        limit = self._limit(text)
        period_unit = self._period_unit(text, default_period_unit)
        confidence = self._confidence(metric, text)

        if metric in LOOKBACK_METRICS:
            lookback = _lookback(text)
            return QueryPlan(
                metric=metric,
                date_range=None,
                result_limit=lookback[0] if lookback else limit,
                confidence_band=confidence,
                period_unit=period_unit,
            )

        return QueryPlan(
            metric=metric,
            date_range=self._date_range(text, now, default_period_unit),
            result_limit=limit if is_rankable(metric) else None,
            confidence_band=confidence,
            period_unit=period_unit,
        )

    def parse_date_range(
        self,
        raw_text: str,
        default_period_unit: PeriodUnit = PeriodUnit.MONTH,
        now: Optional[datetime] = None,
    ) -> Optional[DateRange]:
        text = normalize_for_parsing(raw_text)
        if not text:
            return None
        return self._date_range(text, now or self.now_provider(), default_period_unit)

    def parse_limit(self, raw_text: str) -> Optional[int]:
        text = normalize_for_parsing(raw_text)
        if not text:
            return None
        return self._limit(text)

    def parse_period_unit(self, raw_text: str, default_period_unit: PeriodUnit = PeriodUnit.MONTH) -> Optional[PeriodUnit]:
        return self._period_unit(normalize_for_parsing(raw_text), default_period_unit)

    # -----------------------------
    # Confidence
    # -----------------------------
    @staticmethod
    def _confidence(metric: Metric, text: str) -> ConfidenceBand:
        if has_hedge_language(text):
            return ConfidenceBand.LOW
        if metric is Metric.OVERVIEW:
            return ConfidenceBand.MEDIUM
        target_kind = required_target(metric)
        if target_kind is not None and not mentions_all_scope(text, target_kind):
            # Entity enrichment upgrades this once a target is found
            return ConfidenceBand.MEDIUM
        return ConfidenceBand.HIGH

    # -----------------------------
    # Numbers
    # -----------------------------
    @staticmethod
    def _limit(text: str) -> Optional[int]:
        match = _LIMIT_RE.search(strip_date_literals(text))
        return int(match.group(0)) if match else None

    @staticmethod
    def _period_unit(text: str, default_period_unit: PeriodUnit) -> Optional[PeriodUnit]:
        lookback = _lookback(text)
        if lookback is None:
            return None
        word = lookback[1]
        if word == "period":
            return default_period_unit
        return _UNIT_BY_WORD.get(word)

    # -----------------------------
    # Date windows
    # -----------------------------
    def _date_range(self, text: str, now: datetime, default_period_unit: PeriodUnit) -> Optional[DateRange]:
        explicit = self._explicit_range(text, now)
        if explicit:
            return explicit

        single = self._single_date(text, now)
        if single:
            return single

        periods = _PAST_PERIODS_RE.search(text)
        if periods:
            window = date_resolver.past_periods_range(int(periods.group(1)), default_period_unit, now)
            if window:
                return window

        if "today" in text:
            return date_resolver.day_range(now)
        if "yesterday" in text:
            return date_resolver.day_range(now - timedelta(days=1))
        if contains_any(text, ("last month", "previous month")):
            return date_resolver.previous_month_range(now)
        if contains_any(text, ("this month", "current month", "month to date")):
            return date_resolver.month_range(now)
        if contains_any(text, ("last year", "previous year")):
            return date_resolver.previous_year_range(now)
        if contains_any(text, ("this year", "current year", "year to date")):
            return date_resolver.year_range(now)

        named = self._named_month(text, now)
        if named:
            return named

        rolling = _ROLLING_RE.search(text)
        if rolling:
            return date_resolver.rolling_range(int(rolling.group(1)), rolling.group(2), now)

        return None

    def _explicit_range(self, text: str, now: datetime) -> Optional[DateRange]:
        match = _EXPLICIT_RANGE_RE.search(text)
        if not match:
            return None
        start = self.parse_date_candidate(match.group(1), now)
        end = self.parse_date_candidate(match.group(2), now)
        if start is None or end is None:
            return None
        return DateRange(start=date_resolver.start_of_day(start), end=date_resolver.day_range(end).end)

    def _single_date(self, text: str, now: datetime) -> Optional[DateRange]:
        match = _SINGLE_DATE_RE.search(text)
        if not match:
            return None
        moment = self.parse_date_candidate(match.group(1), now)
        return date_resolver.day_range(moment) if moment else None

    @staticmethod
    def _named_month(text: str, now: datetime) -> Optional[DateRange]:
        tokens: List[str] = text.split(" ")
        for index, token in enumerate(tokens):
            month = MONTH_TOKENS.get(token)
            if month is None:
                continue
            year = None
            for neighbor in (index + 1, index - 1):
                if 0 <= neighbor < len(tokens) and tokens[neighbor].isdigit():
                    value = int(tokens[neighbor])
                    if 1900 <= value <= 2200:
                        year = value
                        break
            return date_resolver.named_month_range(month, now, year)
        return None

    @staticmethod
    def parse_date_candidate(candidate: str, now: datetime) -> Optional[datetime]:
        """
        Parse one date literal (ISO, US numeric, or month-name forms).
        A missing year defaults to the current one.
        """
        trimmed = candidate.strip()
        if not trimmed or not any(shape.match(trimmed) for shape in _DATE_SHAPES):
            return None
        default = date_resolver.start_of_day(now).replace(month=1, day=1)
        try:
            return date_parser.parse(trimmed, default=default)
        except (ValueError, OverflowError):
            return None
