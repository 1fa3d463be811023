# core/metric.py
from enum import Enum
from typing import Dict


class Metric(str, Enum):
    """
    The budgeting question a plan answers.
    Every metric has exactly one QueryIntent (see METRIC_TO_INTENT).
    """

    OVERVIEW = "overview"
    SPEND_TOTAL = "spendTotal"
    TOP_CATEGORIES = "topCategories"
    MONTH_COMPARISON = "monthComparison"
    LARGEST_TRANSACTIONS = "largestTransactions"
    CARD_SPEND_TOTAL = "cardSpendTotal"
    CARD_VARIABLE_SPENDING_HABITS = "cardVariableSpendingHabits"
    INCOME_AVERAGE_ACTUAL = "incomeAverageActual"
    SAVINGS_STATUS = "savingsStatus"
    SAVINGS_AVERAGE_RECENT_PERIODS = "savingsAverageRecentPeriods"
    INCOME_SOURCE_SHARE = "incomeSourceShare"
    CATEGORY_SPEND_SHARE = "categorySpendShare"
    INCOME_SOURCE_SHARE_TREND = "incomeSourceShareTrend"
    CATEGORY_SPEND_SHARE_TREND = "categorySpendShareTrend"
    PRESET_DUE_SOON = "presetDueSoon"
    PRESET_HIGHEST_COST = "presetHighestCost"
    PRESET_TOP_CATEGORY = "presetTopCategory"
    PRESET_CATEGORY_SPEND = "presetCategorySpend"
    CATEGORY_POTENTIAL_SAVINGS = "categoryPotentialSavings"
    CATEGORY_REALLOCATION_GUIDANCE = "categoryReallocationGuidance"

    @property
    def intent(self) -> "QueryIntent":
        return METRIC_TO_INTENT[self]


class QueryIntent(str, Enum):
    """
    Externally addressable identity of a metric (used by suggestions,
    telemetry and the query engine).
    """

    PERIOD_OVERVIEW = "periodOverview"
    SPEND_THIS_MONTH = "spendThisMonth"
    TOP_CATEGORIES_THIS_MONTH = "topCategoriesThisMonth"
    COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH = "compareThisMonthToPreviousMonth"
    LARGEST_RECENT_TRANSACTIONS = "largestRecentTransactions"
    CARD_SPEND_TOTAL = "cardSpendTotal"
    CARD_VARIABLE_SPENDING_HABITS = "cardVariableSpendingHabits"
    INCOME_AVERAGE_ACTUAL = "incomeAverageActual"
    SAVINGS_STATUS = "savingsStatus"
    SAVINGS_AVERAGE_RECENT_PERIODS = "savingsAverageRecentPeriods"
    INCOME_SOURCE_SHARE = "incomeSourceShare"
    CATEGORY_SPEND_SHARE = "categorySpendShare"
    INCOME_SOURCE_SHARE_TREND = "incomeSourceShareTrend"
    CATEGORY_SPEND_SHARE_TREND = "categorySpendShareTrend"
    PRESET_DUE_SOON = "presetDueSoon"
    PRESET_HIGHEST_COST = "presetHighestCost"
    PRESET_TOP_CATEGORY = "presetTopCategory"
    PRESET_CATEGORY_SPEND = "presetCategorySpend"
    CATEGORY_POTENTIAL_SAVINGS = "categoryPotentialSavings"
    CATEGORY_REALLOCATION_GUIDANCE = "categoryReallocationGuidance"

    @property
    def metric(self) -> Metric:
        return INTENT_TO_METRIC[self]


class PeriodUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class ConfidenceBand(str, Enum):
    """
    How sure the resolver is about a plan. Ordered: LOW < MEDIUM < HIGH.
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    # -----------------------------
    # Semantic helpers (SAFE)
    # -----------------------------
    @property
    def rank(self) -> int:
        return {ConfidenceBand.LOW: 0, ConfidenceBand.MEDIUM: 1, ConfidenceBand.HIGH: 2}[self]

    def is_high(self) -> bool:
        return self is ConfidenceBand.HIGH

    def is_medium(self) -> bool:
        return self is ConfidenceBand.MEDIUM

    def is_low(self) -> bool:
        return self is ConfidenceBand.LOW


# -----------------------------
# Metric <-> Intent (SINGLE SOURCE OF TRUTH)
# -----------------------------
METRIC_TO_INTENT: Dict[Metric, QueryIntent] = {
    Metric.OVERVIEW: QueryIntent.PERIOD_OVERVIEW,
    Metric.SPEND_TOTAL: QueryIntent.SPEND_THIS_MONTH,
    Metric.TOP_CATEGORIES: QueryIntent.TOP_CATEGORIES_THIS_MONTH,
    Metric.MONTH_COMPARISON: QueryIntent.COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH,
    Metric.LARGEST_TRANSACTIONS: QueryIntent.LARGEST_RECENT_TRANSACTIONS,
    Metric.CARD_SPEND_TOTAL: QueryIntent.CARD_SPEND_TOTAL,
    Metric.CARD_VARIABLE_SPENDING_HABITS: QueryIntent.CARD_VARIABLE_SPENDING_HABITS,
    Metric.INCOME_AVERAGE_ACTUAL: QueryIntent.INCOME_AVERAGE_ACTUAL,
    Metric.SAVINGS_STATUS: QueryIntent.SAVINGS_STATUS,
    Metric.SAVINGS_AVERAGE_RECENT_PERIODS: QueryIntent.SAVINGS_AVERAGE_RECENT_PERIODS,
    Metric.INCOME_SOURCE_SHARE: QueryIntent.INCOME_SOURCE_SHARE,
    Metric.CATEGORY_SPEND_SHARE: QueryIntent.CATEGORY_SPEND_SHARE,
    Metric.INCOME_SOURCE_SHARE_TREND: QueryIntent.INCOME_SOURCE_SHARE_TREND,
    Metric.CATEGORY_SPEND_SHARE_TREND: QueryIntent.CATEGORY_SPEND_SHARE_TREND,
    Metric.PRESET_DUE_SOON: QueryIntent.PRESET_DUE_SOON,
    Metric.PRESET_HIGHEST_COST: QueryIntent.PRESET_HIGHEST_COST,
    Metric.PRESET_TOP_CATEGORY: QueryIntent.PRESET_TOP_CATEGORY,
    Metric.PRESET_CATEGORY_SPEND: QueryIntent.PRESET_CATEGORY_SPEND,
    Metric.CATEGORY_POTENTIAL_SAVINGS: QueryIntent.CATEGORY_POTENTIAL_SAVINGS,
    Metric.CATEGORY_REALLOCATION_GUIDANCE: QueryIntent.CATEGORY_REALLOCATION_GUIDANCE,
}

INTENT_TO_METRIC: Dict[QueryIntent, Metric] = {
    intent: metric for metric, intent in METRIC_TO_INTENT.items()
}


def _assert_total_mapping() -> None:
    missing_metrics = [m.value for m in Metric if m not in METRIC_TO_INTENT]
    missing_intents = [i.value for i in QueryIntent if i not in INTENT_TO_METRIC]
    if missing_metrics or missing_intents:
        raise RuntimeError(
            "Metric/QueryIntent mapping is not a bijection: "
            f"metrics without intent={missing_metrics}, "
            f"intents without metric={missing_intents}"
        )


_assert_total_mapping()
