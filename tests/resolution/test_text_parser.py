from datetime import datetime, timedelta

from core.metric import ConfidenceBand, Metric, PeriodUnit
from services import date_resolver


def test_top_categories_this_month(parser, now):
    plan = parser.parse_plan("top 3 categories this month", now=now)

    assert plan.metric is Metric.TOP_CATEGORIES
    assert plan.result_limit == 3
    assert plan.date_range == date_resolver.month_range(now)
    assert plan.confidence_band is ConfidenceBand.HIGH


def test_spend_yesterday(parser, now):
    plan = parser.parse_plan("How much did I spend yesterday?", now=now)

    assert plan.metric is Metric.SPEND_TOTAL
    assert plan.date_range == date_resolver.day_range(now - timedelta(days=1))
    assert plan.result_limit is None


def test_named_month_without_year_uses_most_recent(parser, now):
    march = parser.parse_plan("spend in march", now=now)
    december = parser.parse_plan("spend in december", now=now)

    assert march.date_range.start == datetime(2026, 3, 1)
    assert december.date_range.start == datetime(2025, 12, 1)


def test_explicit_range_and_limit_ignores_date_literals(parser, now):
    plan = parser.parse_plan("top categories from 2026-10-01 to 2026-10-15", now=now)

    assert plan.metric is Metric.TOP_CATEGORIES
    assert plan.result_limit is None
    assert plan.query.result_limit == 3
    assert plan.date_range.start == datetime(2026, 10, 1)
    assert plan.date_range.end == datetime(2026, 10, 15, 23, 59, 59)


def test_largest_transactions_limit(parser, now):
    plan = parser.parse_plan("largest 5 transactions last month", now=now)

    assert plan.metric is Metric.LARGEST_TRANSACTIONS
    assert plan.result_limit == 5
    assert plan.date_range == date_resolver.previous_month_range(now)


def test_lookback_metric_uses_period_count(parser, now):
    plan = parser.parse_plan("average savings over the last 6 months", now=now)

    assert plan.metric is Metric.SAVINGS_AVERAGE_RECENT_PERIODS
    assert plan.result_limit == 6
    assert plan.date_range is None
    assert plan.period_unit is PeriodUnit.MONTH


# ------------------------------------------------------------
# Confidence
# ------------------------------------------------------------
def test_overview_is_medium(parser, now):
    plan = parser.parse_plan("how am I doing this month", now=now)
    assert plan.metric is Metric.OVERVIEW
    assert plan.confidence_band is ConfidenceBand.MEDIUM


def test_hedge_language_is_low(parser, now):
    plan = parser.parse_plan("maybe how am I doing", now=now)
    assert plan.metric is Metric.OVERVIEW
    assert plan.confidence_band is ConfidenceBand.LOW


def test_target_metric_without_all_scope_is_medium(parser, now):
    assert parser.parse_plan("card spend", now=now).confidence_band is ConfidenceBand.MEDIUM
    assert parser.parse_plan("card spend across all cards", now=now).confidence_band is ConfidenceBand.HIGH


def test_unmatched_prompt_returns_none(parser, now):
    assert parser.parse_plan("what's the weather like", now=now) is None
    assert parser.parse_plan("   ", now=now) is None


# ------------------------------------------------------------
# Date helpers
# ------------------------------------------------------------
def test_past_periods_week_starts_monday(now):
    window = date_resolver.past_periods_range(2, PeriodUnit.WEEK, now)

    # 2026-10-18 is a Sunday
    assert window.start == datetime(2026, 10, 5)
    assert window.end == datetime(2026, 10, 18)


def test_reversed_range_bounds_are_swapped():
    window = date_resolver.day_range(datetime(2026, 1, 2))
    flipped = type(window)(start=window.end, end=window.start)
    assert flipped.start < flipped.end
