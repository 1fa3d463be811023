import pytest

from core.metric import ConfidenceBand, Metric
from core.policy import MAX_SUGGESTIONS, ClarificationReason
from models.ledger import Card, WorkspaceEntities
from models.query import QueryPlan, SessionContext
from services import date_resolver
from services.clarification import COMPARE_WITH_LAST_MONTH, resolve_clarification


@pytest.fixture
def two_cards() -> WorkspaceEntities:
    return WorkspaceEntities(cards=[Card(name="Chase Freedom"), Card(name="Chase Sapphire")])


def assert_suggestion_contract(decision):
    """
    Suggestions are capped and titles never repeat.
    """
    titles = [suggestion.title for suggestion in decision.suggestions]
    assert len(titles) <= MAX_SUGGESTIONS
    assert len(titles) == len(set(titles))


# ------------------------------------------------------------
# Entity disambiguation
# ------------------------------------------------------------
def test_card_spend_with_two_cards_blocks_for_disambiguation(resolver, two_cards, now):
    plan = resolver.resolve("card spend", two_cards, SessionContext(), now).plan
    decision = resolve_clarification(plan, "card spend", two_cards, now)

    assert decision.reasons == (ClarificationReason.MISSING_CARD_TARGET,)
    assert [s.title for s in decision.suggestions] == ["Chase Freedom", "Chase Sapphire", "All cards"]
    assert decision.should_run_best_effort is False
    assert decision.is_blocking
    assert decision.suggestions[0].query.target_name == "Chase Freedom"
    assert decision.suggestions[-1].query.target_name is None


def test_disambiguation_applies_even_at_high_confidence(entities, now):
    plan = QueryPlan(
        metric=Metric.CARD_SPEND_TOTAL,
        date_range=date_resolver.month_range(now),
        confidence_band=ConfidenceBand.HIGH,
    )
    decision = resolve_clarification(plan, "chase spend", entities, now)

    assert decision is not None
    assert [s.title for s in decision.suggestions] == ["Chase Freedom", "Chase Sapphire", "All cards"]


def test_single_close_match_does_not_disambiguate(entities, now):
    plan = QueryPlan(
        metric=Metric.CARD_SPEND_TOTAL,
        date_range=date_resolver.month_range(now),
        confidence_band=ConfidenceBand.HIGH,
    )
    assert resolve_clarification(plan, "amex spend", entities, now) is None


def test_all_scope_skips_disambiguation(entities, now):
    plan = QueryPlan(
        metric=Metric.CARD_SPEND_TOTAL,
        date_range=date_resolver.month_range(now),
        confidence_band=ConfidenceBand.MEDIUM,
    )
    assert resolve_clarification(plan, "spend across all cards", entities, now) is None


# ------------------------------------------------------------
# Confidence gating
# ------------------------------------------------------------
def test_high_confidence_runs_silently(entities, now):
    plan = QueryPlan(metric=Metric.SPEND_TOTAL, confidence_band=ConfidenceBand.HIGH)
    assert resolve_clarification(plan, "spend", entities, now) is None


def test_medium_without_reasons_runs_silently(entities, now):
    plan = QueryPlan(
        metric=Metric.SPEND_TOTAL,
        date_range=date_resolver.month_range(now),
        confidence_band=ConfidenceBand.MEDIUM,
    )
    assert resolve_clarification(plan, "spend this month", entities, now) is None


def test_medium_missing_date_runs_best_effort(entities, now):
    plan = QueryPlan(metric=Metric.SPEND_TOTAL, confidence_band=ConfidenceBand.MEDIUM)
    decision = resolve_clarification(plan, "spend", entities, now)

    assert decision.reasons == (ClarificationReason.MISSING_DATE,)
    assert decision.should_run_best_effort is True
    assert decision.subtitle.startswith("Likely match complete.")
    assert [s.title for s in decision.suggestions][:2] == ["Use this month", "Use last month"]
    assert decision.suggestions[1].query.date_range == date_resolver.previous_month_range(now)


def test_low_confidence_always_clarifies(entities, now):
    plan = QueryPlan(
        metric=Metric.SPEND_TOTAL,
        date_range=date_resolver.month_range(now),
        confidence_band=ConfidenceBand.LOW,
    )
    decision = resolve_clarification(plan, "maybe spend this month", entities, now)

    assert decision is not None
    assert decision.reasons == (ClarificationReason.LOW_CONFIDENCE_LANGUAGE,)
    assert decision.is_blocking
    assert decision.subtitle.startswith("I need one more detail before I run this.")
    assert [s.title for s in decision.suggestions] == [
        "How am I doing this month?",
        "Top 3 categories this month",
    ]


def test_broad_prompt_puts_comparison_first(entities, now):
    plan = QueryPlan(metric=Metric.OVERVIEW, confidence_band=ConfidenceBand.MEDIUM)
    decision = resolve_clarification(plan, "how am i doing", entities, now)

    assert decision.reasons == (ClarificationReason.MISSING_DATE, ClarificationReason.BROAD_PROMPT)
    assert decision.suggestions[0].title == COMPARE_WITH_LAST_MONTH
    assert_suggestion_contract(decision)


# ------------------------------------------------------------
# Suggestion contract
# ------------------------------------------------------------
@pytest.mark.parametrize(
    "metric, band, prompt",
    [
        (Metric.OVERVIEW, ConfidenceBand.LOW, "maybe how am i doing"),
        (Metric.CATEGORY_SPEND_SHARE, ConfidenceBand.MEDIUM, "spend share"),
        (Metric.INCOME_SOURCE_SHARE, ConfidenceBand.LOW, "maybe income share"),
        (Metric.CARD_VARIABLE_SPENDING_HABITS, ConfidenceBand.MEDIUM, "habits"),
        (Metric.PRESET_DUE_SOON, ConfidenceBand.LOW, "kind of due"),
    ],
)
def test_suggestions_are_capped_and_unique(entities, now, metric, band, prompt):
    decision = resolve_clarification(QueryPlan(metric=metric, confidence_band=band), prompt, entities, now)

    assert decision is not None
    assert_suggestion_contract(decision)
