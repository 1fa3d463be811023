"""
Full turns through ConversationEngine / ConversationSession.
"""

from unittest.mock import MagicMock

import pytest

from core.metric import Metric
from core.pending import AwaitingCardStyleStep, AwaitingDeleteConfirmation, CardStyleStep
from core.policy import MAX_SUGGESTIONS
from executors.base import CollaboratorError
from models.ledger import Card, WorkspaceEntities
from services import date_resolver
from services.clarification import COMPARE_WITH_LAST_MONTH
from services.conversation_engine import ConversationEngine, ConversationSession, ConversationState, TurnOutcome
from services.conversation_store import TelemetryOutcome
from services.persona import PROFILES, PersonaFormatter, PersonaID
from services.plan_resolver import PlanResolver
from services.text_parser import TextParser

WORKSPACE = "test-workspace"


def assert_state_untouched(result, before: ConversationState):
    """
    Clarifications, unresolved prompts and failures hand back the same state.
    """
    assert result.state is before


# ------------------------------------------------------------
# Queries
# ------------------------------------------------------------
def test_top_categories_resolves_and_updates_context(session, entities, now):
    result = session.handle("top 3 categories this month", entities)

    assert result.outcome is TurnOutcome.RESOLVED
    assert result.answer.title == "Top Categories This Month"
    assert [row.title for row in result.answer.rows] == ["Housing", "Travel", "Dining"]
    assert result.answer.subtitle.endswith("Sources: October 2026")
    assert session.state.context.last_metric is Metric.TOP_CATEGORIES
    assert session.state.context.result_limit == 3
    assert session.state.context.date_range == date_resolver.month_range(now)
    assert len(result.suggestions) <= MAX_SUGGESTIONS


def test_follow_up_reuses_card_target(session, entities, now):
    session.handle("How much did I spend on my amex card?", entities)

    result = session.handle("how about last month", entities)

    assert result.outcome is TurnOutcome.RESOLVED
    assert session.state.context.last_metric is Metric.CARD_SPEND_TOTAL
    assert session.state.context.target_name == "Amex Gold"
    assert session.state.context.date_range == date_resolver.previous_month_range(now)


def test_ambiguous_card_blocks_and_keeps_state(session, now):
    two_cards = WorkspaceEntities(cards=[Card(name="Chase Freedom"), Card(name="Chase Sapphire")])
    before = session.state

    result = session.handle("card spend", two_cards)

    assert result.outcome is TurnOutcome.CLARIFICATION
    assert result.answer.title == "Quick check before I run this."
    assert result.clarification.is_blocking
    assert [s.title for s in result.suggestions] == ["Chase Freedom", "Chase Sapphire", "All cards"]
    assert_state_untouched(result, before)


def test_partial_name_shared_by_two_cards_asks(session, entities):
    before = session.state

    result = session.handle("chase card spend this month", entities)

    assert result.outcome is TurnOutcome.CLARIFICATION
    assert result.clarification.is_blocking
    assert [s.title for s in result.suggestions] == ["Chase Freedom", "Chase Sapphire", "All cards"]
    assert_state_untouched(result, before)


def test_tapping_a_clarification_chip_runs_it(session):
    two_cards = WorkspaceEntities(cards=[Card(name="Chase Freedom"), Card(name="Chase Sapphire")])
    chip = session.handle("card spend", two_cards).suggestions[1]

    result = session.tap(chip, two_cards)

    assert result.outcome is TurnOutcome.RESOLVED
    assert result.answer.user_prompt == "Chase Sapphire"
    assert session.state.context.last_metric is Metric.CARD_SPEND_TOTAL
    assert session.state.context.target_name == "Chase Sapphire"


def test_medium_confidence_runs_best_effort(session, entities, telemetry):
    result = session.handle("how am i doing", entities)

    assert result.outcome is TurnOutcome.CLARIFICATION
    assert result.clarification.should_run_best_effort
    assert result.answer.title == "Budget Overview"
    assert "Likely match complete." in result.answer.subtitle
    assert result.suggestions[0].title == COMPARE_WITH_LAST_MONTH
    assert session.state.context.last_metric is Metric.OVERVIEW

    event = telemetry.load_events(WORKSPACE)[-1]
    assert event.outcome is TelemetryOutcome.CLARIFICATION
    assert event.notes == "bestEffort"


def test_unresolved_prompt(session, entities):
    before = session.state

    result = session.handle("tell me a joke", entities)

    assert result.outcome is TurnOutcome.UNRESOLVED
    assert result.answer.title == PROFILES[PersonaID.MARINA].unresolved_title
    assert result.suggestions
    assert_state_untouched(result, before)


def test_telemetry_records_each_turn(session, entities, telemetry):
    session.handle("top 3 categories this month", entities)
    session.handle("tell me a joke", entities)
    session.handle("delete the $40 expense from yesterday", entities)

    events = telemetry.load_events(WORKSPACE)

    assert [e.outcome for e in events] == [
        TelemetryOutcome.RESOLVED,
        TelemetryOutcome.UNRESOLVED,
        TelemetryOutcome.CLARIFICATION,
    ]
    assert [e.source for e in events] == ["parser", "none", "command"]
    assert events[0].intent == "topCategoriesThisMonth"
    assert events[0].normalized_prompt == "top 3 categories this month"


def test_answers_are_persisted(session, entities, conversations):
    session.handle("top 3 categories this month", entities)
    session.handle("tell me a joke", entities)

    stored = conversations.load_answers(WORKSPACE)

    assert [a.user_prompt for a in stored] == ["top 3 categories this month", "tell me a joke"]


# ------------------------------------------------------------
# Commands and pending turns
# ------------------------------------------------------------
def test_delete_with_confirmation(session, entities):
    first = session.handle("delete the $40 expense from yesterday", entities)

    assert first.outcome is TurnOutcome.COMMAND
    assert isinstance(session.state.pending, AwaitingDeleteConfirmation)
    assert first.answer.title == "Delete Coffee - $40.00 on Oct 17?"

    second = session.handle("yes", entities)

    assert second.outcome is TurnOutcome.PENDING
    assert second.answer.title == "Deleted Coffee ($40.00)."
    assert session.state.pending is None
    assert "Coffee" not in [e.description for e in entities.variable_expenses]


def test_delete_with_date_before_amount_finds_record(session, entities):
    result = session.handle("delete the expense on 2026-10-17 for $40", entities)

    assert result.outcome is TurnOutcome.COMMAND
    assert isinstance(session.state.pending, AwaitingDeleteConfirmation)
    assert result.answer.title == "Delete Coffee - $40.00 on Oct 17?"


def test_pending_question_takes_priority_over_new_queries(session, entities):
    session.handle("delete the $40 expense from yesterday", entities)
    pending = session.state.pending

    result = session.handle("top 3 categories this month", entities)

    assert result.outcome is TurnOutcome.PENDING
    assert result.answer.title == pending.prompt
    assert session.state.pending is pending


def test_card_wizard_then_clear(session, entities):
    added = session.handle("add a card called Citi", entities)
    assert added.answer.title == "Added card Citi. Want to pick a theme and effect for it?"

    session.handle("yes", entities)
    assert isinstance(session.state.pending, AwaitingCardStyleStep)
    assert session.state.pending.step is CardStyleStep.THEME

    session.clear()
    assert session.state == ConversationState()

    result = session.handle("top 3 categories this month", entities)
    assert result.outcome is TurnOutcome.RESOLVED


def test_clear_drops_stored_answers(session, entities, conversations):
    session.handle("top 3 categories this month", entities)

    session.clear()

    assert conversations.load_answers(WORKSPACE) == []


def test_command_keeps_query_context(session, entities):
    session.handle("top 3 categories this month", entities)
    context = session.state.context

    session.handle("add a category called Pets color blue", entities)

    assert session.state.context == context
    assert entities.categories[-1].name == "Pets"


# ------------------------------------------------------------
# Failures and isolation
# ------------------------------------------------------------
def test_query_engine_failure_leaves_state_unchanged(ledger, entities, now):
    failing = MagicMock()
    failing.execute.side_effect = CollaboratorError("ledger offline")
    engine = ConversationEngine(
        query_engine=failing,
        mutations=ledger,
        persona=PersonaFormatter(session_seed=42),
        plan_resolver=PlanResolver(TextParser(now_provider=lambda: now)),
        now_provider=lambda: now,
    )
    state = ConversationState()

    result = engine.handle_turn("top 3 categories this month", entities, state, WORKSPACE)

    assert result.outcome is TurnOutcome.ERROR
    assert result.answer.title == "Something went wrong."
    assert result.state is state
    failing.execute.assert_called_once()


def test_sessions_do_not_share_state(engine, entities):
    first = ConversationSession(engine, workspace_id="ws-1")
    second = ConversationSession(engine, workspace_id="ws-2")

    first.handle("delete the $40 expense from yesterday", entities)

    assert first.state.pending is not None
    assert second.state.pending is None
    assert second.handle("top 3 categories this month", entities).outcome is TurnOutcome.RESOLVED


def test_greeting(engine):
    assert engine.greeting().title == "Marina"


@pytest.mark.parametrize("text", ["", "   "])
def test_blank_prompt_is_unresolved(session, entities, text):
    assert session.handle(text, entities).outcome is TurnOutcome.UNRESOLVED
