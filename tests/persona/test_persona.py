import pytest

from core.metric import QueryIntent
from models.query import Answer, AnswerKind, AnswerRow
from services.persona import (
    PROFILES,
    PersonaFormatter,
    PersonaID,
    PersonaLines,
    fnv1a64,
    lines_for,
    stable_index,
)


@pytest.fixture
def formatter() -> PersonaFormatter:
    return PersonaFormatter(session_seed=42)


def metric_answer(**fields) -> Answer:
    defaults = dict(kind=AnswerKind.METRIC, title="Spend This Month", subtitle="Oct 1 - Oct 31", primary_value="$452.00")
    defaults.update(fields)
    return Answer(**defaults)


# ------------------------------------------------------------
# Hashing
# ------------------------------------------------------------
@pytest.mark.parametrize(
    "text, expected",
    [
        ("", 0xCBF29CE484222325),
        ("a", 0xAF63DC4C8601EC8C),
        ("foobar", 0x85944171F73967E8),
    ],
)
def test_fnv1a64_reference_values(text, expected):
    assert fnv1a64(text) == expected


def test_stable_index_is_deterministic_and_bounded():
    picks = [stable_index(3, f"response.marina.metric.{n}", 42) for n in range(50)]

    assert picks == [stable_index(3, f"response.marina.metric.{n}", 42) for n in range(50)]
    assert all(0 <= pick < 3 for pick in picks)
    assert stable_index(0, "anything", 42) == 0


def test_stable_index_depends_on_seed():
    keys = [f"greeting.{n}" for n in range(30)]
    first = [stable_index(5, key, 1) for key in keys]
    second = [stable_index(5, key, 2) for key in keys]

    assert first != second


# ------------------------------------------------------------
# Greeting and unresolved
# ------------------------------------------------------------
def test_greeting_uses_display_name_and_summary(formatter):
    greeting = formatter.greeting()

    assert greeting.title == "Marina"
    assert greeting.subtitle.startswith(PROFILES[PersonaID.MARINA].summary)
    assert greeting.kind is AnswerKind.MESSAGE


def test_unresolved_is_stable_per_prompt(formatter):
    first = formatter.unresolved("what about the weather")
    second = formatter.unresolved("  What about the weather ")

    assert first.title == PROFILES[PersonaID.MARINA].unresolved_title
    assert first.subtitle == second.subtitle
    assert first.subtitle in lines_for(PersonaID.MARINA).unresolved


# ------------------------------------------------------------
# Styled answers
# ------------------------------------------------------------
def test_styled_answer_keeps_facts_as_sources(formatter):
    answer = metric_answer()

    styled = formatter.styled_answer(answer, user_prompt="how much did I spend")

    line, sources = styled.subtitle.split("\n\n")
    assert line in lines_for(PersonaID.MARINA).response[AnswerKind.METRIC]
    assert sources == "Sources: Oct 1 - Oct 31"
    assert styled.title == "Spend This Month"
    assert styled.user_prompt == "how much did I spend"
    assert styled.primary_value == "$452.00"


def test_styled_answer_same_id_same_line(formatter):
    answer = metric_answer()

    assert formatter.styled_answer(answer).subtitle == formatter.styled_answer(answer).subtitle


def test_empty_message_gets_no_data_copy(formatter):
    empty = Answer(kind=AnswerKind.MESSAGE, title="Largest Transactions", subtitle="Oct 1 - Oct 31")

    styled = formatter.styled_answer(empty)

    assert styled.title == PROFILES[PersonaID.MARINA].no_data_title
    facts = styled.subtitle.split("Sources: ")[1]
    assert facts in lines_for(PersonaID.MARINA).no_data


def test_answer_without_subtitle_has_persona_line_only(formatter):
    styled = formatter.styled_answer(metric_answer(subtitle=None))

    assert "Sources:" not in styled.subtitle


# ------------------------------------------------------------
# Follow-ups
# ------------------------------------------------------------
def test_follow_ups_for_low_confidence(formatter):
    answer = metric_answer(subtitle="Best-effort: I assumed this month.")

    suggestions = formatter.follow_up_suggestions(answer)

    assert [s.query.intent for s in suggestions] == [
        QueryIntent.SPEND_THIS_MONTH,
        QueryIntent.TOP_CATEGORIES_THIS_MONTH,
    ]


def test_follow_ups_for_medium_confidence(formatter):
    answer = metric_answer(subtitle="Using likely match Chase Freedom.")

    intents = [s.query.intent for s in formatter.follow_up_suggestions(answer)]

    assert intents == [QueryIntent.TOP_CATEGORIES_THIS_MONTH, QueryIntent.COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH]


def test_follow_ups_by_title_and_kind(formatter):
    savings = formatter.follow_up_suggestions(metric_answer(title="Savings Status"))
    listing = formatter.follow_up_suggestions(
        Answer(kind=AnswerKind.LIST, title="Top Categories", rows=[AnswerRow(title="Dining", value="$80.00")])
    )

    assert savings[1].query.intent is QueryIntent.SAVINGS_AVERAGE_RECENT_PERIODS
    assert savings[1].query.result_limit == 6
    assert [s.query.intent for s in listing] == [
        QueryIntent.SPEND_THIS_MONTH,
        QueryIntent.LARGEST_RECENT_TRANSACTIONS,
    ]


def test_follow_up_titles_carry_a_lead(formatter):
    leads = lines_for(PersonaID.MARINA).follow_up_leads

    for suggestion in formatter.follow_up_suggestions(metric_answer()):
        lead, _, action = suggestion.title.partition(" ")
        assert lead in leads
        assert action


# ------------------------------------------------------------
# Catalog
# ------------------------------------------------------------
def test_fallback_lines_come_from_profile():
    profile = PROFILES[PersonaID.MARINA]

    fallback = PersonaLines.fallback(profile)

    assert fallback.no_data == (profile.no_data_subtitle,)
    assert fallback.greeting == (profile.greeting_subtitle,)
    assert set(fallback.response) == set(AnswerKind)
