import pytest

from core.pending import (
    PENDING_PRIORITY,
    AwaitingCardSelection,
    AwaitingCategoryColorConfirmation,
    AwaitingPlannedExpenseAmountTarget,
    pending_priority,
)
from core.intent import CommandIntent
from models.command import CommandPlan
from services.pending_flow import parse_choice, parse_multi_choice, parse_tri_state, parse_yes_no

CARDS = ("Chase Freedom", "Chase Sapphire", "Amex Gold")


@pytest.mark.parametrize("reply", ["yes", "Yes please", "ok", "sure!", "1"])
def test_yes_replies(reply):
    assert parse_yes_no(reply) is True


@pytest.mark.parametrize("reply", ["no", "Nope", "not now", "2"])
def test_no_replies(reply):
    assert parse_yes_no(reply) is False


@pytest.mark.parametrize("reply", ["purple", "maybe later", "3", ""])
def test_unclear_yes_no(reply):
    assert parse_yes_no(reply) is None


@pytest.mark.parametrize(
    "reply, index",
    [
        ("2", 1),
        ("option 3", 2),
        ("the first one", 0),
        ("Chase Sapphire", 1),
        ("amex", 2),
    ],
)
def test_choice_by_number_ordinal_or_name(reply, index):
    assert parse_choice(reply, CARDS) == index


@pytest.mark.parametrize("reply", ["7", "0", "discover", ""])
def test_choice_out_of_range_or_unknown(reply):
    assert parse_choice(reply, CARDS) is None


def test_multi_choice_keeps_reply_order():
    assert parse_multi_choice("3, chase freedom and 3", CARDS) == ["Amex Gold", "Chase Freedom"]


@pytest.mark.parametrize(
    "reply, label",
    [("1", "all"), ("all of them", "all"), ("let me choose", "choose"), ("skip", "skip"), ("none", "skip")],
)
def test_tri_state(reply, label):
    assert parse_tri_state(reply) == label


def test_pending_priority_order():
    plan = CommandPlan(intent=CommandIntent.ADD_EXPENSE, raw_prompt="add expense")
    color = AwaitingCategoryColorConfirmation(plan=plan, prompt="?")
    cards = AwaitingCardSelection(plan=plan, prompt="?")
    target = AwaitingPlannedExpenseAmountTarget(plan=plan, prompt="?")

    assert pending_priority(color) == 0
    assert pending_priority(color) < pending_priority(cards) < pending_priority(target)
    assert len(PENDING_PRIORITY) == 11
    assert cards.name == "AwaitingCardSelection"
