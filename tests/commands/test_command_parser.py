from datetime import timedelta

import pytest

from core.intent import CommandIntent, PlannedExpenseAmountTarget
from services import date_resolver
from services.command_parser import COLOR_ALIASES, CommandParser, closest_color


@pytest.fixture
def commands(parser) -> CommandParser:
    return CommandParser(parser)


# ------------------------------------------------------------
# Intent detection
# ------------------------------------------------------------
@pytest.mark.parametrize(
    "prompt, intent",
    [
        ("mark paycheck income as received", CommandIntent.MARK_INCOME_RECEIVED),
        ("delete my last expense", CommandIntent.DELETE_LAST_EXPENSE),
        ("remove my last income", CommandIntent.DELETE_LAST_INCOME),
        ("move this expense to Dining category", CommandIntent.MOVE_EXPENSE_CATEGORY),
        ("update rent planned amount to 1600", CommandIntent.UPDATE_PLANNED_EXPENSE_AMOUNT),
        ("create a budget called October", CommandIntent.ADD_BUDGET),
        ("add a preset called Gym 30", CommandIntent.ADD_PRESET),
        ("add a card called Citi", CommandIntent.ADD_CARD),
        ("add a category called Pets", CommandIntent.ADD_CATEGORY),
        ("delete paycheck income", CommandIntent.DELETE_INCOME),
        ("edit paycheck income from 2500 to 2600", CommandIntent.EDIT_INCOME),
        ("add 2500 income from Paycheck", CommandIntent.ADD_INCOME),
        ("delete the $40 expense from yesterday", CommandIntent.DELETE_EXPENSE),
        ("edit expense from $40 to $45", CommandIntent.EDIT_EXPENSE),
        ("add $12 expense for lunch", CommandIntent.ADD_EXPENSE),
    ],
)
def test_intent_detection(commands, now, prompt, intent):
    assert commands.parse(prompt, now=now).intent is intent


@pytest.mark.parametrize(
    "prompt",
    [
        "top 3 categories this month",
        "how did my expenses change",
        "how much did I spend on my amex card",
        "",
    ],
)
def test_questions_are_not_commands(commands, now, prompt):
    assert commands.parse(prompt, now=now) is None


def test_adding_an_expense_on_a_card_is_not_add_card(commands, now):
    plan = commands.parse("add $25 expense for coffee on Chase Freedom card", now=now)

    assert plan.intent is CommandIntent.ADD_EXPENSE
    assert plan.amount == 25
    assert plan.card_name == "Chase Freedom"


# ------------------------------------------------------------
# Amounts
# ------------------------------------------------------------
def test_delete_uses_stated_amount_as_identifier(commands, now):
    plan = commands.parse("delete the $40 expense from yesterday", now=now)

    assert plan.amount == 40
    assert plan.original_amount == 40
    assert plan.date_range == date_resolver.day_range(now - timedelta(days=1))


def test_edit_from_to_pair(commands, now):
    plan = commands.parse("edit expense from $40 to $45", now=now)

    assert plan.original_amount == 40
    assert plan.amount == 45


def test_edit_first_and_last_amounts(commands, now):
    plan = commands.parse("change the 1,200 expense to 1,250.50", now=now)

    assert plan.intent is CommandIntent.EDIT_EXPENSE
    assert plan.original_amount == 1200
    assert plan.amount == 1250.50


@pytest.mark.parametrize(
    "prompt, amount",
    [
        ("delete the expense on 2026-10-17 for $40", 40),
        ("delete the expense on oct 17 for $40", 40),
        ("add expense on 10/17 $12 for lunch on chase freedom card", 12),
        ("add expense over the last 3 days $18 for parking", 18),
    ],
)
def test_date_digits_are_not_amounts(commands, now, prompt, amount):
    assert commands.parse(prompt, now=now).amount == amount


def test_dated_delete_keeps_day_and_identifying_amount(commands, now):
    plan = commands.parse("delete the expense on 2026-10-17 for $40", now=now)

    assert plan.intent is CommandIntent.DELETE_EXPENSE
    assert plan.original_amount == 40
    assert plan.date_range == date_resolver.day_range(now - timedelta(days=1))


def test_year_sized_amounts_survive(commands, now):
    assert commands.parse("add $2000 income from Bonus", now=now).amount == 2000


def test_creation_commands_ignore_amounts(commands, now):
    assert commands.parse("add a card called Citi 2", now=now).amount is None


# ------------------------------------------------------------
# Text fields
# ------------------------------------------------------------
def test_entity_names(commands, now):
    assert commands.parse("add a card called Citi", now=now).entity_name == "Citi"
    assert commands.parse("create a budget called October", now=now).entity_name == "October"
    assert commands.parse("add a preset called Gym 30", now=now).entity_name == "Gym"
    assert commands.parse("add a category called Pets color blue", now=now).entity_name == "Pets"


def test_income_source_and_kind(commands, now):
    plan = commands.parse("add 2500 planned income from Paycheck", now=now)

    assert plan.source == "Paycheck"
    assert plan.is_planned_income is True
    assert commands.parse("add 2500 income from Paycheck", now=now).is_planned_income is None


def test_move_category_name(commands, now):
    assert commands.parse("move this expense to Dining category", now=now).category_name == "Dining"


def test_planned_amount_target(commands, now):
    assert (
        commands.parse("update rent planned amount to 1600", now=now).planned_expense_amount_target
        is PlannedExpenseAmountTarget.PLANNED
    )
    assert (
        commands.parse("set rent actual amount to 1550", now=now).planned_expense_amount_target
        is PlannedExpenseAmountTarget.ACTUAL
    )


# ------------------------------------------------------------
# Colors and styling
# ------------------------------------------------------------
def test_known_color(commands, now):
    plan = commands.parse("add a category called Pets color blue", now=now)

    assert plan.category_color_hex == COLOR_ALIASES["blue"]
    assert plan.category_color_name == "blue"


def test_unknown_color_keeps_name_without_hex(commands, now):
    plan = commands.parse("add a category called Pets color blurple", now=now)

    assert plan.category_color_hex is None
    assert plan.category_color_name == "blurple"


def test_closest_color_is_known():
    name, hex_value = closest_color("blurple")
    assert COLOR_ALIASES[name] == hex_value


def test_card_theme_and_effect(commands, now):
    plan = commands.parse("add a card called Citi with ruby metal", now=now)

    assert plan.card_theme.value == "ruby"
    assert plan.card_effect.value == "metal"


def test_budget_attach_flags(commands, now):
    plan = commands.parse("create a budget called Trip with all cards and no presets", now=now)

    assert plan.attach_all_cards is True
    assert plan.attach_all_presets is False
