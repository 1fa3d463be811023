from datetime import datetime, timedelta

from core.intent import CommandIntent
from models.command import CommandPlan
from models.ledger import Expense, Income, PlannedExpense
from services import date_resolver
from services.candidate_ranking import rank_expenses, rank_incomes, rank_planned_expenses


def command(intent=CommandIntent.DELETE_EXPENSE, raw_prompt="delete expense", **fields) -> CommandPlan:
    return CommandPlan(intent=intent, raw_prompt=raw_prompt, **fields)


# ------------------------------------------------------------
# Expenses
# ------------------------------------------------------------
def test_explicit_day_disqualifies_other_days(entities, now):
    yesterday = date_resolver.day_range(now - timedelta(days=1))
    plan = command(date_range=yesterday, notes="Dinner")

    ranked = rank_expenses(plan, entities.variable_expenses)

    # Dinner matches the note but is dated Oct 12
    assert all(date_resolver.start_of_day(e.date) == yesterday.start for e in ranked)
    assert "Dinner" not in [e.description for e in ranked]


def test_identifying_amount_disqualifies_mismatches(entities, now):
    yesterday = date_resolver.day_range(now - timedelta(days=1))
    plan = command(
        raw_prompt="delete the $40 expense from yesterday",
        amount=40,
        original_amount=40,
        date_range=yesterday,
    )

    ranked = rank_expenses(plan, entities.variable_expenses)

    assert [e.description for e in ranked] == ["Coffee"]


def test_amount_only_ranks_most_recent_first(entities):
    plan = command(amount=40, original_amount=40)

    ranked = rank_expenses(plan, entities.variable_expenses)

    assert [e.description for e in ranked] == ["Coffee", "Dinner"]


def test_description_in_prompt_scores_without_notes(entities):
    plan = command(raw_prompt="delete the flight expense")

    assert [e.description for e in rank_expenses(plan, entities.variable_expenses)] == ["Flight"]


def test_wide_window_only_filters():
    expenses = [
        Expense(description="Inside", amount=10, date=datetime(2026, 9, 10)),
        Expense(description="Outside", amount=10, date=datetime(2026, 8, 10)),
    ]
    september = date_resolver.month_range(datetime(2026, 9, 1))
    plan = command(amount=10, date_range=september)

    assert [e.description for e in rank_expenses(plan, expenses)] == ["Inside"]


def test_zero_scores_are_dropped(entities):
    assert rank_expenses(command(raw_prompt="delete something"), entities.variable_expenses) == []


# ------------------------------------------------------------
# Incomes
# ------------------------------------------------------------
def test_income_source_and_planned_flag(entities):
    plan = command(
        intent=CommandIntent.MARK_INCOME_RECEIVED,
        raw_prompt="mark paycheck income as received",
        is_planned_income=True,
    )

    ranked = rank_incomes(plan, entities.incomes)

    assert ranked[0].source == "Paycheck"
    assert ranked[0].is_planned is True
    assert "Freelance" not in [income.source for income in ranked]


def test_income_amount_disqualifies():
    incomes = [
        Income(source="Paycheck", amount=2500, date=datetime(2026, 10, 1)),
        Income(source="Paycheck", amount=2600, date=datetime(2026, 10, 15)),
    ]
    plan = command(intent=CommandIntent.EDIT_INCOME, raw_prompt="edit paycheck", amount=2700, original_amount=2500)

    assert [income.amount for income in rank_incomes(plan, incomes)] == [2500]


# ------------------------------------------------------------
# Planned expenses
# ------------------------------------------------------------
def test_planned_expense_title_in_prompt(entities):
    plan = command(
        intent=CommandIntent.UPDATE_PLANNED_EXPENSE_AMOUNT,
        raw_prompt="update rent planned amount to 1600",
        amount=1600,
    )

    assert [e.title for e in rank_planned_expenses(plan, entities.planned_expenses)] == ["Rent"]


def test_planned_original_amount_matches_actual_value():
    expenses = [
        PlannedExpense(title="Internet", planned_amount=80, actual_amount=75, date=datetime(2026, 10, 3)),
        PlannedExpense(title="Phone", planned_amount=60, date=datetime(2026, 10, 4)),
    ]
    plan = command(
        intent=CommandIntent.UPDATE_PLANNED_EXPENSE_AMOUNT,
        raw_prompt="change 75 to 70",
        amount=70,
        original_amount=75,
    )

    assert [e.title for e in rank_planned_expenses(plan, expenses)] == ["Internet"]
