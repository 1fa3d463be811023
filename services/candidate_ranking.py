# FILE: services/candidate_ranking.py
"""
Ranks existing records against a mutation command.

Scores are additive; a record that fails a hard constraint (wrong day,
wrong identifying amount) is dropped, as is any record scoring 0.
Equal scores put the most recent record first.
"""

from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from models.command import CommandPlan
from models.ledger import Expense, Income, PlannedExpense
from services import date_resolver
from services.utils import normalize

AMOUNT_TOLERANCE = 0.01

SAME_DAY_SCORE = 4
ORIGINAL_AMOUNT_SCORE = 4
PLAIN_AMOUNT_SCORE = 2
TEXT_MATCH_SCORE = 3
TITLE_IN_PROMPT_SCORE = 5
PLANNED_FLAG_SCORE = 1

Record = TypeVar("Record", Expense, Income, PlannedExpense)

# None means "disqualified"
Scorer = Callable[[CommandPlan, Record], Optional[int]]


def _amounts_match(left: float, right: float) -> bool:
    return abs(left - right) < AMOUNT_TOLERANCE


def _exact_day(plan: CommandPlan) -> Optional[datetime]:
    """The command's target day, when its date window is a single day."""
    if plan.date_range is not None:
        start = date_resolver.start_of_day(plan.date_range.start)
        if start == date_resolver.start_of_day(plan.date_range.end):
            return start
        return None
    if plan.date is not None:
        return date_resolver.start_of_day(plan.date)
    return None


def _date_score(plan: CommandPlan, moment: datetime) -> Optional[int]:
    day = _exact_day(plan)
    if day is not None:
        return SAME_DAY_SCORE if date_resolver.start_of_day(moment) == day else None
    # A wider window ("last month") only filters
    if plan.date_range is not None and not plan.date_range.contains(moment):
        return None
    return 0


def _amount_score(plan: CommandPlan, amount: float) -> Optional[int]:
    if plan.original_amount is not None:
        return ORIGINAL_AMOUNT_SCORE if _amounts_match(plan.original_amount, amount) else None
    if plan.amount is not None and _amounts_match(plan.amount, amount):
        return PLAIN_AMOUNT_SCORE
    return 0


def _contains(haystack: str, needle: Optional[str]) -> bool:
    needle = normalize(needle or "")
    return bool(needle) and needle in normalize(haystack)


# -----------------------------
# Scorers
# -----------------------------
def _score_expense(plan: CommandPlan, expense: Expense) -> Optional[int]:
    date_score = _date_score(plan, expense.date)
    amount_score = _amount_score(plan, expense.amount)
    if date_score is None or amount_score is None:
        return None

    score = date_score + amount_score
    if plan.notes:
        if _contains(expense.description, plan.notes):
            score += TEXT_MATCH_SCORE
    elif _contains(plan.raw_prompt, expense.description):
        score += TEXT_MATCH_SCORE
    return score


def _score_income(plan: CommandPlan, income: Income) -> Optional[int]:
    date_score = _date_score(plan, income.date)
    amount_score = _amount_score(plan, income.amount)
    if date_score is None or amount_score is None:
        return None

    score = date_score + amount_score
    if _contains(income.source, plan.source) or _contains(plan.raw_prompt, income.source):
        score += TEXT_MATCH_SCORE
    if plan.is_planned_income is not None and plan.is_planned_income == income.is_planned:
        score += PLANNED_FLAG_SCORE
    return score


def _score_planned_expense(plan: CommandPlan, expense: PlannedExpense) -> Optional[int]:
    date_score = _date_score(plan, expense.date)
    if date_score is None:
        return None

    if plan.original_amount is not None:
        if not any(_amounts_match(plan.original_amount, value) for value in (expense.planned_amount, expense.actual_amount)):
            return None
        amount_score = ORIGINAL_AMOUNT_SCORE
    elif plan.amount is not None and any(
        _amounts_match(plan.amount, value) for value in (expense.planned_amount, expense.actual_amount)
    ):
        amount_score = PLAIN_AMOUNT_SCORE
    else:
        amount_score = 0

    score = date_score + amount_score
    if plan.notes and _contains(expense.description, plan.notes):
        score += TEXT_MATCH_SCORE
    if _contains(plan.raw_prompt, expense.title):
        score += TITLE_IN_PROMPT_SCORE
    return score


def _ranked(plan: CommandPlan, records: Sequence[Record], scorer: Scorer) -> List[Record]:
    scored: List[Tuple[int, Record]] = []
    for record in records:
        score = scorer(plan, record)
        if score:
            scored.append((score, record))
    scored.sort(key=lambda pair: (pair[0], pair[1].date), reverse=True)
    return [record for _, record in scored]


# -----------------------------
# Public API
# -----------------------------
def rank_expenses(plan: CommandPlan, expenses: Sequence[Expense]) -> List[Expense]:
    return _ranked(plan, expenses, _score_expense)


def rank_incomes(plan: CommandPlan, incomes: Sequence[Income]) -> List[Income]:
    return _ranked(plan, incomes, _score_income)


def rank_planned_expenses(plan: CommandPlan, expenses: Sequence[PlannedExpense]) -> List[PlannedExpense]:
    return _ranked(plan, expenses, _score_planned_expense)
