"""
In-process ledger collaborators

LedgerQueryEngine - answers every query intent from the workspace lists
InMemoryLedger    - applies command plans to the workspace lists in place
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from core.intent import CommandIntent, PlannedExpenseAmountTarget
from core.metric import PeriodUnit, QueryIntent
from executors.base import MutationService, QueryEngine
from models.command import CommandPlan, MutationResult
from models.ledger import (
    Budget,
    Card,
    Category,
    Expense,
    Income,
    PlannedExpense,
    Preset,
    WorkspaceEntities,
)
from models.query import Answer, AnswerKind, AnswerRow, DateRange, Query
from services import date_resolver
from services.utils import format_amount, normalize

# -----------------------------
# Logging Setup
# -----------------------------
logger = logging.getLogger("ledger")
logger.setLevel(logging.INFO)
if not logger.handlers:
    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(sh)

DUE_SOON_WINDOW = timedelta(days=30)
POTENTIAL_SAVINGS_RATE = 0.15
DEFAULT_CATEGORY_COLOR = "#3B82F6"

# (title, amount, date, category, card)
SpendEntry = Tuple[str, float, datetime, Optional[str], Optional[str]]


def effective_amount(expense: PlannedExpense) -> float:
    return expense.actual_amount if expense.actual_amount > 0 else expense.planned_amount


def _same_name(left: Optional[str], right: Optional[str]) -> bool:
    return bool(left) and bool(right) and normalize(left) == normalize(right)


def _percent(part: float, whole: float) -> str:
    return f"{(part / whole * 100) if whole else 0:.1f}%"


def range_label(window: DateRange) -> str:
    start, end = window.start, window.end
    month = date_resolver.month_range(start)
    if month.start == start and date_resolver.start_of_day(month.end) == date_resolver.start_of_day(end):
        return f"{start:%B %Y}"
    year = date_resolver.year_range(start)
    if year.start == start and date_resolver.start_of_day(year.end) == date_resolver.start_of_day(end):
        return f"{start:%Y}"
    return f"{start:%b} {start.day}, {start:%Y} - {end:%b} {end.day}, {end:%Y}"


def previous_equivalent_range(window: DateRange) -> DateRange:
    first_day = date_resolver.start_of_day(window.start)
    span_days = (date_resolver.start_of_day(window.end) - first_day).days + 1
    previous_end = first_day - timedelta(seconds=1)
    previous_start = first_day - timedelta(days=span_days)
    return DateRange(start=previous_start, end=previous_end)


_PERIOD_STEPS = {
    PeriodUnit.DAY: relativedelta(days=1),
    PeriodUnit.WEEK: relativedelta(weeks=1),
    PeriodUnit.MONTH: relativedelta(months=1),
    PeriodUnit.QUARTER: relativedelta(months=3),
    PeriodUnit.YEAR: relativedelta(years=1),
}


def recent_periods(count: int, unit: PeriodUnit, now: datetime) -> List[DateRange]:
    """Newest first: the current period, then `count - 1` before it."""
    windows = []
    for offset in range(max(1, count)):
        anchor = now - _PERIOD_STEPS[unit] * offset
        window = date_resolver.past_periods_range(1, unit, anchor)
        if window:
            windows.append(window)
    return windows


# ---------------------------------------------------------------------
# Query Engine
# ---------------------------------------------------------------------
class LedgerQueryEngine(QueryEngine):
    def __init__(self):
        self._handlers: Dict[QueryIntent, Callable[[Query, WorkspaceEntities, datetime], Answer]] = {
            QueryIntent.PERIOD_OVERVIEW: self._overview,
            QueryIntent.SPEND_THIS_MONTH: self._spend,
            QueryIntent.TOP_CATEGORIES_THIS_MONTH: self._top_categories,
            QueryIntent.COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH: self._compare,
            QueryIntent.LARGEST_RECENT_TRANSACTIONS: self._largest_transactions,
            QueryIntent.CARD_SPEND_TOTAL: self._card_spend,
            QueryIntent.CARD_VARIABLE_SPENDING_HABITS: self._card_habits,
            QueryIntent.INCOME_AVERAGE_ACTUAL: self._income_average,
            QueryIntent.SAVINGS_STATUS: self._savings_status,
            QueryIntent.SAVINGS_AVERAGE_RECENT_PERIODS: self._savings_average,
            QueryIntent.INCOME_SOURCE_SHARE: self._income_share,
            QueryIntent.CATEGORY_SPEND_SHARE: self._category_share,
            QueryIntent.INCOME_SOURCE_SHARE_TREND: self._income_share_trend,
            QueryIntent.CATEGORY_SPEND_SHARE_TREND: self._category_share_trend,
            QueryIntent.PRESET_DUE_SOON: self._preset_due_soon,
            QueryIntent.PRESET_HIGHEST_COST: self._preset_highest_cost,
            QueryIntent.PRESET_TOP_CATEGORY: self._preset_top_category,
            QueryIntent.PRESET_CATEGORY_SPEND: self._preset_category_spend,
            QueryIntent.CATEGORY_POTENTIAL_SAVINGS: self._category_potential_savings,
            QueryIntent.CATEGORY_REALLOCATION_GUIDANCE: self._category_reallocation,
        }

    def execute(self, query: Query, entities: WorkspaceEntities, now: datetime) -> Answer:
        logger.info(f"[QUERY] intent={query.intent.value} target={query.target_name}")
        return self._handlers[query.intent](query, entities, now)

    # -----------------------------
    # Data helpers
    # -----------------------------
    @staticmethod
    def _spend_entries(entities: WorkspaceEntities, window: DateRange) -> List[SpendEntry]:
        entries: List[SpendEntry] = []
        for planned in entities.planned_expenses:
            if window.contains(planned.date):
                entries.append((planned.title, effective_amount(planned), planned.date, planned.category_name, planned.card_name))
        for expense in entities.variable_expenses:
            if window.contains(expense.date):
                entries.append((expense.description, expense.amount, expense.date, expense.category_name, expense.card_name))
        return entries

    def _total_spend(self, entities: WorkspaceEntities, window: DateRange) -> float:
        return sum(entry[1] for entry in self._spend_entries(entities, window))

    @staticmethod
    def _actual_income(entities: WorkspaceEntities, window: DateRange, source: Optional[str] = None) -> float:
        return sum(
            income.amount
            for income in entities.incomes
            if not income.is_planned
            and window.contains(income.date)
            and (source is None or _same_name(income.source, source))
        )

    def _category_totals(self, entities: WorkspaceEntities, window: DateRange) -> "OrderedDict[str, float]":
        totals: Dict[str, float] = {}
        for _, amount, _, category, _ in self._spend_entries(entities, window):
            name = category or "Uncategorized"
            totals[name] = totals.get(name, 0.0) + amount
        return OrderedDict(sorted(totals.items(), key=lambda item: item[1], reverse=True))

    @staticmethod
    def _income_totals(entities: WorkspaceEntities, window: DateRange) -> "OrderedDict[str, float]":
        totals: Dict[str, float] = {}
        for income in entities.incomes:
            if not income.is_planned and window.contains(income.date):
                totals[income.source] = totals.get(income.source, 0.0) + income.amount
        return OrderedDict(sorted(totals.items(), key=lambda item: item[1], reverse=True))

    @staticmethod
    def _message(query: Query, title: str, subtitle: str) -> Answer:
        return Answer(query_id=query.id, kind=AnswerKind.MESSAGE, title=title, subtitle=subtitle)

    @staticmethod
    def _rows(pairs: Iterable[Tuple[str, str]]) -> List[AnswerRow]:
        return [AnswerRow(title=title, value=value) for title, value in pairs]

    # -----------------------------
    # Spend
    # -----------------------------
    def _overview(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        income = self._actual_income(entities, window)
        spend = self._total_spend(entities, window)
        return Answer(
            query_id=query.id,
            kind=AnswerKind.METRIC,
            title="Budget Overview",
            subtitle=range_label(window),
            primary_value=format_amount(income - spend),
            rows=self._rows([
                ("Actual income", format_amount(income)),
                ("Spend", format_amount(spend)),
                ("Left over", format_amount(income - spend)),
            ]),
        )

    def _spend(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        total = self._total_spend(entities, window)
        return Answer(
            query_id=query.id,
            kind=AnswerKind.METRIC,
            title="Spend This Month" if query.date_range is None else "Spend",
            subtitle=range_label(window),
            primary_value=format_amount(total),
            rows=self._rows([("Total", format_amount(total))]),
        )

    def _top_categories(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        totals = self._category_totals(entities, window)
        if not totals:
            return self._message(query, "Top Categories This Month", "No spending in this range yet.")
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title="Top Categories This Month",
            subtitle=range_label(window),
            rows=self._rows((name, format_amount(total)) for name, total in list(totals.items())[: query.result_limit]),
        )

    def _compare(self, query, entities, now) -> Answer:
        current = query.date_range or date_resolver.month_range(now)
        if query.date_range is None:
            previous = date_resolver.previous_month_range(now)
        else:
            previous = previous_equivalent_range(current)

        current_total = self._total_spend(entities, current)
        previous_total = self._total_spend(entities, previous)
        delta = current_total - previous_total
        if delta > 0:
            delta_label = f"Up {format_amount(delta)}"
        elif delta < 0:
            delta_label = f"Down {format_amount(abs(delta))}"
        else:
            delta_label = "No change"

        return Answer(
            query_id=query.id,
            kind=AnswerKind.COMPARISON,
            title="This Month vs Last Month" if query.date_range is None else "Current Period vs Previous Period",
            subtitle=delta_label,
            primary_value=format_amount(current_total),
            rows=self._rows([
                (range_label(current), format_amount(current_total)),
                (range_label(previous), format_amount(previous_total)),
            ]),
        )

    def _largest_transactions(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        entries = sorted(self._spend_entries(entities, window), key=lambda entry: entry[1], reverse=True)
        if not entries:
            return self._message(query, "Largest Recent Transactions", "No transactions found in this range.")
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title="Largest Recent Transactions",
            subtitle=range_label(window),
            rows=self._rows((entry[0] or "Expense", format_amount(entry[1])) for entry in entries[: query.result_limit]),
        )

    # -----------------------------
    # Cards
    # -----------------------------
    def _card_spend(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        entries = self._spend_entries(entities, window)

        if query.target_name:
            total = sum(entry[1] for entry in entries if _same_name(entry[4], query.target_name))
            return Answer(
                query_id=query.id,
                kind=AnswerKind.METRIC,
                title=f"{query.target_name} Spend",
                subtitle=range_label(window),
                primary_value=format_amount(total),
                rows=self._rows([("Total", format_amount(total))]),
            )

        totals = OrderedDict((card.name, 0.0) for card in entities.cards)
        for entry in entries:
            if entry[4] in totals:
                totals[entry[4]] += entry[1]
        if not totals:
            return self._message(query, "Card Spend", "No cards in this workspace yet.")
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title="Card Spend",
            subtitle=range_label(window),
            primary_value=format_amount(sum(totals.values())),
            rows=self._rows((name, format_amount(total)) for name, total in totals.items()),
        )

    def _card_habits(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        stats: Dict[str, List[float]] = OrderedDict()
        for expense in entities.variable_expenses:
            if not expense.card_name or not window.contains(expense.date):
                continue
            if query.target_name and not _same_name(expense.card_name, query.target_name):
                continue
            stats.setdefault(expense.card_name, []).append(expense.amount)

        if not stats:
            return self._message(query, "Card Spending Habits", "No variable spending in this range yet.")

        ranked = sorted(stats.items(), key=lambda item: sum(item[1]), reverse=True)[: query.result_limit]
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title="Card Spending Habits",
            subtitle=range_label(window),
            rows=self._rows(
                (name, f"{len(amounts)} purchases, avg {format_amount(sum(amounts) / len(amounts))}")
                for name, amounts in ranked
            ),
        )

    # -----------------------------
    # Income and savings
    # -----------------------------
    def _income_average(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.year_range(now)
        amounts = [
            income.amount
            for income in entities.incomes
            if not income.is_planned
            and window.contains(income.date)
            and (query.target_name is None or _same_name(income.source, query.target_name))
        ]
        if not amounts:
            return self._message(query, "Average Actual Income", "No actual income in this range yet.")
        average = sum(amounts) / len(amounts)
        return Answer(
            query_id=query.id,
            kind=AnswerKind.METRIC,
            title="Average Actual Income",
            subtitle=range_label(window),
            primary_value=format_amount(average),
            rows=self._rows([("Entries", str(len(amounts))), ("Total", format_amount(sum(amounts)))]),
        )

    def _savings_status(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        income = self._actual_income(entities, window)
        spend = self._total_spend(entities, window)
        return Answer(
            query_id=query.id,
            kind=AnswerKind.METRIC,
            title="Savings Status",
            subtitle=range_label(window),
            primary_value=format_amount(income - spend),
            rows=self._rows([
                ("Actual income", format_amount(income)),
                ("Spend", format_amount(spend)),
                ("Savings rate", _percent(income - spend, income)),
            ]),
        )

    def _savings_average(self, query, entities, now) -> Answer:
        periods = recent_periods(query.result_limit, query.period_unit or PeriodUnit.MONTH, now)
        savings = [(window, self._actual_income(entities, window) - self._total_spend(entities, window)) for window in periods]
        average = sum(value for _, value in savings) / len(savings)
        return Answer(
            query_id=query.id,
            kind=AnswerKind.METRIC,
            title="Average Savings",
            subtitle=f"Last {len(savings)} periods",
            primary_value=format_amount(average),
            rows=self._rows((range_label(window), format_amount(value)) for window, value in savings),
        )

    # -----------------------------
    # Shares
    # -----------------------------
    def _share_answer(self, query, title, window, totals, noun) -> Answer:
        whole = sum(totals.values())
        if not whole:
            return self._message(query, title, f"No {noun} in this range yet.")

        if query.target_name:
            part = next((value for name, value in totals.items() if _same_name(name, query.target_name)), 0.0)
            return Answer(
                query_id=query.id,
                kind=AnswerKind.METRIC,
                title=f"{title}: {query.target_name}",
                subtitle=range_label(window),
                primary_value=_percent(part, whole),
                rows=self._rows([(query.target_name, format_amount(part)), ("Total", format_amount(whole))]),
            )

        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title=title,
            subtitle=range_label(window),
            rows=self._rows((name, _percent(value, whole)) for name, value in totals.items()),
        )

    def _income_share(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        return self._share_answer(query, "Income Share", window, self._income_totals(entities, window), "actual income")

    def _category_share(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        return self._share_answer(query, "Category Spend Share", window, self._category_totals(entities, window), "spending")

    def _share_trend(self, query, entities, now, title, totals_for) -> Answer:
        periods = recent_periods(query.result_limit, query.period_unit or PeriodUnit.MONTH, now)
        rows = []
        for window in periods:
            totals = totals_for(entities, window)
            whole = sum(totals.values())
            if query.target_name:
                part = next((value for name, value in totals.items() if _same_name(name, query.target_name)), 0.0)
            else:
                part = next(iter(totals.values()), 0.0)
            rows.append((range_label(window), _percent(part, whole)))
        subject = query.target_name or "Largest share"
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title=f"{title}: {subject}",
            subtitle=f"Last {len(periods)} periods",
            rows=self._rows(rows),
        )

    def _income_share_trend(self, query, entities, now) -> Answer:
        return self._share_trend(query, entities, now, "Income Share Trend", self._income_totals)

    def _category_share_trend(self, query, entities, now) -> Answer:
        return self._share_trend(query, entities, now, "Category Spend Share Trend", self._category_totals)

    # -----------------------------
    # Presets
    # -----------------------------
    def _preset_due_soon(self, query, entities, now) -> Answer:
        if query.date_range is not None:
            window = query.date_range
        else:
            window = DateRange(start=date_resolver.start_of_day(now), end=now + DUE_SOON_WINDOW)
        titles = {normalize(title) for title in entities.preset_titles()}
        due = sorted(
            (
                expense
                for expense in entities.planned_expenses
                if window.contains(expense.date) and (not titles or normalize(expense.title) in titles)
            ),
            key=lambda expense: expense.date,
        )
        if not due:
            return self._message(query, "Presets Due Soon", "Nothing due in this range.")
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title="Presets Due Soon",
            subtitle=range_label(window),
            rows=self._rows(
                (f"{expense.title} ({expense.date:%b} {expense.date.day})", format_amount(expense.planned_amount))
                for expense in due[: query.result_limit]
            ),
        )

    def _preset_highest_cost(self, query, entities, now) -> Answer:
        presets = sorted(entities.presets, key=lambda preset: preset.amount, reverse=True)
        if not presets:
            return self._message(query, "Highest Cost Presets", "No presets yet.")
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title="Highest Cost Presets",
            rows=self._rows((preset.title, format_amount(preset.amount)) for preset in presets[: query.result_limit]),
        )

    def _preset_top_category(self, query, entities, now) -> Answer:
        totals: Dict[str, float] = {}
        for preset in entities.presets:
            name = preset.category_name or "Uncategorized"
            totals[name] = totals.get(name, 0.0) + preset.amount
        if not totals:
            return self._message(query, "Top Preset Categories", "No presets yet.")
        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)[: query.result_limit]
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title="Top Preset Categories",
            rows=self._rows((name, format_amount(total)) for name, total in ranked),
        )

    def _preset_category_spend(self, query, entities, now) -> Answer:
        presets = [
            preset
            for preset in entities.presets
            if query.target_name is None or _same_name(preset.category_name, query.target_name)
        ]
        total = sum(preset.amount for preset in presets)
        return Answer(
            query_id=query.id,
            kind=AnswerKind.METRIC,
            title=f"Preset Spend: {query.target_name or 'All categories'}",
            primary_value=format_amount(total),
            rows=self._rows((preset.title, format_amount(preset.amount)) for preset in presets),
        )

    # -----------------------------
    # Guidance
    # -----------------------------
    def _category_potential_savings(self, query, entities, now) -> Answer:
        window = query.date_range or date_resolver.month_range(now)
        totals = self._category_totals(entities, window)
        if query.target_name:
            totals = OrderedDict((name, value) for name, value in totals.items() if _same_name(name, query.target_name))
        if not totals:
            return self._message(query, "Potential Savings", "No spending in this range yet.")
        ranked = list(totals.items())[: query.result_limit]
        potential = sum(value * POTENTIAL_SAVINGS_RATE for _, value in ranked)
        return Answer(
            query_id=query.id,
            kind=AnswerKind.LIST,
            title="Potential Savings",
            subtitle=f"Trimming {int(POTENTIAL_SAVINGS_RATE * 100)}% in {range_label(window)}",
            primary_value=format_amount(potential),
            rows=self._rows((name, format_amount(value * POTENTIAL_SAVINGS_RATE)) for name, value in ranked),
        )

    def _category_reallocation(self, query, entities, now) -> Answer:
        current = query.date_range or date_resolver.month_range(now)
        previous = date_resolver.previous_month_range(now) if query.date_range is None else previous_equivalent_range(current)
        now_totals = self._category_totals(entities, current)
        before_totals = self._category_totals(entities, previous)

        deltas = []
        for name in list(now_totals) + [name for name in before_totals if name not in now_totals]:
            if query.target_name and not _same_name(name, query.target_name):
                continue
            deltas.append((name, now_totals.get(name, 0.0) - before_totals.get(name, 0.0)))
        if not deltas:
            return self._message(query, "Reallocation Guidance", "Not enough spending to compare yet.")

        # Biggest drops first: that money can move elsewhere
        deltas.sort(key=lambda item: item[1])
        rows = []
        for name, delta in deltas[: query.result_limit]:
            label = f"Down {format_amount(abs(delta))}" if delta < 0 else f"Up {format_amount(delta)}" if delta > 0 else "No change"
            rows.append((name, label))
        return Answer(
            query_id=query.id,
            kind=AnswerKind.COMPARISON,
            title="Reallocation Guidance",
            subtitle=f"{range_label(current)} vs {range_label(previous)}",
            rows=self._rows(rows),
        )


# ---------------------------------------------------------------------
# Mutation Service
# ---------------------------------------------------------------------
class InMemoryLedger(MutationService):
    """Applies plans directly to the WorkspaceEntities lists it is given."""

    def __init__(self):
        self._handlers: Dict[CommandIntent, Callable[[CommandPlan, WorkspaceEntities], MutationResult]] = {
            CommandIntent.ADD_EXPENSE: self._add_expense,
            CommandIntent.ADD_INCOME: self._add_income,
            CommandIntent.ADD_PRESET: self._add_preset,
            CommandIntent.ADD_CATEGORY: self._add_category,
            CommandIntent.ADD_CARD: self._add_card,
            CommandIntent.STYLE_CARD: self._style_card,
            CommandIntent.ADD_BUDGET: self._add_budget,
            CommandIntent.EDIT_EXPENSE: self._edit_expense,
            CommandIntent.DELETE_EXPENSE: self._delete_expense,
            CommandIntent.DELETE_LAST_EXPENSE: self._delete_expense,
            CommandIntent.MOVE_EXPENSE_CATEGORY: self._move_expense,
            CommandIntent.EDIT_INCOME: self._edit_income,
            CommandIntent.DELETE_INCOME: self._delete_income,
            CommandIntent.DELETE_LAST_INCOME: self._delete_income,
            CommandIntent.MARK_INCOME_RECEIVED: self._mark_income_received,
            CommandIntent.UPDATE_PLANNED_EXPENSE_AMOUNT: self._update_planned_amount,
        }

    def perform(self, plan: CommandPlan, entities: WorkspaceEntities) -> MutationResult:
        logger.info(f"[MUTATION] intent={plan.intent.value} record={plan.target_record_id}")
        return self._handlers[plan.intent](plan, entities)

    @staticmethod
    def _card(name: Optional[str], entities: WorkspaceEntities) -> Optional[Card]:
        return next((card for card in entities.cards if _same_name(card.name, name)), None)

    @staticmethod
    def _category(name: Optional[str], entities: WorkspaceEntities) -> Optional[Category]:
        return next((category for category in entities.categories if _same_name(category.name, name)), None)

    @staticmethod
    def _record(records, record_id: Optional[str]):
        return next((record for record in records if record.id == record_id), None)

    # -----------------------------
    # Create
    # -----------------------------
    def _add_expense(self, plan, entities) -> MutationResult:
        if plan.amount is None or plan.amount <= 0:
            return MutationResult.invalid("Need expense amount.")
        card = self._card(plan.card_name, entities)
        if card is None:
            return MutationResult.invalid(f"I couldn't find a card named {plan.card_name}.")
        category = self._category(plan.category_name, entities)

        expense = Expense(
            description=plan.notes or "Expense",
            amount=plan.amount,
            date=plan.date or date_resolver.get_now(),
            card_name=card.name,
            category_name=category.name if category else None,
        )
        entities.variable_expenses.append(expense)
        return MutationResult.success(f"Logged {format_amount(expense.amount)} on {card.name}.", expense.id)

    def _add_income(self, plan, entities) -> MutationResult:
        if plan.amount is None or plan.amount <= 0:
            return MutationResult.invalid("Need income amount.")
        if not plan.source:
            return MutationResult.invalid("Need an income source.")
        income = Income(
            source=plan.source,
            amount=plan.amount,
            date=plan.date or date_resolver.get_now(),
            is_planned=bool(plan.is_planned_income),
        )
        entities.incomes.append(income)
        kind = "planned" if income.is_planned else "actual"
        return MutationResult.success(f"Added {format_amount(income.amount)} {kind} income from {income.source}.", income.id)

    def _add_preset(self, plan, entities) -> MutationResult:
        if not plan.entity_name:
            return MutationResult.invalid("Need a preset name.")
        if plan.amount is None or plan.amount <= 0:
            return MutationResult.invalid("Need preset amount.")
        card = self._card(plan.card_name, entities)
        if card is None:
            return MutationResult.invalid(f"I couldn't find a card named {plan.card_name}.")
        category = self._category(plan.category_name, entities)
        preset = Preset(
            title=plan.entity_name,
            amount=plan.amount,
            card_name=card.name,
            category_name=category.name if category else None,
        )
        entities.presets.append(preset)
        return MutationResult.success(f"Added preset {preset.title} for {format_amount(preset.amount)}.", preset.id)

    def _add_category(self, plan, entities) -> MutationResult:
        if not plan.entity_name:
            return MutationResult.invalid("Need a category name.")
        if self._category(plan.entity_name, entities):
            return MutationResult.invalid(f"{plan.entity_name} already exists.")
        category = Category(name=plan.entity_name, color_hex=plan.category_color_hex or DEFAULT_CATEGORY_COLOR)
        entities.categories.append(category)
        return MutationResult.success(f"Added category {category.name}.", category.id)

    def _add_card(self, plan, entities) -> MutationResult:
        if not plan.entity_name:
            return MutationResult.invalid("Need a card name.")
        if self._card(plan.entity_name, entities):
            return MutationResult.invalid(f"{plan.entity_name} already exists.")
        card = Card(name=plan.entity_name, theme=plan.card_theme, effect=plan.card_effect)
        entities.cards.append(card)
        return MutationResult.success(f"Added card {card.name}.", card.id)

    def _style_card(self, plan, entities) -> MutationResult:
        card = self._card(plan.entity_name, entities)
        if card is None:
            return MutationResult.invalid(f"I couldn't find a card named {plan.entity_name}.")
        card.theme = plan.card_theme
        card.effect = plan.card_effect
        theme = card.theme.value if card.theme else "default"
        effect = card.effect.value if card.effect else "default"
        return MutationResult.success(f"Styled {card.name} with {theme} and {effect}.", card.id)

    def _add_budget(self, plan, entities) -> MutationResult:
        if not plan.entity_name:
            return MutationResult.invalid("Need a budget name.")
        budget = Budget(
            name=plan.entity_name,
            card_names=list(plan.selected_card_names),
            preset_titles=list(plan.selected_preset_titles),
        )
        entities.budgets.append(budget)
        return MutationResult.success(
            f"Created budget {budget.name} with {len(budget.card_names)} cards and {len(budget.preset_titles)} presets.",
            budget.id,
        )

    # -----------------------------
    # Change existing
    # -----------------------------
    def _edit_expense(self, plan, entities) -> MutationResult:
        expense = self._record(entities.variable_expenses, plan.target_record_id)
        if expense is None:
            return MutationResult.invalid("That expense no longer exists.")
        if plan.amount is None or plan.amount <= 0:
            return MutationResult.invalid("Need the new expense amount.")
        expense.amount = plan.amount
        return MutationResult.success(f"Updated {expense.description or 'expense'} to {format_amount(plan.amount)}.", expense.id)

    def _delete_expense(self, plan, entities) -> MutationResult:
        expense = self._record(entities.variable_expenses, plan.target_record_id)
        if expense is None:
            return MutationResult.invalid("That expense no longer exists.")
        entities.variable_expenses.remove(expense)
        return MutationResult.success(f"Deleted {expense.description or 'expense'} ({format_amount(expense.amount)}).", expense.id)

    def _move_expense(self, plan, entities) -> MutationResult:
        expense = self._record(entities.variable_expenses, plan.target_record_id)
        if expense is None:
            return MutationResult.invalid("That expense no longer exists.")
        category = self._category(plan.category_name, entities)
        if category is None:
            return MutationResult.invalid(f"I couldn't find a category named {plan.category_name}.")
        expense.category_name = category.name
        return MutationResult.success(f"Moved {expense.description or 'expense'} to {category.name}.", expense.id)

    def _edit_income(self, plan, entities) -> MutationResult:
        income = self._record(entities.incomes, plan.target_record_id)
        if income is None:
            return MutationResult.invalid("That income no longer exists.")
        if plan.amount is None or plan.amount <= 0:
            return MutationResult.invalid("Need the new income amount.")
        income.amount = plan.amount
        return MutationResult.success(f"Updated {income.source} to {format_amount(plan.amount)}.", income.id)

    def _delete_income(self, plan, entities) -> MutationResult:
        income = self._record(entities.incomes, plan.target_record_id)
        if income is None:
            return MutationResult.invalid("That income no longer exists.")
        entities.incomes.remove(income)
        return MutationResult.success(f"Deleted {income.source} ({format_amount(income.amount)}).", income.id)

    def _mark_income_received(self, plan, entities) -> MutationResult:
        income = self._record(entities.incomes, plan.target_record_id)
        if income is None:
            return MutationResult.invalid("That income no longer exists.")
        income.is_planned = False
        return MutationResult.success(f"Marked {income.source} as received.", income.id)

    def _update_planned_amount(self, plan, entities) -> MutationResult:
        expense = self._record(entities.planned_expenses, plan.target_record_id)
        if expense is None:
            return MutationResult.invalid("That planned expense no longer exists.")
        if plan.amount is None or plan.amount < 0:
            return MutationResult.invalid("Need the new amount.")
        if plan.planned_expense_amount_target is PlannedExpenseAmountTarget.ACTUAL:
            expense.actual_amount = plan.amount
            label = "actual"
        else:
            expense.planned_amount = plan.amount
            label = "planned"
        return MutationResult.success(f"Set {expense.title} {label} amount to {format_amount(plan.amount)}.", expense.id)
