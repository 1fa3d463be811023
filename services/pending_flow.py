# FILE: services/pending_flow.py
"""
Mutation flows and pending-turn resolution

start()   - takes a freshly parsed CommandPlan, asks for whatever is missing
            (pending state) or hands the finished plan to the MutationService
resolve() - consumes the user's reply to the active pending state and replays
            the updated plan through start()

Rules:
- A reply that cannot be understood re-presents the same question
- Validation failures never advance or clear the pending state
- "cancel" clears whatever is pending
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from core.intent import CommandIntent, PlannedExpenseAmountTarget
from core.pending import (
    AwaitingBudgetCreationStep,
    AwaitingCardSelection,
    AwaitingCardStyleStep,
    AwaitingCategoryColorConfirmation,
    AwaitingDeleteConfirmation,
    AwaitingExpenseDisambiguation,
    AwaitingIncomeDisambiguation,
    AwaitingIncomeKind,
    AwaitingPlannedExpenseAmountTarget,
    AwaitingPlannedExpenseDisambiguation,
    AwaitingPresetCardSelection,
    BudgetStep,
    CardStyleStep,
    PendingState,
    RecordKind,
)
from executors.base import MutationService
from models.command import CommandPlan
from models.ledger import CardEffect, CardTheme, Expense, Income, PlannedExpense, WorkspaceEntities
from models.query import Answer, AnswerKind, AnswerRow
from services import date_resolver
from services.candidate_ranking import rank_expenses, rank_incomes, rank_planned_expenses
from services.command_parser import closest_color
from services.entity_matcher import best_match
from services.utils import format_amount, normalize

# -----------------------------
# Logging Setup
# -----------------------------
logger = logging.getLogger("pending_flow")
logger.setLevel(logging.INFO)
if not logger.handlers:
    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(sh)

MAX_RECORD_CANDIDATES = 3

YES_WORDS = ("yes", "y", "yeah", "yep", "sure", "ok", "okay", "confirm", "do it")
NO_WORDS = ("no", "n", "nope", "nah", "skip", "cancel", "not now")
CANCEL_WORDS = ("cancel", "never mind", "nevermind", "stop", "forget it")
ALL_WORDS = ("all", "every", "everything")
CHOOSE_WORDS = ("choose", "pick", "select", "specific", "some")
SKIP_WORDS = ("skip", "none", "no", "nope", "without")
ORDINALS = {"first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5}

YES_NO_OPTIONS = ("Yes", "No")
CHOICE_OPTIONS = {
    "card": ("All cards", "Choose cards", "Skip"),
    "preset": ("All presets", "Choose presets", "Skip"),
}


class FlowStatus(str, Enum):
    EXECUTED = "executed"
    AWAITING = "awaiting"
    REJECTED = "rejected"
    REPROMPT = "reprompt"
    CANCELLED = "cancelled"
    NO_MATCH = "noMatch"


@dataclass(frozen=True)
class FlowOutcome:
    answer: Answer
    status: FlowStatus
    pending: Optional[PendingState] = None


# ---------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------
def _reply_is(normalized: str, words: Sequence[str]) -> bool:
    return any(normalized == word or normalized.startswith(word + " ") for word in words)


def parse_yes_no(reply: str) -> Optional[bool]:
    normalized = normalize(reply)
    if normalized == "1" or _reply_is(normalized, YES_WORDS):
        return True
    if normalized == "2" or _reply_is(normalized, NO_WORDS):
        return False
    return None


def parse_choice(reply: str, options: Sequence[str]) -> Optional[int]:
    """0-based option index from a 1-based number, an ordinal, or a name."""
    normalized = normalize(reply)
    if not normalized or not options:
        return None

    number = re.fullmatch(r"(?:option |number )?(\d{1,2})(?:st|nd|rd|th)?", normalized)
    if number:
        index = int(number.group(1))
        return index - 1 if 1 <= index <= len(options) else None

    for word, index in ORDINALS.items():
        if re.search(rf"\b{word}\b", normalized) and index <= len(options):
            return index - 1

    for index, option in enumerate(options):
        if normalize(option) == normalized:
            return index

    match = best_match(reply, options)
    return list(options).index(match) if match is not None else None


def parse_multi_choice(reply: str, options: Sequence[str]) -> List[str]:
    """Options named in a comma/'and' separated reply, in reply order."""
    chosen: List[str] = []
    for part in re.split(r",|&|\band\b", reply.lower()):
        if not part.strip():
            continue
        index = parse_choice(part, options)
        if index is not None and options[index] not in chosen:
            chosen.append(options[index])
    return chosen


def parse_tri_state(reply: str) -> Optional[str]:
    """'all', 'choose' or 'skip'."""
    normalized = normalize(reply)
    by_index = {"1": "all", "2": "choose", "3": "skip"}
    if normalized in by_index:
        return by_index[normalized]
    for label, words in (("choose", CHOOSE_WORDS), ("skip", SKIP_WORDS), ("all", ALL_WORDS)):
        if any(re.search(rf"\b{word}\b", normalized) for word in words):
            return label
    return None


# ---------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------
def _message(title: str, subtitle: Optional[str] = None) -> Answer:
    return Answer(kind=AnswerKind.MESSAGE, title=title, subtitle=subtitle)


def prompt_answer(state: PendingState) -> Answer:
    rows = [AnswerRow(title=option, value=f"#{index}") for index, option in enumerate(state.options, start=1)]
    subtitle = "Reply with a number or a name." if rows else None
    return Answer(kind=AnswerKind.MESSAGE, title=state.prompt, subtitle=subtitle, rows=rows)


def _awaiting(state: PendingState) -> FlowOutcome:
    logger.info(f"[PENDING] awaiting state={state.name}")
    return FlowOutcome(prompt_answer(state), FlowStatus.AWAITING, state)


def _rejected(message: str) -> FlowOutcome:
    return FlowOutcome(_message(message), FlowStatus.REJECTED)


def _no_match(message: str) -> FlowOutcome:
    return FlowOutcome(_message(message), FlowStatus.NO_MATCH)


def _day_label(moment: datetime) -> str:
    return f"{moment:%b} {moment.day}"


def expense_label(expense: Expense) -> str:
    return f"{expense.description or 'Expense'} - {format_amount(expense.amount)} on {_day_label(expense.date)}"


def income_label(income: Income) -> str:
    kind = "planned" if income.is_planned else "actual"
    return f"{income.source} - {format_amount(income.amount)} {kind} on {_day_label(income.date)}"


def planned_expense_label(expense: PlannedExpense) -> str:
    return f"{expense.title} - {format_amount(expense.planned_amount)} planned on {_day_label(expense.date)}"


def _find(records, record_id: str):
    return next((record for record in records if record.id == record_id), None)


def _most_recent(records):
    return max(records, key=lambda record: record.date) if records else None


# ---------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------
Starter = Callable[[CommandPlan, WorkspaceEntities, datetime], FlowOutcome]
Resolver = Callable[[PendingState, str, WorkspaceEntities, datetime], Optional[FlowOutcome]]


class MutationCoordinator:
    def __init__(self, mutations: MutationService):
        self.mutations = mutations

        self._starters: Dict[CommandIntent, Starter] = {
            CommandIntent.ADD_EXPENSE: self._start_add_expense,
            CommandIntent.ADD_INCOME: self._start_add_income,
            CommandIntent.ADD_PRESET: self._start_add_preset,
            CommandIntent.ADD_CATEGORY: self._start_add_category,
            CommandIntent.ADD_CARD: self._start_add_card,
            CommandIntent.STYLE_CARD: self._start_style_card,
            CommandIntent.ADD_BUDGET: self._start_add_budget,
            CommandIntent.EDIT_EXPENSE: self._start_expense_change,
            CommandIntent.DELETE_EXPENSE: self._start_expense_change,
            CommandIntent.MOVE_EXPENSE_CATEGORY: self._start_expense_change,
            CommandIntent.EDIT_INCOME: self._start_income_change,
            CommandIntent.DELETE_INCOME: self._start_income_change,
            CommandIntent.MARK_INCOME_RECEIVED: self._start_income_change,
            CommandIntent.UPDATE_PLANNED_EXPENSE_AMOUNT: self._start_planned_amount_update,
            CommandIntent.DELETE_LAST_EXPENSE: self._start_delete_last_expense,
            CommandIntent.DELETE_LAST_INCOME: self._start_delete_last_income,
        }

        # Consulted in pending priority order
        self._resolvers: Tuple[Tuple[type, Resolver], ...] = (
            (AwaitingCategoryColorConfirmation, self._resolve_color_confirmation),
            (AwaitingCardStyleStep, self._resolve_card_style),
            (AwaitingBudgetCreationStep, self._resolve_budget_step),
            (AwaitingDeleteConfirmation, self._resolve_delete_confirmation),
            (AwaitingExpenseDisambiguation, self._resolve_record_choice),
            (AwaitingPlannedExpenseDisambiguation, self._resolve_record_choice),
            (AwaitingIncomeDisambiguation, self._resolve_record_choice),
            (AwaitingCardSelection, self._resolve_card_selection),
            (AwaitingPresetCardSelection, self._resolve_card_selection),
            (AwaitingIncomeKind, self._resolve_income_kind),
            (AwaitingPlannedExpenseAmountTarget, self._resolve_amount_target),
        )

    # -----------------------------
    # Public API
    # -----------------------------
    def start(self, plan: CommandPlan, entities: WorkspaceEntities, now: Optional[datetime] = None) -> FlowOutcome:
        now = now or date_resolver.get_now()
        logger.info(f"[PENDING] start intent={plan.intent.value}")
        return self._starters[plan.intent](plan, entities, now)

    def resolve(
        self,
        pending: PendingState,
        reply: str,
        entities: WorkspaceEntities,
        now: Optional[datetime] = None,
    ) -> FlowOutcome:
        now = now or date_resolver.get_now()

        if normalize(reply) in CANCEL_WORDS:
            logger.info(f"[PENDING] cancelled state={pending.name}")
            return FlowOutcome(_message("Okay, cancelled."), FlowStatus.CANCELLED)

        resolver = next((fn for state_type, fn in self._resolvers if isinstance(pending, state_type)), None)
        if resolver is None:
            raise ValueError(f"No resolver for pending state {pending.name}")

        outcome = resolver(pending, reply, entities, now)
        if outcome is None:
            logger.info(f"[PENDING] reprompt state={pending.name}")
            return FlowOutcome(prompt_answer(pending), FlowStatus.REPROMPT, pending)

        if outcome.status is FlowStatus.REJECTED:
            # Same question stays open so the user can correct the reply
            return FlowOutcome(outcome.answer, FlowStatus.REJECTED, pending)
        return outcome

    # -----------------------------
    # Execution
    # -----------------------------
    def _execute(self, plan: CommandPlan, entities: WorkspaceEntities, now: datetime) -> FlowOutcome:
        if plan.date is None and plan.intent in (CommandIntent.ADD_EXPENSE, CommandIntent.ADD_INCOME):
            plan = plan.updating(date=now)

        result = self.mutations.perform(plan, entities)
        if not result.ok:
            logger.info(f"[PENDING] rejected intent={plan.intent.value} reason='{result.message}'")
            return _rejected(result.message)

        logger.info(f"[PENDING] executed intent={plan.intent.value} records={result.record_ids}")
        return FlowOutcome(_message(result.message), FlowStatus.EXECUTED)

    # -----------------------------
    # Creation flows
    # -----------------------------
    @staticmethod
    def _known_card(name: Optional[str], entities: WorkspaceEntities) -> Optional[str]:
        if not name:
            return None
        # Unknown names go through as typed; the mutation service reports them
        return best_match(name, entities.card_names()) or name

    def _start_add_expense(self, plan, entities, now) -> FlowOutcome:
        if plan.amount is None:
            return _rejected("Need expense amount.")

        card = self._known_card(plan.card_name, entities)
        if card:
            return self._execute(plan.updating(card_name=card), entities, now)

        cards = entities.card_names()
        if not cards:
            return _rejected("Need a card before logging an expense.")
        if len(cards) == 1:
            return self._execute(plan.updating(card_name=cards[0]), entities, now)

        return _awaiting(
            AwaitingCardSelection(plan=plan, prompt="Which card should I log this expense on?", options=tuple(cards))
        )

    def _start_add_income(self, plan, entities, now) -> FlowOutcome:
        if plan.amount is None:
            return _rejected("Need income amount.")
        if not plan.source:
            return _rejected("Need an income source.")
        if plan.is_planned_income is None:
            return _awaiting(
                AwaitingIncomeKind(
                    plan=plan,
                    prompt=f"Is the {format_amount(plan.amount)} from {plan.source} planned or actual income?",
                    options=("Planned", "Actual"),
                )
            )
        return self._execute(plan, entities, now)

    def _start_add_preset(self, plan, entities, now) -> FlowOutcome:
        if not plan.entity_name:
            return _rejected("Need a preset name.")
        if plan.amount is None:
            return _rejected("Need preset amount.")

        card = self._known_card(plan.card_name, entities)
        if card:
            return self._execute(plan.updating(card_name=card), entities, now)

        cards = entities.card_names()
        if not cards:
            return _rejected("Need a card before adding a preset.")
        if len(cards) == 1:
            return self._execute(plan.updating(card_name=cards[0]), entities, now)

        return _awaiting(
            AwaitingPresetCardSelection(
                plan=plan, prompt=f"Which card should {plan.entity_name} use?", options=tuple(cards)
            )
        )

    def _start_add_category(self, plan, entities, now) -> FlowOutcome:
        if not plan.entity_name:
            return _rejected("Need a category name.")

        if plan.category_color_name and not plan.category_color_hex:
            name, hex_value = closest_color(plan.category_color_name)
            return _awaiting(
                AwaitingCategoryColorConfirmation(
                    plan=plan,
                    prompt=f"I don't know the color \"{plan.category_color_name}\". Use {name} ({hex_value}) instead?",
                    options=YES_NO_OPTIONS,
                    proposed_name=name,
                    proposed_hex=hex_value,
                )
            )
        return self._execute(plan, entities, now)

    def _start_add_card(self, plan, entities, now) -> FlowOutcome:
        if not plan.entity_name:
            return _rejected("Need a card name.")

        outcome = self._execute(plan, entities, now)
        if outcome.status is not FlowStatus.EXECUTED or plan.card_theme or plan.card_effect:
            return outcome

        offer = AwaitingCardStyleStep(
            plan=plan.updating(intent=CommandIntent.STYLE_CARD),
            prompt=f"{outcome.answer.title} Want to pick a theme and effect for it?",
            options=YES_NO_OPTIONS,
            step=CardStyleStep.OFFER,
        )
        return _awaiting(offer)

    def _start_style_card(self, plan, entities, now) -> FlowOutcome:
        if plan.card_theme is None:
            return _awaiting(
                AwaitingCardStyleStep(
                    plan=plan,
                    prompt="Pick a theme.",
                    options=tuple(theme.value.title() for theme in CardTheme),
                    step=CardStyleStep.THEME,
                )
            )
        if plan.card_effect is None:
            return _awaiting(
                AwaitingCardStyleStep(
                    plan=plan,
                    prompt="Pick an effect.",
                    options=tuple(effect.value.title() for effect in CardEffect),
                    step=CardStyleStep.EFFECT,
                )
            )
        return self._execute(plan, entities, now)

    def _start_add_budget(self, plan, entities, now) -> FlowOutcome:
        if not plan.entity_name:
            return _rejected("Need a budget name.")

        cards = entities.card_names()
        presets = entities.preset_titles()

        if plan.attach_all_cards is None and not plan.selected_card_names:
            if not cards:
                plan = plan.updating(attach_all_cards=False)
            else:
                return _awaiting(
                    AwaitingBudgetCreationStep(
                        plan=plan,
                        prompt=f"Attach cards to {plan.entity_name}?",
                        options=CHOICE_OPTIONS["card"],
                        step=BudgetStep.CARDS_CHOICE,
                    )
                )

        if plan.attach_all_presets is None and not plan.selected_preset_titles:
            if not presets:
                plan = plan.updating(attach_all_presets=False)
            else:
                return _awaiting(
                    AwaitingBudgetCreationStep(
                        plan=plan,
                        prompt=f"Attach presets to {plan.entity_name}?",
                        options=CHOICE_OPTIONS["preset"],
                        step=BudgetStep.PRESETS_CHOICE,
                    )
                )

        final = plan.updating(
            selected_card_names=tuple(cards) if plan.attach_all_cards else plan.selected_card_names,
            selected_preset_titles=tuple(presets) if plan.attach_all_presets else plan.selected_preset_titles,
        )
        return self._execute(final, entities, now)

    # -----------------------------
    # Existing-record flows
    # -----------------------------
    def _start_expense_change(self, plan, entities, now) -> FlowOutcome:
        if plan.intent is CommandIntent.EDIT_EXPENSE and plan.amount is None:
            return _rejected("Need the new expense amount.")
        if plan.intent is CommandIntent.MOVE_EXPENSE_CATEGORY and not plan.category_name:
            return _rejected("Need a category to move the expense to.")

        expenses = entities.variable_expenses
        if plan.target_record_id:
            record = _find(expenses, plan.target_record_id)
            if record is None:
                return _no_match("That expense no longer exists.")
        else:
            ranked = rank_expenses(plan, expenses)
            if not ranked and plan.intent is CommandIntent.MOVE_EXPENSE_CATEGORY and "this expense" in plan.raw_prompt.lower():
                ranked = [_most_recent(expenses)] if expenses else []
            if not ranked:
                return _no_match("I couldn't find a matching expense.")
            if len(ranked) > 1:
                candidates = ranked[:MAX_RECORD_CANDIDATES]
                return _awaiting(
                    AwaitingExpenseDisambiguation(
                        plan=plan,
                        prompt="I found more than one matching expense. Which one?",
                        options=tuple(expense_label(expense) for expense in candidates),
                        candidate_ids=tuple(expense.id for expense in candidates),
                    )
                )
            record = ranked[0]

        plan = plan.updating(target_record_id=record.id)
        if plan.intent.is_delete():
            return self._confirm_delete(plan, RecordKind.EXPENSE, record.id, expense_label(record))
        return self._execute(plan, entities, now)

    def _start_income_change(self, plan, entities, now) -> FlowOutcome:
        if plan.intent is CommandIntent.EDIT_INCOME and plan.amount is None:
            return _rejected("Need the new income amount.")

        incomes = entities.incomes
        if plan.intent is CommandIntent.MARK_INCOME_RECEIVED:
            incomes = [income for income in incomes if income.is_planned]
            plan = plan.updating(is_planned_income=True)
            if not incomes:
                return _no_match("There's no planned income to mark as received.")

        if plan.target_record_id:
            record = _find(incomes, plan.target_record_id)
            if record is None:
                return _no_match("That income no longer exists.")
        else:
            ranked = rank_incomes(plan, incomes)
            if not ranked:
                return _no_match("I couldn't find a matching income.")
            if len(ranked) > 1:
                candidates = ranked[:MAX_RECORD_CANDIDATES]
                return _awaiting(
                    AwaitingIncomeDisambiguation(
                        plan=plan,
                        prompt="I found more than one matching income. Which one?",
                        options=tuple(income_label(income) for income in candidates),
                        candidate_ids=tuple(income.id for income in candidates),
                    )
                )
            record = ranked[0]

        plan = plan.updating(target_record_id=record.id)
        if plan.intent.is_delete():
            return self._confirm_delete(plan, RecordKind.INCOME, record.id, income_label(record))
        return self._execute(plan, entities, now)

    def _start_planned_amount_update(self, plan, entities, now) -> FlowOutcome:
        if plan.amount is None:
            return _rejected("Need the new amount.")

        expenses = entities.planned_expenses
        if plan.target_record_id:
            record = _find(expenses, plan.target_record_id)
            if record is None:
                return _no_match("That planned expense no longer exists.")
        else:
            ranked = rank_planned_expenses(plan, expenses)
            if not ranked:
                return _no_match("I couldn't find a matching planned expense.")
            if len(ranked) > 1:
                candidates = ranked[:MAX_RECORD_CANDIDATES]
                return _awaiting(
                    AwaitingPlannedExpenseDisambiguation(
                        plan=plan,
                        prompt="I found more than one matching planned expense. Which one?",
                        options=tuple(planned_expense_label(expense) for expense in candidates),
                        candidate_ids=tuple(expense.id for expense in candidates),
                    )
                )
            record = ranked[0]

        plan = plan.updating(target_record_id=record.id)
        if plan.planned_expense_amount_target is None:
            return _awaiting(
                AwaitingPlannedExpenseAmountTarget(
                    plan=plan,
                    prompt=f"Update the planned or actual amount for {record.title}?",
                    options=("Planned amount", "Actual amount"),
                )
            )
        return self._execute(plan, entities, now)

    def _start_delete_last_expense(self, plan, entities, now) -> FlowOutcome:
        record = _most_recent(entities.variable_expenses)
        if record is None:
            return _no_match("There are no expenses to delete.")
        plan = plan.updating(target_record_id=record.id)
        return self._confirm_delete(plan, RecordKind.EXPENSE, record.id, expense_label(record))

    def _start_delete_last_income(self, plan, entities, now) -> FlowOutcome:
        record = _most_recent(entities.incomes)
        if record is None:
            return _no_match("There is no income to delete.")
        plan = plan.updating(target_record_id=record.id)
        return self._confirm_delete(plan, RecordKind.INCOME, record.id, income_label(record))

    @staticmethod
    def _confirm_delete(plan: CommandPlan, kind: RecordKind, record_id: str, label: str) -> FlowOutcome:
        return _awaiting(
            AwaitingDeleteConfirmation(
                plan=plan,
                prompt=f"Delete {label}?",
                options=YES_NO_OPTIONS,
                record_kind=kind,
                record_id=record_id,
            )
        )

    # -----------------------------
    # Pending resolvers
    # -----------------------------
    def _resolve_color_confirmation(self, pending, reply, entities, now) -> Optional[FlowOutcome]:
        answer = parse_yes_no(reply)
        if answer is None:
            return None
        if answer:
            plan = pending.plan.updating(
                category_color_hex=pending.proposed_hex, category_color_name=pending.proposed_name
            )
        else:
            plan = pending.plan.updating(category_color_hex=None, category_color_name=None)
        return self.start(plan, entities, now)

    def _resolve_card_style(self, pending, reply, entities, now) -> Optional[FlowOutcome]:
        if pending.step is CardStyleStep.OFFER:
            answer = parse_yes_no(reply)
            if answer is None:
                return None
            if not answer:
                return FlowOutcome(_message("Okay, keeping the default look."), FlowStatus.CANCELLED)
            return self.start(pending.plan, entities, now)

        index = parse_choice(reply, pending.options)
        if index is None:
            return None
        if pending.step is CardStyleStep.THEME:
            return self.start(pending.plan.updating(card_theme=list(CardTheme)[index]), entities, now)
        return self.start(pending.plan.updating(card_effect=list(CardEffect)[index]), entities, now)

    def _resolve_budget_step(self, pending, reply, entities, now) -> Optional[FlowOutcome]:
        plan = pending.plan

        if pending.step in (BudgetStep.CARDS_CHOICE, BudgetStep.PRESETS_CHOICE):
            choice = parse_tri_state(reply)
            if choice is None:
                return None
            is_cards = pending.step is BudgetStep.CARDS_CHOICE
            flag = "attach_all_cards" if is_cards else "attach_all_presets"
            if choice == "all":
                return self.start(plan.updating(**{flag: True}), entities, now)
            if choice == "skip":
                return self.start(plan.updating(**{flag: False}), entities, now)

            names = entities.card_names() if is_cards else entities.preset_titles()
            noun = "cards" if is_cards else "presets"
            return _awaiting(
                AwaitingBudgetCreationStep(
                    plan=plan,
                    prompt=f"Which {noun}? Reply with numbers or names, separated by commas.",
                    options=tuple(names),
                    step=BudgetStep.CARDS_SELECTION if is_cards else BudgetStep.PRESETS_SELECTION,
                )
            )

        chosen = parse_multi_choice(reply, pending.options)
        if not chosen:
            return None
        if pending.step is BudgetStep.CARDS_SELECTION:
            plan = plan.updating(attach_all_cards=False, selected_card_names=tuple(chosen))
        else:
            plan = plan.updating(attach_all_presets=False, selected_preset_titles=tuple(chosen))
        return self.start(plan, entities, now)

    def _resolve_delete_confirmation(self, pending, reply, entities, now) -> Optional[FlowOutcome]:
        answer = parse_yes_no(reply)
        if answer is None:
            return None
        if not answer:
            return FlowOutcome(_message(f"Okay, I won't delete that {pending.record_kind.value}."), FlowStatus.CANCELLED)
        return self._execute(pending.plan.updating(target_record_id=pending.record_id), entities, now)

    def _resolve_record_choice(self, pending, reply, entities, now) -> Optional[FlowOutcome]:
        index = parse_choice(reply, pending.options)
        if index is None:
            return None
        return self.start(pending.plan.updating(target_record_id=pending.candidate_ids[index]), entities, now)

    def _resolve_card_selection(self, pending, reply, entities, now) -> Optional[FlowOutcome]:
        index = parse_choice(reply, pending.options)
        if index is None:
            return None
        return self.start(pending.plan.updating(card_name=pending.options[index]), entities, now)

    def _resolve_income_kind(self, pending, reply, entities, now) -> Optional[FlowOutcome]:
        normalized = normalize(reply)
        if "planned" in normalized:
            is_planned = True
        elif "actual" in normalized or "received" in normalized:
            is_planned = False
        else:
            index = parse_choice(reply, pending.options)
            if index is None:
                return None
            is_planned = index == 0
        return self.start(pending.plan.updating(is_planned_income=is_planned), entities, now)

    def _resolve_amount_target(self, pending, reply, entities, now) -> Optional[FlowOutcome]:
        normalized = normalize(reply)
        if "actual" in normalized or "effective" in normalized:
            target = PlannedExpenseAmountTarget.ACTUAL
        elif "planned" in normalized:
            target = PlannedExpenseAmountTarget.PLANNED
        else:
            index = parse_choice(reply, pending.options)
            if index is None:
                return None
            target = PlannedExpenseAmountTarget.PLANNED if index == 0 else PlannedExpenseAmountTarget.ACTUAL
        return self.start(pending.plan.updating(planned_expense_amount_target=target), entities, now)
