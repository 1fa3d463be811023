# core/pending.py
"""
Pending-turn states.

A pending state is the one outstanding question the assistant asked and
is waiting on. It carries the command plan being built, the prompt that
was shown, and the options offered (1-based in replies).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from models.command import CommandPlan


class CardStyleStep(str, Enum):
    OFFER = "offer"
    THEME = "themeSelection"
    EFFECT = "effectSelection"


class BudgetStep(str, Enum):
    CARDS_CHOICE = "cardsChoice"
    CARDS_SELECTION = "cardsSelection"
    PRESETS_CHOICE = "presetsChoice"
    PRESETS_SELECTION = "presetsSelection"


class RecordKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


@dataclass(frozen=True)
class PendingState:
    plan: CommandPlan
    prompt: str
    options: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class AwaitingCategoryColorConfirmation(PendingState):
    proposed_name: str = ""
    proposed_hex: str = ""


@dataclass(frozen=True)
class AwaitingCardStyleStep(PendingState):
    step: CardStyleStep = CardStyleStep.OFFER


@dataclass(frozen=True)
class AwaitingBudgetCreationStep(PendingState):
    step: BudgetStep = BudgetStep.CARDS_CHOICE


@dataclass(frozen=True)
class AwaitingDeleteConfirmation(PendingState):
    record_kind: RecordKind = RecordKind.EXPENSE
    record_id: Optional[str] = None


@dataclass(frozen=True)
class AwaitingExpenseDisambiguation(PendingState):
    candidate_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AwaitingPlannedExpenseDisambiguation(PendingState):
    candidate_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AwaitingIncomeDisambiguation(PendingState):
    candidate_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AwaitingCardSelection(PendingState):
    pass


@dataclass(frozen=True)
class AwaitingPresetCardSelection(PendingState):
    pass


@dataclass(frozen=True)
class AwaitingIncomeKind(PendingState):
    pass


@dataclass(frozen=True)
class AwaitingPlannedExpenseAmountTarget(PendingState):
    pass


# Order in which the turn handler consults pending states
PENDING_PRIORITY: Tuple[type, ...] = (
    AwaitingCategoryColorConfirmation,
    AwaitingCardStyleStep,
    AwaitingBudgetCreationStep,
    AwaitingDeleteConfirmation,
    AwaitingExpenseDisambiguation,
    AwaitingPlannedExpenseDisambiguation,
    AwaitingIncomeDisambiguation,
    AwaitingCardSelection,
    AwaitingPresetCardSelection,
    AwaitingIncomeKind,
    AwaitingPlannedExpenseAmountTarget,
)


def pending_priority(state: PendingState) -> int:
    return PENDING_PRIORITY.index(type(state))
