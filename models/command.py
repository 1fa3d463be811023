# models/command.py
from datetime import datetime
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from core.intent import CommandIntent, PlannedExpenseAmountTarget
from core.metric import ConfidenceBand
from models.ledger import CardEffect, CardTheme
from models.query import DateRange


# -----------------------------
# Command Plan (Command Parser -> Pending Flow -> Mutation Service)
# -----------------------------
class CommandPlan(BaseModel):
    """
    Immutable parsed mutation request.

    Wizards never mutate a plan in place; they call `updating(...)` and
    replay the copy, so `raw_prompt` and `original_amount` survive every step.
    """

    model_config = ConfigDict(frozen=True)

    intent: CommandIntent
    confidence_band: ConfidenceBand = ConfidenceBand.HIGH
    raw_prompt: str

    amount: Optional[float] = None
    original_amount: Optional[float] = Field(
        None, description="Identifying amount of an existing record (edit 'before' value)"
    )
    date: Optional[datetime] = None
    date_range: Optional[DateRange] = None
    notes: Optional[str] = None
    source: Optional[str] = None
    card_name: Optional[str] = None
    category_name: Optional[str] = None
    entity_name: Optional[str] = None
    is_planned_income: Optional[bool] = None

    category_color_hex: Optional[str] = None
    category_color_name: Optional[str] = None
    card_theme: Optional[CardTheme] = None
    card_effect: Optional[CardEffect] = None

    planned_expense_amount_target: Optional[PlannedExpenseAmountTarget] = None
    attach_all_cards: Optional[bool] = None
    attach_all_presets: Optional[bool] = None
    selected_card_names: Tuple[str, ...] = ()
    selected_preset_titles: Tuple[str, ...] = ()

    # Set once disambiguation (or a single ranked match) picks a record
    target_record_id: Optional[str] = None

    def updating(self, **changes: Any) -> "CommandPlan":
        return self.model_copy(update=changes)


# -----------------------------
# Mutation Result (Mutation Service -> Pending Flow)
# -----------------------------
class MutationResult(BaseModel):
    ok: bool
    message: str
    record_ids: List[str] = Field(default_factory=list)

    @classmethod
    def success(cls, message: str, *record_ids: str) -> "MutationResult":
        return cls(ok=True, message=message, record_ids=list(record_ids))

    @classmethod
    def invalid(cls, message: str) -> "MutationResult":
        return cls(ok=False, message=message)
