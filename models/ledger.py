# models/ledger.py
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from core.intent import EntityKind


def _new_id() -> str:
    return str(uuid4())


class CardTheme(str, Enum):
    RUBY = "ruby"
    AQUA = "aqua"
    ULTRAVIOLET = "ultraviolet"
    CHARCOAL = "charcoal"
    SEAFOAM = "seafoam"
    SUNSET = "sunset"
    MIDNIGHT = "midnight"
    EMERALD = "emerald"
    SUNRISE = "sunrise"
    FUSCHIA = "fuschia"
    PERIWINKLE = "periwinkle"
    ASTER = "aster"


class CardEffect(str, Enum):
    PLASTIC = "plastic"
    METAL = "metal"
    HOLOGRAPHIC = "holographic"
    GLASS = "glass"


# -----------------------------
# Workspace entities (read-only lookup tables per turn)
# -----------------------------
class Card(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    theme: Optional[CardTheme] = None
    effect: Optional[CardEffect] = None


class Category(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    color_hex: Optional[str] = Field(None, description="Display color, #RRGGBB")


class Preset(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    amount: float = Field(..., ge=0)
    card_name: Optional[str] = None
    category_name: Optional[str] = None


class Income(BaseModel):
    id: str = Field(default_factory=_new_id)
    source: str
    amount: float = Field(..., ge=0)
    date: datetime
    is_planned: bool = False


class Expense(BaseModel):
    """A variable (card) expense."""

    id: str = Field(default_factory=_new_id)
    description: str = Field(default="")
    amount: float = Field(..., ge=0)
    date: datetime
    card_name: Optional[str] = None
    category_name: Optional[str] = None


class PlannedExpense(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    description: str = Field(default="")
    planned_amount: float = Field(..., ge=0)
    actual_amount: float = Field(default=0, ge=0)
    date: datetime
    card_name: Optional[str] = None
    category_name: Optional[str] = None


class Budget(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    card_names: List[str] = Field(default_factory=list)
    preset_titles: List[str] = Field(default_factory=list)


class AliasRule(BaseModel):
    """User-defined phrase -> canonical entity name, scoped to one kind."""

    alias: str
    target: str
    kind: EntityKind


class WorkspaceEntities(BaseModel):
    cards: List[Card] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)
    incomes: List[Income] = Field(default_factory=list)
    presets: List[Preset] = Field(default_factory=list)
    planned_expenses: List[PlannedExpense] = Field(default_factory=list)
    variable_expenses: List[Expense] = Field(default_factory=list)
    budgets: List[Budget] = Field(default_factory=list)
    alias_rules: List[AliasRule] = Field(default_factory=list)

    # -----------------------------
    # Candidate pools (workspace order)
    # -----------------------------
    def card_names(self) -> List[str]:
        return [card.name for card in self.cards]

    def category_names(self) -> List[str]:
        return [category.name for category in self.categories]

    def preset_titles(self) -> List[str]:
        return [preset.title for preset in self.presets]

    def income_sources(self) -> List[str]:
        return list(dict.fromkeys(income.source for income in self.incomes))

    def names_for(self, kind: EntityKind) -> List[str]:
        if kind is EntityKind.CARD:
            return self.card_names()
        if kind is EntityKind.CATEGORY:
            return self.category_names()
        if kind is EntityKind.INCOME_SOURCE:
            return self.income_sources()
        return self.preset_titles()
