# core/intent.py
from enum import Enum


class CommandIntent(str, Enum):
    """
    What a mutation request wants done to the ledger.
    This does NOT execute logic.
    """

    MARK_INCOME_RECEIVED = "markIncomeReceived"
    DELETE_LAST_EXPENSE = "deleteLastExpense"
    DELETE_LAST_INCOME = "deleteLastIncome"
    MOVE_EXPENSE_CATEGORY = "moveExpenseCategory"
    UPDATE_PLANNED_EXPENSE_AMOUNT = "updatePlannedExpenseAmount"
    ADD_BUDGET = "addBudget"
    ADD_PRESET = "addPreset"
    ADD_CARD = "addCard"
    ADD_CATEGORY = "addCategory"
    DELETE_INCOME = "deleteIncome"
    EDIT_INCOME = "editIncome"
    ADD_INCOME = "addIncome"
    DELETE_EXPENSE = "deleteExpense"
    EDIT_EXPENSE = "editExpense"
    ADD_EXPENSE = "addExpense"

    # Only produced by the card styling wizard
    STYLE_CARD = "styleCard"

    # -----------------------------
    # Semantic helpers
    # -----------------------------
    def is_delete(self) -> bool:
        return self in {
            CommandIntent.DELETE_EXPENSE,
            CommandIntent.DELETE_INCOME,
            CommandIntent.DELETE_LAST_EXPENSE,
            CommandIntent.DELETE_LAST_INCOME,
        }

    def is_edit(self) -> bool:
        return self in {
            CommandIntent.EDIT_EXPENSE,
            CommandIntent.EDIT_INCOME,
            CommandIntent.UPDATE_PLANNED_EXPENSE_AMOUNT,
        }

    def targets_expense(self) -> bool:
        return self in {
            CommandIntent.DELETE_EXPENSE,
            CommandIntent.EDIT_EXPENSE,
            CommandIntent.MOVE_EXPENSE_CATEGORY,
        }

    def targets_income(self) -> bool:
        return self in {
            CommandIntent.DELETE_INCOME,
            CommandIntent.EDIT_INCOME,
            CommandIntent.MARK_INCOME_RECEIVED,
        }


class EntityKind(str, Enum):
    """
    Kinds of named workspace entities a prompt can point at.
    Alias rules are scoped to exactly one kind.
    """

    CARD = "card"
    CATEGORY = "category"
    INCOME_SOURCE = "incomeSource"
    PRESET = "preset"

    @property
    def plural_label(self) -> str:
        return {
            EntityKind.CARD: "cards",
            EntityKind.CATEGORY: "categories",
            EntityKind.INCOME_SOURCE: "income sources",
            EntityKind.PRESET: "presets",
        }[self]


class PlannedExpenseAmountTarget(str, Enum):
    PLANNED = "planned"
    ACTUAL = "actual"
