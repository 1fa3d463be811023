# FILE: services/command_parser.py
"""
Mutation command parser

Detects add/edit/delete style requests and extracts the fields a mutation
needs. Works on the raw prompt (names keep their casing) and a lowercased
copy for keyword checks.
"""

import re
from datetime import datetime
from difflib import get_close_matches
from typing import Dict, List, Optional, Tuple

from core.intent import CommandIntent, PlannedExpenseAmountTarget
from core.metric import ConfidenceBand
from models.command import CommandPlan
from models.ledger import CardEffect, CardTheme
from services.text_parser import TextParser, strip_date_literals

AMOUNT_PATTERN = r"\$?-?[0-9][0-9,]*(?:\.[0-9]{1,2})?"
_AMOUNT_RE = re.compile(AMOUNT_PATTERN)
_FROM_TO_AMOUNT_RE = re.compile(rf"\bfrom\s+({AMOUNT_PATTERN})\s+to\s+({AMOUNT_PATTERN})(?!\d)")

COLOR_ALIASES: Dict[str, str] = {
    "blue": "#3B82F6",
    "green": "#22C55E",
    "forest green": "#228B22",
    "red": "#EF4444",
    "orange": "#F97316",
    "yellow": "#EAB308",
    "purple": "#8B5CF6",
    "pink": "#EC4899",
    "mauve": "#B784A7",
    "periwinkle": "#8FA6FF",
    "perriwinkle": "#8FA6FF",
    "cafe": "#6F4E37",
    "brown": "#8B5A2B",
    "teal": "#14B8A6",
    "mint": "#10B981",
    "gray": "#6B7280",
    "grey": "#6B7280",
    "black": "#111827",
    "white": "#E5E7EB",
}

_CREATION_VERBS = ("add", "create", "new", "make")
_ENTITY_NAME_CHARS = r"[A-Za-z0-9 '&\-]"


def closest_color(name: str) -> Tuple[str, str]:
    """Nearest known color name (and its hex) for an unrecognized color word."""
    matches = get_close_matches(name, list(COLOR_ALIASES), n=1, cutoff=0.0)
    chosen = matches[0] if matches else "blue"
    return chosen, COLOR_ALIASES[chosen]


def parse_amount_token(token: str) -> Optional[float]:
    cleaned = token.replace("$", "").replace(",", "").strip()
    try:
        return float(cleaned)
    except ValueError:
        return None


def _has_word(text: str, *words: str) -> bool:
    return any(re.search(rf"\b{re.escape(word)}\b", text) for word in words)


def _has_digit(text: str) -> bool:
    # Edits always carry the new amount; "how did my expenses change" is a question
    return bool(re.search(r"[0-9]", text))


def _strip_trailing_punctuation(value: str) -> str:
    return value.strip(" .,!?")


class CommandParser:
    def __init__(self, parser: Optional[TextParser] = None):
        self.parser = parser or TextParser()

    # -----------------------------
    # Public API
    # -----------------------------
    def parse(self, raw_text: str, now: Optional[datetime] = None) -> Optional[CommandPlan]:
        trimmed = raw_text.strip()
        if not trimmed:
            return None

        lowered = re.sub(r"\s+", " ", trimmed.lower())
        intent = self.resolved_intent(lowered)
        if intent is None:
            return None

        date_range = self.parser.parse_date_range(trimmed, now=now)
        # "on 2026-10-17 for $40": the date digits are not amounts
        amount_text = strip_date_literals(lowered, include_years=False)
        amounts = self.extract_amounts(amount_text)
        pair = self.extract_from_to_amounts(amount_text)
        amount, original_amount = self._amounts_for(intent, amounts, pair)
        color_hex, color_name = self.extract_category_color(lowered)

        return CommandPlan(
            intent=intent,
            confidence_band=ConfidenceBand.HIGH,
            raw_prompt=trimmed,
            amount=amount,
            original_amount=original_amount,
            date=date_range.start if date_range else None,
            date_range=date_range,
            notes=self.extract_notes(trimmed),
            source=self.extract_income_source(trimmed),
            card_name=self.extract_card_name(trimmed),
            category_name=self.extract_category_name(trimmed),
            entity_name=self.extract_entity_name(trimmed, intent),
            is_planned_income=self.extract_income_kind(lowered),
            category_color_hex=color_hex,
            category_color_name=color_name,
            card_theme=self._first_option(lowered, CardTheme),
            card_effect=self._first_option(lowered, CardEffect),
            planned_expense_amount_target=self.extract_planned_amount_target(lowered),
            attach_all_cards=self._attach_flag(lowered, "card"),
            attach_all_presets=self._attach_flag(lowered, "preset"),
        )

    # -----------------------------
    # Intent
    # -----------------------------
    def resolved_intent(self, text: str) -> Optional[CommandIntent]:
        if "mark" in text and "income" in text and "received" in text:
            return CommandIntent.MARK_INCOME_RECEIVED

        if any(p in text for p in ("delete last expense", "delete my last expense", "remove my last expense")):
            return CommandIntent.DELETE_LAST_EXPENSE

        if any(p in text for p in ("delete last income", "delete my last income", "remove my last income")):
            return CommandIntent.DELETE_LAST_INCOME

        if ("move this expense" in text or "move expense" in text) and "category" in text:
            return CommandIntent.MOVE_EXPENSE_CATEGORY

        if self._matches_planned_amount_update(text):
            return CommandIntent.UPDATE_PLANNED_EXPENSE_AMOUNT

        if self._matches_create(text, "budget"):
            return CommandIntent.ADD_BUDGET

        if self._matches_create(text, "preset"):
            return CommandIntent.ADD_PRESET

        if self._matches_create(text, "card") and "expense" not in text and "transaction" not in text:
            return CommandIntent.ADD_CARD

        if self._matches_create(text, "category"):
            return CommandIntent.ADD_CATEGORY

        if "income" in text:
            if _has_word(text, "delete", "remove"):
                return CommandIntent.DELETE_INCOME
            if _has_word(text, "edit", "update", "change") and _has_digit(text):
                return CommandIntent.EDIT_INCOME
            if _has_word(text, "add", "log", "create"):
                return CommandIntent.ADD_INCOME

        if any(word in text for word in ("expense", "transaction", "purchase", "charge", "$")):
            if _has_word(text, "delete", "remove"):
                return CommandIntent.DELETE_EXPENSE
            if _has_word(text, "edit", "update", "change") and _has_digit(text):
                return CommandIntent.EDIT_EXPENSE
            if _has_word(text, "add", "log", "create"):
                return CommandIntent.ADD_EXPENSE

        return None

    @staticmethod
    def _matches_create(text: str, entity_keyword: str) -> bool:
        return _has_word(text, *_CREATION_VERBS) and entity_keyword in text

    @staticmethod
    def _matches_planned_amount_update(text: str) -> bool:
        if not _has_word(text, "update", "edit", "change", "set"):
            return False
        if not re.search(r"[0-9]", text) or "income" in text:
            return False
        if any(word in text for word in ("planned expense", "planned", "preset", "rent", "mortgage", "subscription")):
            return True
        # "change groceries to 300" with no record-type word at all
        return " to " in text and not any(word in text for word in ("expense", "transaction", "purchase", "charge"))

    # -----------------------------
    # Amounts
    # -----------------------------
    @staticmethod
    def extract_amounts(text: str) -> List[float]:
        amounts = []
        for match in _AMOUNT_RE.finditer(text):
            value = parse_amount_token(match.group(0))
            if value is not None:
                amounts.append(value)
        return amounts

    @staticmethod
    def extract_from_to_amounts(text: str) -> Optional[Tuple[float, float]]:
        match = _FROM_TO_AMOUNT_RE.search(text)
        if not match:
            return None
        before, after = parse_amount_token(match.group(1)), parse_amount_token(match.group(2))
        if before is None or after is None:
            return None
        return before, after

    @staticmethod
    def _amounts_for(
        intent: CommandIntent,
        amounts: List[float],
        pair: Optional[Tuple[float, float]],
    ) -> Tuple[Optional[float], Optional[float]]:
        """(amount, original_amount) for the intent."""
        if intent.is_edit():
            if pair:
                return pair[1], pair[0]
            if len(amounts) >= 2:
                return amounts[-1], amounts[0]
            return (amounts[0] if amounts else None), None

        if intent in (CommandIntent.DELETE_EXPENSE, CommandIntent.DELETE_INCOME):
            # The stated amount identifies the record to delete
            first = amounts[0] if amounts else None
            return first, first

        if intent in (CommandIntent.ADD_BUDGET, CommandIntent.ADD_CARD, CommandIntent.ADD_CATEGORY):
            return None, None

        return (amounts[0] if amounts else None), None

    # -----------------------------
    # Text fields
    # -----------------------------
    @staticmethod
    def extract_notes(text: str) -> Optional[str]:
        for keyword in ("for", "at"):
            match = re.search(rf"\b{keyword}\s+(.+)$", text)
            if match:
                value = _strip_trailing_punctuation(match.group(1))
                if value:
                    return value
        return None

    def extract_income_source(self, text: str) -> Optional[str]:
        for keyword in ("from", "for"):
            match = re.search(rf"\b{keyword}\s+(.+)$", text)
            if match and match.group(1).strip():
                return self._sanitized_income_source(match.group(1))

        fallback = _AMOUNT_RE.sub(" ", text)
        fallback = re.sub(
            r"\b(add|log|create|income|mark|as|received|entry|new|my|an|a)\b", " ", fallback, flags=re.IGNORECASE
        )
        fallback = re.sub(r"\s+", " ", fallback).strip()
        return self._sanitized_income_source(fallback) if fallback else None

    def _sanitized_income_source(self, raw: str) -> Optional[str]:
        source = _AMOUNT_RE.sub(" ", raw)
        source = re.sub(r"\b(planned|actual|income|received)\b", " ", source, flags=re.IGNORECASE)
        source = re.sub(r"\s+", " ", source).strip()
        source = self._sanitize_creation_phrase(_strip_trailing_punctuation(source))
        return source or None

    @staticmethod
    def extract_card_name(text: str) -> Optional[str]:
        for keyword in ("on", "to", "using"):
            match = re.search(rf"\b{keyword}\s+([A-Za-z0-9 '\-]+?)\s+card\b", text, flags=re.IGNORECASE)
            if match:
                value = _strip_trailing_punctuation(match.group(1))
                if value:
                    return value
        return None

    @staticmethod
    def extract_category_name(text: str) -> Optional[str]:
        patterns = (
            r"\bto\s+([A-Za-z0-9 '&\-]+?)\s+category\b",
            r"\bcategory\s+(?:to\s+)?([A-Za-z0-9 '&\-]+)",
        )
        for pattern in patterns:
            match = re.search(pattern, text, flags=re.IGNORECASE)
            if match:
                value = _strip_trailing_punctuation(match.group(1))
                if value:
                    return value
        return None

    def extract_entity_name(self, text: str, intent: CommandIntent) -> Optional[str]:
        keyword = {
            CommandIntent.ADD_CARD: "card",
            CommandIntent.ADD_CATEGORY: "category",
            CommandIntent.ADD_PRESET: "preset",
            CommandIntent.ADD_BUDGET: "budget",
        }.get(intent)
        if keyword is None:
            return None

        compact = re.sub(r"\s+", " ", text).strip()
        patterns = (
            rf"\b(?:called|named)\s+({_ENTITY_NAME_CHARS}+)$",
            rf"\b{keyword}\s+({_ENTITY_NAME_CHARS}+)$",
        )
        for pattern in patterns:
            match = re.search(pattern, compact, flags=re.IGNORECASE)
            if not match:
                continue
            raw = _strip_trailing_punctuation(match.group(1).strip())
            if intent is CommandIntent.ADD_PRESET:
                raw = re.sub(rf"\s+{AMOUNT_PATTERN}$", "", raw).strip()
            if intent is CommandIntent.ADD_CATEGORY:
                raw = re.sub(r"\s+(?:colou?r)\s+[a-z ]+$", "", raw, flags=re.IGNORECASE).strip()
            raw = self._sanitize_creation_phrase(raw)
            if raw:
                return raw
        return None

    @staticmethod
    def _sanitize_creation_phrase(phrase: str) -> str:
        phrase = phrase.strip()
        for pattern in (
            r"\b(actual|planned)\b$",
            r"\bon\s+[a-z0-9 '&\-]+\s+card\b$",
            r"\bcategory\s+[a-z0-9 '&\-]+\b$",
        ):
            phrase = re.sub(pattern, "", phrase, flags=re.IGNORECASE).strip()
        return _strip_trailing_punctuation(phrase)

    # -----------------------------
    # Options and flags
    # -----------------------------
    @staticmethod
    def extract_category_color(lowered: str) -> Tuple[Optional[str], Optional[str]]:
        """(hex, name). An unknown color name comes back with hex None."""
        match = re.search(r"\b(?:color|colour)\s+([a-z ]{3,30})\b", lowered)
        if match:
            name = match.group(1).strip()
        else:
            name = next((alias for alias in COLOR_ALIASES if re.search(rf"\b{alias}\b", lowered)), None)
        if not name:
            return None, None

        if name in COLOR_ALIASES:
            return COLOR_ALIASES[name], name

        compact = name.replace(" ", "")
        for alias, hex_value in COLOR_ALIASES.items():
            if alias.replace(" ", "") == compact:
                return hex_value, alias
        return None, name

    @staticmethod
    def _first_option(lowered: str, options):
        for option in options:
            if option.value in lowered:
                return option
        return None

    @staticmethod
    def _attach_flag(lowered: str, noun: str) -> Optional[bool]:
        if f"all {noun}s" in lowered or f"attach every {noun}" in lowered:
            return True
        if any(f"{word} {noun}s" in lowered for word in ("no", "without", "skip")):
            return False
        return None

    @staticmethod
    def extract_income_kind(lowered: str) -> Optional[bool]:
        if "planned" in lowered:
            return True
        if "actual" in lowered:
            return False
        return None

    @staticmethod
    def extract_planned_amount_target(lowered: str) -> Optional[PlannedExpenseAmountTarget]:
        if "actual" in lowered or "effective" in lowered:
            return PlannedExpenseAmountTarget.ACTUAL
        if "planned" in lowered:
            return PlannedExpenseAmountTarget.PLANNED
        return None
