import pytest

from services.text_parser import normalize_for_parsing
from services.utils import normalize

SAMPLES = [
    "",
    "   ",
    "Top 3 Categories!!  this   month",
    "How's my budget looking?",
    "Chase-Freedom / Sapphire",
    "SPEND $1,250.50 @ Café",
    "\tline\nbreaks\r\n",
]


@pytest.mark.parametrize("text", SAMPLES)
def test_normalize_is_idempotent(text):
    once = normalize(text)
    assert normalize(once) == once


def test_normalize_lowercases_and_collapses():
    assert normalize("Top 3 Categories!!  this   month") == "top 3 categories this month"


def test_normalize_replaces_punctuation_with_spaces():
    assert normalize("chase-freedom/sapphire") == "chase freedom sapphire"


def test_normalize_empty_input():
    assert normalize("") == ""
    assert normalize(None) == ""


def test_parsing_normalizer_keeps_date_separators():
    assert normalize_for_parsing("From 2026-10-01 to 10/15!") == "from 2026-10-01 to 10/15"


def test_parsing_normalizer_repairs_typos():
    assert normalize_for_parsing("How much did I spnd on grocereis") == "how much did i spend on groceries"


def test_parsing_normalizer_spells_out_percent():
    assert "percent" in normalize_for_parsing("what % of my spending")
