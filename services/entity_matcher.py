# FILE: services/entity_matcher.py
"""
Fuzzy entity matching

- Whole substring match always wins
- Otherwise token overlap scoring, ties keep the first-seen candidate
- Output order depends only on inputs (no set/dict iteration in ranking)
"""

from typing import List, Optional, Sequence, Tuple

from services.utils import normalize

# Generic nouns that appear in both prompts and entity names ("Chase card")
# and would otherwise make every candidate overlap.
STOP_TOKENS = frozenset({
    "a", "an", "the", "my", "this", "that", "all",
    "card", "cards", "category", "categories",
    "income", "source", "sources", "preset", "presets",
    "payment", "payments",
})


def _informative_tokens(normalized: str) -> List[str]:
    return [token for token in normalized.split(" ") if token and token not in STOP_TOKENS]


def _normalized_candidates(candidates: Sequence[str]) -> List[Tuple[str, str]]:
    pairs = []
    for name in candidates:
        normalized = normalize(name)
        if normalized:
            pairs.append((name, normalized))
    return pairs


def _scored(prompt: str, candidates: Sequence[str]) -> List[Tuple[str, int]]:
    normalized_prompt = normalize(prompt)
    if not normalized_prompt:
        return []

    pairs = _normalized_candidates(candidates)

    # -----------------------------
    # Substring pass
    # -----------------------------
    for name, normalized in pairs:
        if normalized in normalized_prompt:
            return [(name, 1_000)]

    # -----------------------------
    # Token overlap pass
    # -----------------------------
    prompt_tokens = set(_informative_tokens(normalized_prompt))
    scored = []
    for name, normalized in pairs:
        score = len(prompt_tokens.intersection(_informative_tokens(normalized)))
        if score > 0:
            scored.append((name, score))
    return scored


def ranked_matches(prompt: str, candidates: Sequence[str], limit: int = 3) -> List[str]:
    """
    Top `limit` candidate names by score, stable for equal scores.
    Fewer than two results means "no ambiguity", not "no match".
    """
    scored = _scored(prompt, candidates)
    # sorted() is stable: equal scores keep candidate order
    ranked = sorted(scored, key=lambda pair: -pair[1])
    return [name for name, _ in ranked[: max(0, limit)]]


def best_match(prompt: str, candidates: Sequence[str]) -> Optional[str]:
    matches = ranked_matches(prompt, candidates, limit=1)
    return matches[0] if matches else None


def tied_top_matches(prompt: str, candidates: Sequence[str]) -> List[str]:
    """Candidates sharing the best score, when there are at least two of them."""
    scored = _scored(prompt, candidates)
    if not scored:
        return []
    top = max(score for _, score in scored)
    tied = [name for name, score in scored if score == top]
    return tied if len(tied) >= 2 else []
