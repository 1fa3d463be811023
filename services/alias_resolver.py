# FILE: services/alias_resolver.py
import re
from typing import List, Optional, Sequence

from core.intent import EntityKind
from models.ledger import AliasRule, WorkspaceEntities
from services.entity_matcher import best_match, tied_top_matches
from services.utils import normalize


def _usable_rules(kind: EntityKind, rules: Sequence[AliasRule]) -> List[AliasRule]:
    return [
        rule
        for rule in rules
        if rule.kind is kind and rule.alias.strip() and rule.target.strip()
    ]


def resolve_alias(prompt: str, kind: EntityKind, rules: Sequence[AliasRule]) -> Optional[str]:
    """
    Resolve a user-defined alias of `kind` mentioned in `prompt`.

    Longest alias wins on whole-word match ("chase sapphire reserve" beats
    "chase"); otherwise fall back to fuzzy matching over the alias phrases.
    """
    usable = _usable_rules(kind, rules)
    if not usable:
        return None

    normalized_prompt = normalize(prompt)
    by_length = sorted(usable, key=lambda rule: len(normalize(rule.alias)), reverse=True)

    for rule in by_length:
        alias = normalize(rule.alias)
        if alias and re.search(rf"\b{re.escape(alias)}\b", normalized_prompt):
            return rule.target

    fuzzy_alias = best_match(prompt, [rule.alias for rule in by_length])
    if fuzzy_alias is None:
        return None

    wanted = normalize(fuzzy_alias)
    for rule in by_length:
        if normalize(rule.alias) == wanted:
            return rule.target
    return None


def resolve_entity(prompt: str, kind: EntityKind, entities: WorkspaceEntities) -> Optional[str]:
    """Alias table first, then fuzzy match against the workspace pool for `kind`."""
    aliased = resolve_alias(prompt, kind, entities.alias_rules)
    if aliased:
        return aliased
    return best_match(prompt, entities.names_for(kind))


def is_ambiguous_entity(prompt: str, kind: EntityKind, entities: WorkspaceEntities) -> bool:
    """True when no alias applies and two or more names tie for the best match."""
    if resolve_alias(prompt, kind, entities.alias_rules):
        return False
    return bool(tied_top_matches(prompt, entities.names_for(kind)))
