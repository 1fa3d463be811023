# FILE: services/plan_resolver.py
"""
Three-tier plan resolution

1. Pattern parser (fixed phrasing)
2. Contextual continuation ("how about last month" after a prior answer)
3. Entity-aware heuristics (a known card/category/source/preset name)

First tier that produces a plan wins. Every plan then goes through entity
enrichment so required targets come from aliases or fuzzy matching.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Tuple

from core.intent import EntityKind
from core.metric import ConfidenceBand, Metric, PeriodUnit
from core.policy import (
    contains_any,
    has_continuation_phrase,
    has_explicit_date_phrase,
    has_hedge_language,
    is_rankable,
    mentions_all_scope,
    required_target,
)
from models.ledger import WorkspaceEntities
from models.query import QueryPlan, SessionContext
from services.alias_resolver import is_ambiguous_entity, resolve_entity
from services.text_parser import AVERAGE_WORDS, TextParser, normalize_for_parsing
from services.utils import normalize

# -----------------------------
# Logging Setup
# -----------------------------
logger = logging.getLogger("plan_resolver")
logger.setLevel(logging.INFO)
if not logger.handlers:
    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(sh)


class ResolutionSource(str, Enum):
    PARSER = "parser"
    CONTEXT = "context"
    ENTITY_HEURISTIC = "entityHeuristic"


@dataclass(frozen=True)
class PlanResolution:
    plan: QueryPlan
    source: ResolutionSource


# -----------------------------
# Heuristic rules (tier 3)
# -----------------------------
@dataclass(frozen=True)
class _EntityHits:
    card: Optional[str]
    category: Optional[str]
    income_source: Optional[str]
    preset: Optional[str]

    def for_kind(self, kind: Optional[EntityKind]) -> Optional[str]:
        if kind is EntityKind.CARD:
            return self.card
        if kind is EntityKind.CATEGORY:
            return self.category
        if kind is EntityKind.INCOME_SOURCE:
            return self.income_source
        if kind is EntityKind.PRESET:
            return self.preset
        return None


HeuristicRule = Tuple[Metric, Callable[[str, _EntityHits], bool]]

HABIT_WORDS = ("habit", "habits", "pattern", "patterns", "variable spending", "trend", "trends")
SHARE_WORDS = ("share", "percent", "percentage", "portion", "split", "how much")
SPEND_WORDS = ("spend", "spent", "spending", "expenses")

HEURISTIC_RULES: Tuple[HeuristicRule, ...] = (
    (
        Metric.INCOME_AVERAGE_ACTUAL,
        lambda text, hits: ("income" in text or hits.income_source is not None)
        and contains_any(text, AVERAGE_WORDS),
    ),
    (
        Metric.CARD_VARIABLE_SPENDING_HABITS,
        lambda text, hits: ("card" in text or hits.card is not None)
        and contains_any(text, HABIT_WORDS),
    ),
    (
        Metric.CATEGORY_SPEND_SHARE,
        lambda text, hits: ("category" in text or hits.category is not None)
        and contains_any(text, SPEND_WORDS)
        and contains_any(text, SHARE_WORDS),
    ),
    (
        Metric.PRESET_DUE_SOON,
        lambda text, hits: ("preset" in text or hits.preset is not None) and "due" in text,
    ),
    # A bare entity name is enough to pick that entity's default question
    (Metric.CARD_SPEND_TOTAL, lambda text, hits: hits.card is not None),
    (Metric.CATEGORY_SPEND_SHARE, lambda text, hits: hits.category is not None),
    (Metric.INCOME_SOURCE_SHARE, lambda text, hits: hits.income_source is not None),
    (Metric.PRESET_DUE_SOON, lambda text, hits: hits.preset is not None),
)


class PlanResolver:
    def __init__(self, parser: Optional[TextParser] = None):
        self.parser = parser or TextParser()

    def resolve(
        self,
        prompt: str,
        entities: WorkspaceEntities,
        context: Optional[SessionContext] = None,
        now: Optional[datetime] = None,
    ) -> Optional[PlanResolution]:
        context = context or SessionContext()
        now = now or self.parser.now_provider()
        default_unit = context.period_unit or PeriodUnit.MONTH

        # -----------------
        # Tier 1: pattern parser
        # -----------------
        plan = self.parser.parse_plan(prompt, default_period_unit=default_unit, now=now)
        if plan is not None:
            logger.info(f"[PLAN] tier=parser metric={plan.metric.value}")
            return PlanResolution(enrich(plan, prompt, entities), ResolutionSource.PARSER)

        # -----------------
        # Tier 2: contextual continuation
        # -----------------
        plan = self._continuation(prompt, entities, context, now, default_unit)
        if plan is not None:
            logger.info(f"[PLAN] tier=context metric={plan.metric.value}")
            return PlanResolution(plan, ResolutionSource.CONTEXT)

        # -----------------
        # Tier 3: entity-aware heuristics
        # -----------------
        plan = self._heuristic(prompt, entities, now, default_unit)
        if plan is not None:
            logger.info(f"[PLAN] tier=entityHeuristic metric={plan.metric.value}")
            return PlanResolution(enrich(plan, prompt, entities), ResolutionSource.ENTITY_HEURISTIC)

        logger.info(f"[PLAN] unresolved prompt='{prompt[:100]}'")
        return None

    # -----------------------------
    # Tier 2
    # -----------------------------
    def _continuation(
        self,
        prompt: str,
        entities: WorkspaceEntities,
        context: SessionContext,
        now: datetime,
        default_unit: PeriodUnit,
    ) -> Optional[QueryPlan]:
        if context.last_metric is None:
            return None

        normalized = normalize(prompt)
        if not (has_continuation_phrase(normalized) or has_explicit_date_phrase(normalized)):
            return None

        date_range = self.parser.parse_date_range(prompt, default_period_unit=default_unit, now=now)
        plan = QueryPlan(
            metric=context.last_metric,
            date_range=date_range or context.date_range,
            result_limit=context.result_limit,
            confidence_band=ConfidenceBand.MEDIUM,
            target_name=context.target_name,
            period_unit=context.period_unit,
        )
        # Continuations stay medium even when the prompt names a new target
        return enrich(plan, prompt, entities, upgrade_confidence=False)

    # -----------------------------
    # Tier 3
    # -----------------------------
    def _heuristic(
        self,
        prompt: str,
        entities: WorkspaceEntities,
        now: datetime,
        default_unit: PeriodUnit,
    ) -> Optional[QueryPlan]:
        text = normalize_for_parsing(prompt)
        if not text:
            return None

        hits = _EntityHits(
            card=resolve_entity(prompt, EntityKind.CARD, entities),
            category=resolve_entity(prompt, EntityKind.CATEGORY, entities),
            income_source=resolve_entity(prompt, EntityKind.INCOME_SOURCE, entities),
            preset=resolve_entity(prompt, EntityKind.PRESET, entities),
        )

        for metric, matches in HEURISTIC_RULES:
            if not matches(text, hits):
                continue

            target_kind = required_target(metric)
            target = hits.for_kind(target_kind)
            if has_hedge_language(text):
                confidence = ConfidenceBand.LOW
            elif target_kind is not None and target is not None:
                confidence = ConfidenceBand.HIGH
            else:
                confidence = ConfidenceBand.MEDIUM

            return QueryPlan(
                metric=metric,
                date_range=self.parser.parse_date_range(prompt, default_period_unit=default_unit, now=now),
                result_limit=self.parser.parse_limit(prompt) if is_rankable(metric) else None,
                confidence_band=confidence,
                target_name=target,
                period_unit=self.parser.parse_period_unit(prompt, default_unit),
            )

        return None


# -----------------------------
# Entity enrichment
# -----------------------------
def enrich(
    plan: QueryPlan,
    prompt: str,
    entities: WorkspaceEntities,
    upgrade_confidence: bool = True,
) -> QueryPlan:
    """
    Fill the plan's required target from aliases/fuzzy matching.

    "all cards/categories/sources" leaves the target unset. A found target
    upgrades medium confidence to high; low stays low. When nothing is found
    the existing target (e.g. carried over from context) is kept. Two names
    tied for the best match ("chase" with Chase Freedom and Chase Sapphire)
    leave the target unset so clarification can ask which one.
    """
    target_kind = required_target(plan.metric)
    if target_kind is None:
        return plan

    if mentions_all_scope(normalize(prompt), target_kind):
        return plan.updating(target_name=None)

    if is_ambiguous_entity(prompt, target_kind, entities):
        return plan.updating(target_name=None)

    target = resolve_entity(prompt, target_kind, entities)
    if target is None:
        return plan

    confidence = plan.confidence_band
    if upgrade_confidence and confidence is ConfidenceBand.MEDIUM:
        confidence = ConfidenceBand.HIGH
    return plan.updating(target_name=target, confidence_band=confidence)
