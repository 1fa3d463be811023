# services/clarification.py

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from core.intent import EntityKind
from core.metric import ConfidenceBand, Metric, QueryIntent
from core.policy import (
    MAX_DISAMBIGUATION_CANDIDATES,
    MAX_SUGGESTIONS,
    MISSING_TARGET_PRIORITY,
    MISSING_TARGET_REASONS,
    REASON_PROMPTS,
    ClarificationReason,
    expects_date,
    has_broad_phrase,
    has_explicit_date_phrase,
    mentions_all_scope,
    required_target,
)
from models.ledger import WorkspaceEntities
from models.query import Query, QueryPlan, Suggestion, unique_suggestions
from services import date_resolver
from services.entity_matcher import ranked_matches
from services.utils import normalize

COMPARE_WITH_LAST_MONTH = "Compare with last month"


# ---------------------------------------------------------------------
# Clarification Decision Model
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ClarificationDecision:
    reasons: Tuple[ClarificationReason, ...]
    subtitle: str
    suggestions: Tuple[Suggestion, ...]
    should_run_best_effort: bool

    @property
    def is_blocking(self) -> bool:
        return not self.should_run_best_effort


# ---------------------------------------------------------------------
# Clarification Logic (PURE, DETERMINISTIC)
# ---------------------------------------------------------------------
def resolve_clarification(
    plan: QueryPlan,
    prompt: str,
    entities: WorkspaceEntities,
    now: Optional[datetime] = None,
) -> Optional[ClarificationDecision]:
    """
    Decides whether a resolved plan runs silently, runs with hedged
    wording and chips, or blocks until the user picks an option.

    Rules:
    - No execution
    - No storage access
    - Deterministic only
    """
    now = now or date_resolver.get_now()
    normalized = normalize(prompt)

    # -------------------------------------------------
    # ENTITY DISAMBIGUATION (independent of confidence)
    # -------------------------------------------------
    disambiguation = _entity_disambiguation(plan, prompt, normalized, entities)
    if disambiguation is not None:
        return disambiguation

    if plan.confidence_band is ConfidenceBand.HIGH:
        return None

    # -------------------------------------------------
    # CONFIDENCE-DRIVEN REASONS
    # -------------------------------------------------
    reasons = _reasons(plan, normalized)
    if not reasons and plan.confidence_band is ConfidenceBand.MEDIUM:
        return None

    return ClarificationDecision(
        reasons=tuple(reasons),
        subtitle=_subtitle(plan.confidence_band, reasons),
        suggestions=tuple(_suggestions(plan, reasons, normalized, now)),
        should_run_best_effort=plan.confidence_band is ConfidenceBand.MEDIUM,
    )


def _entity_disambiguation(
    plan: QueryPlan,
    prompt: str,
    normalized: str,
    entities: WorkspaceEntities,
) -> Optional[ClarificationDecision]:
    target_kind = required_target(plan.metric)
    if target_kind is None or plan.target_name or mentions_all_scope(normalized, target_kind):
        return None

    pool = entities.names_for(target_kind)
    candidates = ranked_matches(prompt, pool, limit=MAX_DISAMBIGUATION_CANDIDATES)
    if not candidates and len(pool) >= 2:
        # Nothing named at all: offer the workspace's own entities
        candidates = pool[:MAX_DISAMBIGUATION_CANDIDATES]
    if len(candidates) < 2:
        return None

    label = target_kind.plural_label
    suggestions = [
        Suggestion(title=name, query=plan.updating(target_name=name).query)
        for name in candidates
    ]
    suggestions.append(Suggestion(title=f"All {label}", query=plan.updating(target_name=None).query))

    return ClarificationDecision(
        reasons=(MISSING_TARGET_REASONS[target_kind],),
        subtitle=f"I found more than one close match. Pick one, or run it across all {label}.",
        suggestions=tuple(unique_suggestions(suggestions, MAX_SUGGESTIONS)),
        should_run_best_effort=False,
    )


def _reasons(plan: QueryPlan, normalized: str) -> List[ClarificationReason]:
    reasons: List[ClarificationReason] = []

    def add(reason: ClarificationReason) -> None:
        if reason not in reasons:
            reasons.append(reason)

    if plan.confidence_band is ConfidenceBand.LOW:
        add(ClarificationReason.LOW_CONFIDENCE_LANGUAGE)

    if plan.date_range is None and expects_date(plan.metric) and not has_explicit_date_phrase(normalized):
        add(ClarificationReason.MISSING_DATE)

    if plan.metric is Metric.OVERVIEW and plan.date_range is None and has_broad_phrase(normalized):
        add(ClarificationReason.BROAD_PROMPT)

    target_kind = required_target(plan.metric)
    if target_kind is not None and not plan.target_name:
        for kind in MISSING_TARGET_PRIORITY:
            if kind is target_kind and not mentions_all_scope(normalized, kind):
                add(MISSING_TARGET_REASONS[kind])
                break

    return reasons


def _subtitle(band: ConfidenceBand, reasons: List[ClarificationReason]) -> str:
    details = " ".join(REASON_PROMPTS[reason] for reason in reasons[:2])

    if band is ConfidenceBand.MEDIUM:
        if details:
            return f"Likely match complete. {details}"
        return "Likely match complete. If you want it tighter, pick one option below."

    if details:
        return f"I need one more detail before I run this. {details}"
    return "I need one more detail before I run this. Pick an option below."


# -----------------------------
# Suggestions
# -----------------------------
def _suggestions(
    plan: QueryPlan,
    reasons: List[ClarificationReason],
    normalized: str,
    now: datetime,
) -> List[Suggestion]:
    this_month = date_resolver.month_range(now)
    last_month = date_resolver.previous_month_range(now)
    this_year = date_resolver.year_range(now)
    scoped_range = plan.date_range or this_month

    suggestions: List[Suggestion] = []

    for reason in reasons:
        if reason is ClarificationReason.MISSING_DATE:
            suggestions += [
                Suggestion(title="Use this month", query=plan.updating(date_range=this_month).query),
                Suggestion(title="Use last month", query=plan.updating(date_range=last_month).query),
            ]
        elif reason is ClarificationReason.MISSING_CATEGORY_TARGET:
            suggestions += [
                Suggestion(title="All categories", query=plan.updating(target_name=None).query),
                Suggestion(
                    title="Top categories first",
                    query=Query(intent=QueryIntent.TOP_CATEGORIES_THIS_MONTH, date_range=scoped_range, result_limit=3),
                ),
            ]
        elif reason is ClarificationReason.MISSING_CARD_TARGET:
            suggestions += [
                Suggestion(title="All cards", query=plan.updating(target_name=None).query),
                Suggestion(
                    title="Card habits (all cards)",
                    query=Query(intent=QueryIntent.CARD_VARIABLE_SPENDING_HABITS, date_range=scoped_range, result_limit=3),
                ),
            ]
        elif reason is ClarificationReason.MISSING_INCOME_SOURCE_TARGET:
            suggestions += [
                Suggestion(title="All income sources", query=plan.updating(target_name=None).query),
                Suggestion(
                    title="Average actual income",
                    query=Query(intent=QueryIntent.INCOME_AVERAGE_ACTUAL, date_range=plan.date_range or this_year),
                ),
            ]
        elif reason is ClarificationReason.BROAD_PROMPT:
            suggestions += [
                Suggestion(
                    title=COMPARE_WITH_LAST_MONTH,
                    query=Query(intent=QueryIntent.COMPARE_THIS_MONTH_TO_PREVIOUS_MONTH, date_range=this_month),
                ),
                Suggestion(
                    title="Spend this month",
                    query=Query(intent=QueryIntent.SPEND_THIS_MONTH, date_range=this_month),
                ),
            ]

    if ClarificationReason.LOW_CONFIDENCE_LANGUAGE in reasons and not suggestions:
        suggestions += [
            Suggestion(
                title="How am I doing this month?",
                query=Query(intent=QueryIntent.PERIOD_OVERVIEW, date_range=this_month),
            ),
            Suggestion(
                title="Top 3 categories this month",
                query=Query(intent=QueryIntent.TOP_CATEGORIES_THIS_MONTH, date_range=this_month, result_limit=3),
            ),
        ]

    if not suggestions:
        suggestions = _fallback_suggestions(plan, normalized, this_month, this_year)

    if ClarificationReason.BROAD_PROMPT in reasons:
        compare = [s for s in suggestions if s.title == COMPARE_WITH_LAST_MONTH][:1]
        if compare:
            suggestions = compare + [s for s in suggestions if s is not compare[0]]

    return unique_suggestions(suggestions, MAX_SUGGESTIONS)


def _fallback_suggestions(plan, normalized, this_month, this_year) -> List[Suggestion]:
    fallback = [
        Suggestion(title="Use this month", query=plan.updating(date_range=plan.date_range or this_month).query),
        Suggestion(title="Use this year", query=plan.updating(date_range=this_year).query),
        Suggestion(title="Spend this month", query=Query(intent=QueryIntent.SPEND_THIS_MONTH, date_range=this_month)),
    ]
    if "income" in normalized:
        fallback.append(
            Suggestion(
                title="Income share this month",
                query=Query(intent=QueryIntent.INCOME_SOURCE_SHARE, date_range=this_month),
            )
        )
    else:
        fallback.append(
            Suggestion(
                title="Top categories this month",
                query=Query(intent=QueryIntent.TOP_CATEGORIES_THIS_MONTH, date_range=this_month, result_limit=3),
            )
        )
    return fallback
