# FILE: models/query.py
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.metric import ConfidenceBand, Metric, PeriodUnit, QueryIntent
from core.policy import is_rankable, sanitized_result_limit


def _new_id() -> str:
    return str(uuid4())


# -----------------------------
# Date Range
# -----------------------------
class DateRange(BaseModel):
    """
    Inclusive window. Reversed bounds are swapped on construction.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime = Field(..., description="Start instant (inclusive)")
    end: datetime = Field(..., description="End instant (inclusive)")

    @model_validator(mode="before")
    @classmethod
    def order_bounds(cls, data: Any) -> Any:
        if isinstance(data, dict):
            start, end = data.get("start"), data.get("end")
            if isinstance(start, datetime) and isinstance(end, datetime) and start > end:
                return {**data, "start": end, "end": start}
        return data

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


# -----------------------------
# Query (Plan -> Query Engine)
# -----------------------------
class Query(BaseModel):
    id: str = Field(default_factory=_new_id)
    intent: QueryIntent
    date_range: Optional[DateRange] = None
    result_limit: int = Field(default=1)
    target_name: Optional[str] = None
    period_unit: Optional[PeriodUnit] = None

    @model_validator(mode="before")
    @classmethod
    def default_limit(cls, data: Any) -> Any:
        if isinstance(data, dict) and "intent" in data:
            intent = QueryIntent(data["intent"])
            return {**data, "result_limit": sanitized_result_limit(intent, data.get("result_limit"))}
        return data

    @property
    def metric(self) -> Metric:
        return self.intent.metric


# -----------------------------
# Query Plan (Resolver -> Clarification -> Engine)
# -----------------------------
class QueryPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric: Metric
    date_range: Optional[DateRange] = None
    result_limit: Optional[int] = None
    confidence_band: ConfidenceBand = ConfidenceBand.HIGH
    target_name: Optional[str] = None
    period_unit: Optional[PeriodUnit] = None

    @property
    def query(self) -> Query:
        return Query(
            intent=self.metric.intent,
            date_range=self.date_range,
            result_limit=self.result_limit,
            target_name=self.target_name,
            period_unit=self.period_unit,
        )

    def updating(self, **changes: Any) -> "QueryPlan":
        return self.model_copy(update=changes)


# -----------------------------
# Session Context (persists across turns)
# -----------------------------
class SessionContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    last_metric: Optional[Metric] = None
    date_range: Optional[DateRange] = None
    target_name: Optional[str] = None
    result_limit: Optional[int] = None
    period_unit: Optional[PeriodUnit] = None

    def remembering(self, plan: QueryPlan) -> "SessionContext":
        """Context after `plan` ran. Limits are only kept for rankable metrics."""
        return SessionContext(
            last_metric=plan.metric,
            date_range=plan.date_range,
            target_name=plan.target_name,
            result_limit=plan.result_limit if is_rankable(plan.metric) else None,
            period_unit=plan.period_unit,
        )


# -----------------------------
# Answers (Engine -> Persona -> Host)
# -----------------------------
class AnswerKind(str, Enum):
    METRIC = "metric"
    LIST = "list"
    COMPARISON = "comparison"
    MESSAGE = "message"


class AnswerRow(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    value: str


class Answer(BaseModel):
    id: str = Field(default_factory=_new_id)
    query_id: str = Field(default_factory=_new_id)
    kind: AnswerKind
    user_prompt: Optional[str] = None
    title: str
    subtitle: Optional[str] = None
    primary_value: Optional[str] = None
    rows: List[AnswerRow] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_empty_message(self) -> bool:
        return self.kind is AnswerKind.MESSAGE and self.primary_value is None and not self.rows


class Suggestion(BaseModel):
    """A one-tap alternative query offered to the user."""

    model_config = ConfigDict(frozen=True)

    title: str
    query: Query


def unique_suggestions(suggestions, cap: int) -> List[Suggestion]:
    """First occurrence of each title wins (case-sensitive), capped."""
    seen = set()
    unique: List[Suggestion] = []
    for suggestion in suggestions:
        if suggestion.title in seen:
            continue
        seen.add(suggestion.title)
        unique.append(suggestion)
        if len(unique) >= cap:
            break
    return unique
