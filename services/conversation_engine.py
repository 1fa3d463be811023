# FILE: services/conversation_engine.py
"""
Conversation Engine

One user turn, in order:
1. Active pending state consumes the reply
2. Mutation command
3. Query plan (parser -> context -> entity heuristics)
4. Clarification gate
5. Execute + persona styling

Session context and pending state are passed in and returned, never held
globally. A collaborator failure leaves both unchanged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from core.pending import PendingState
from core.policy import MAX_SUGGESTIONS
from executors.base import MutationService, QueryEngine
from models.ledger import WorkspaceEntities
from models.query import Answer, AnswerKind, QueryPlan, SessionContext, Suggestion, unique_suggestions
from services import date_resolver
from services.clarification import ClarificationDecision, resolve_clarification
from services.command_parser import CommandParser
from services.conversation_store import ConversationStore, TelemetryEvent, TelemetryOutcome, TelemetryStore
from services.pending_flow import FlowStatus, MutationCoordinator
from services.persona import PersonaFormatter
from services.plan_resolver import PlanResolver
from services.utils import normalize

# -----------------------------
# Logging Setup
# -----------------------------
logger = logging.getLogger("conversation_engine")
logger.setLevel(logging.INFO)
if not logger.handlers:
    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(sh)

DEFAULT_WORKSPACE = "default"

# Pending outcomes that close the question asked
_FINISHED_FLOW = (FlowStatus.EXECUTED, FlowStatus.CANCELLED, FlowStatus.NO_MATCH)


@dataclass(frozen=True)
class ConversationState:
    context: SessionContext = field(default_factory=SessionContext)
    pending: Optional[PendingState] = None


class TurnOutcome(str, Enum):
    RESOLVED = "resolved"
    CLARIFICATION = "clarification"
    UNRESOLVED = "unresolved"
    COMMAND = "command"
    PENDING = "pending"
    ERROR = "error"


@dataclass(frozen=True)
class TurnResult:
    answer: Answer
    state: ConversationState
    outcome: TurnOutcome
    suggestions: Tuple[Suggestion, ...] = ()
    clarification: Optional[ClarificationDecision] = None


class ConversationEngine:
    def __init__(
        self,
        query_engine: QueryEngine,
        mutations: MutationService,
        persona: Optional[PersonaFormatter] = None,
        telemetry: Optional[TelemetryStore] = None,
        conversations: Optional[ConversationStore] = None,
        plan_resolver: Optional[PlanResolver] = None,
        command_parser: Optional[CommandParser] = None,
        now_provider: Callable[[], datetime] = date_resolver.get_now,
    ):
        self.query_engine = query_engine
        self.coordinator = MutationCoordinator(mutations)
        self.persona = persona or PersonaFormatter()
        self.telemetry = telemetry
        self.conversations = conversations
        self.plan_resolver = plan_resolver or PlanResolver()
        self.command_parser = command_parser or CommandParser(self.plan_resolver.parser)
        self.now_provider = now_provider

    # -----------------------------
    # Public API
    # -----------------------------
    def handle_turn(
        self,
        text: str,
        entities: WorkspaceEntities,
        state: Optional[ConversationState] = None,
        workspace_id: str = DEFAULT_WORKSPACE,
        now: Optional[datetime] = None,
    ) -> TurnResult:
        state = state or ConversationState()
        now = now or self.now_provider()
        logger.info(f"[TURN] workspace={workspace_id} pending={state.pending.name if state.pending else None} text='{text[:100]}'")

        try:
            result = self._route(text, entities, state, workspace_id, now)
            self._remember(result.answer, workspace_id)
            return result
        except Exception as e:
            logger.exception(f"[ERROR] turn failed: {e}")
            return TurnResult(
                answer=Answer(
                    kind=AnswerKind.MESSAGE,
                    user_prompt=text,
                    title="Something went wrong.",
                    subtitle="I couldn't finish that. Nothing changed, so you can try again.",
                ),
                state=state,
                outcome=TurnOutcome.ERROR,
            )

    def run_suggestion(
        self,
        suggestion: Suggestion,
        entities: WorkspaceEntities,
        state: Optional[ConversationState] = None,
        workspace_id: str = DEFAULT_WORKSPACE,
        now: Optional[datetime] = None,
    ) -> TurnResult:
        """Run a tapped suggestion chip as-is, skipping parsing and clarification."""
        state = state or ConversationState()
        now = now or self.now_provider()
        query = suggestion.query
        plan = QueryPlan(
            metric=query.metric,
            date_range=query.date_range,
            result_limit=query.result_limit,
            target_name=query.target_name,
            period_unit=query.period_unit,
        )
        try:
            answer = self.persona.styled_answer(self.query_engine.execute(query, entities, now), suggestion.title)
            self._remember(answer, workspace_id)
        except Exception as e:
            logger.exception(f"[ERROR] suggestion failed: {e}")
            return TurnResult(
                answer=Answer(
                    kind=AnswerKind.MESSAGE,
                    user_prompt=suggestion.title,
                    title="Something went wrong.",
                    subtitle="I couldn't finish that. Nothing changed, so you can try again.",
                ),
                state=state,
                outcome=TurnOutcome.ERROR,
            )

        return TurnResult(
            answer=answer,
            state=ConversationState(context=state.context.remembering(plan), pending=state.pending),
            outcome=TurnOutcome.RESOLVED,
            suggestions=tuple(self.persona.follow_up_suggestions(answer)),
        )

    def clear(self, workspace_id: str = DEFAULT_WORKSPACE) -> ConversationState:
        logger.info(f"[TURN] cleared workspace={workspace_id}")
        if self.conversations is not None:
            try:
                self.conversations.clear(workspace_id)
            except Exception as e:
                logger.exception(f"[ERROR] could not clear stored answers: {e}")
        return ConversationState()

    def greeting(self) -> Answer:
        return self.persona.greeting()

    # -----------------------------
    # Routing
    # -----------------------------
    def _route(
        self,
        text: str,
        entities: WorkspaceEntities,
        state: ConversationState,
        workspace_id: str,
        now: datetime,
    ) -> TurnResult:
        if state.pending is not None:
            return self._continue_pending(text, entities, state, workspace_id, now)

        command = self.command_parser.parse(text, now=now)
        if command is not None:
            flow = self.coordinator.start(command, entities, now)
            self._record(
                workspace_id,
                text,
                TelemetryOutcome.CLARIFICATION if flow.pending else TelemetryOutcome.RESOLVED,
                source="command",
                intent=command.intent.value,
                confidence=command.confidence_band.value,
                notes=flow.status.value,
            )
            return TurnResult(
                answer=flow.answer.model_copy(update={"user_prompt": text}),
                state=ConversationState(context=state.context, pending=flow.pending),
                outcome=TurnOutcome.COMMAND,
            )

        resolution = self.plan_resolver.resolve(text, entities, state.context, now)
        if resolution is None:
            answer = self.persona.unresolved(text)
            self._record(workspace_id, text, TelemetryOutcome.UNRESOLVED, source="none")
            return TurnResult(
                answer=answer,
                state=state,
                outcome=TurnOutcome.UNRESOLVED,
                suggestions=tuple(self.persona.follow_up_suggestions(answer)),
            )

        plan = resolution.plan
        decision = resolve_clarification(plan, text, entities, now)
        telemetry = dict(
            source=resolution.source.value,
            intent=plan.metric.intent.value,
            confidence=plan.confidence_band.value,
            target_name=plan.target_name,
        )

        if decision is not None and decision.is_blocking:
            logger.info(f"[CLARIFY] blocking reasons={[reason.value for reason in decision.reasons]}")
            self._record(workspace_id, text, TelemetryOutcome.CLARIFICATION, notes="blocking", **telemetry)
            return TurnResult(
                answer=Answer(
                    kind=AnswerKind.MESSAGE,
                    user_prompt=text,
                    title="Quick check before I run this.",
                    subtitle=decision.subtitle,
                ),
                state=state,
                outcome=TurnOutcome.CLARIFICATION,
                suggestions=decision.suggestions,
                clarification=decision,
            )

        raw = self.query_engine.execute(plan.query, entities, now)
        if decision is not None:
            logger.info(f"[CLARIFY] best-effort reasons={[reason.value for reason in decision.reasons]}")
            raw = raw.model_copy(update={"subtitle": " ".join(part for part in (decision.subtitle, raw.subtitle) if part)})

        answer = self.persona.styled_answer(raw, text)
        suggestions: List[Suggestion] = list(decision.suggestions) if decision else []
        suggestions += self.persona.follow_up_suggestions(answer)

        self._record(
            workspace_id,
            text,
            TelemetryOutcome.CLARIFICATION if decision else TelemetryOutcome.RESOLVED,
            notes="bestEffort" if decision else None,
            **telemetry,
        )
        return TurnResult(
            answer=answer,
            state=ConversationState(context=state.context.remembering(plan), pending=None),
            outcome=TurnOutcome.CLARIFICATION if decision else TurnOutcome.RESOLVED,
            suggestions=tuple(unique_suggestions(suggestions, MAX_SUGGESTIONS)),
            clarification=decision,
        )

    def _continue_pending(self, text, entities, state, workspace_id, now) -> TurnResult:
        pending = state.pending
        flow = self.coordinator.resolve(pending, text, entities, now)
        logger.info(f"[PENDING] state={pending.name} status={flow.status.value}")

        self._record(
            workspace_id,
            text,
            TelemetryOutcome.RESOLVED if flow.status in _FINISHED_FLOW else TelemetryOutcome.CLARIFICATION,
            source="pending",
            intent=pending.plan.intent.value,
            notes=f"{pending.name}:{flow.status.value}",
        )
        return TurnResult(
            answer=flow.answer.model_copy(update={"user_prompt": text}),
            state=ConversationState(context=state.context, pending=flow.pending),
            outcome=TurnOutcome.PENDING,
        )

    # -----------------------------
    # Persistence
    # -----------------------------
    def _remember(self, answer: Answer, workspace_id: str) -> None:
        if self.conversations is not None:
            self.conversations.append_answer(answer, workspace_id)

    def _record(
        self,
        workspace_id: str,
        prompt: str,
        outcome: TelemetryOutcome,
        source: str,
        intent: Optional[str] = None,
        confidence: Optional[str] = None,
        target_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        if self.telemetry is None:
            return
        event = TelemetryEvent(
            prompt=prompt,
            normalized_prompt=normalize(prompt),
            outcome=outcome,
            source=source,
            intent=intent,
            confidence=confidence,
            target_name=target_name,
            notes=notes,
        )
        try:
            self.telemetry.append_event(event, workspace_id)
        except Exception as e:
            # Telemetry must never block the reply
            logger.exception(f"[TELEMETRY] append failed: {e}")


# -----------------------------
# Session holder
# -----------------------------
class ConversationSession:
    """Holds one workspace's conversation state between turns."""

    def __init__(self, engine: ConversationEngine, workspace_id: str = DEFAULT_WORKSPACE):
        self.engine = engine
        self.workspace_id = workspace_id
        self.state = ConversationState()

    def handle(self, text: str, entities: WorkspaceEntities, now: Optional[datetime] = None) -> TurnResult:
        result = self.engine.handle_turn(text, entities, self.state, self.workspace_id, now)
        self.state = result.state
        return result

    def tap(self, suggestion: Suggestion, entities: WorkspaceEntities, now: Optional[datetime] = None) -> TurnResult:
        result = self.engine.run_suggestion(suggestion, entities, self.state, self.workspace_id, now)
        self.state = result.state
        return result

    def clear(self) -> None:
        self.state = self.engine.clear(self.workspace_id)
