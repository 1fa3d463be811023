# tests/conftest.py
import sys
from datetime import datetime
from pathlib import Path

# ---------------------------------------------------------
# Ensure project root is on PYTHONPATH BEFORE app imports
# ---------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# ---------------------------------------------------------
# Now safe to import project modules
# ---------------------------------------------------------
import pytest

from core.intent import EntityKind
from executors.ledger import InMemoryLedger, LedgerQueryEngine
from models.ledger import (
    AliasRule,
    Card,
    Category,
    Expense,
    Income,
    PlannedExpense,
    Preset,
    WorkspaceEntities,
)
from services.conversation_engine import ConversationEngine, ConversationSession
from services.conversation_store import (
    ConversationStore,
    InMemoryKeyValueStore,
    TelemetryStore,
)
from services.pending_flow import MutationCoordinator
from services.persona import PersonaFormatter
from services.plan_resolver import PlanResolver
from services.text_parser import TextParser

FIXED_NOW = datetime(2026, 10, 18, 12, 0)
PERSONA_SEED = 42


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def entities() -> WorkspaceEntities:
    """
    Small workspace used across suites. Function scoped: the in-memory
    ledger mutates these lists in place.
    """
    return WorkspaceEntities(
        cards=[
            Card(name="Chase Freedom"),
            Card(name="Chase Sapphire"),
            Card(name="Amex Gold"),
        ],
        categories=[
            Category(name="Groceries", color_hex="#22C55E"),
            Category(name="Dining", color_hex="#F97316"),
            Category(name="Travel", color_hex="#3B82F6"),
        ],
        incomes=[
            Income(source="Paycheck", amount=2500, date=datetime(2026, 10, 1, 9, 0)),
            Income(source="Paycheck", amount=2500, date=datetime(2026, 10, 15, 9, 0), is_planned=True),
            Income(source="Freelance", amount=600, date=datetime(2026, 10, 10, 9, 0)),
        ],
        presets=[
            Preset(title="Netflix", amount=15.99, card_name="Chase Freedom", category_name="Entertainment"),
        ],
        planned_expenses=[
            PlannedExpense(
                title="Rent",
                planned_amount=1500,
                date=datetime(2026, 10, 1, 8, 0),
                card_name="Chase Freedom",
                category_name="Housing",
            ),
        ],
        variable_expenses=[
            Expense(description="Coffee", amount=40, date=datetime(2026, 10, 17, 8, 30),
                    card_name="Chase Freedom", category_name="Dining"),
            Expense(description="Groceries run", amount=52, date=datetime(2026, 10, 17, 18, 0),
                    card_name="Chase Sapphire", category_name="Groceries"),
            Expense(description="Flight", amount=320, date=datetime(2026, 10, 5, 7, 0),
                    card_name="Amex Gold", category_name="Travel"),
            Expense(description="Dinner", amount=40, date=datetime(2026, 10, 12, 20, 0),
                    card_name="Chase Freedom", category_name="Dining"),
        ],
        alias_rules=[
            AliasRule(alias="csr", target="Chase Sapphire", kind=EntityKind.CARD),
            AliasRule(alias="eating out", target="Dining", kind=EntityKind.CATEGORY),
        ],
    )


@pytest.fixture
def parser() -> TextParser:
    return TextParser(now_provider=lambda: FIXED_NOW)


@pytest.fixture
def resolver(parser) -> PlanResolver:
    return PlanResolver(parser)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def coordinator(ledger) -> MutationCoordinator:
    return MutationCoordinator(ledger)


@pytest.fixture
def kv_backend() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def telemetry(kv_backend) -> TelemetryStore:
    return TelemetryStore(kv_backend)


@pytest.fixture
def conversations(kv_backend) -> ConversationStore:
    return ConversationStore(kv_backend)


@pytest.fixture
def engine(ledger, telemetry, conversations) -> ConversationEngine:
    return ConversationEngine(
        query_engine=LedgerQueryEngine(),
        mutations=ledger,
        persona=PersonaFormatter(session_seed=PERSONA_SEED),
        telemetry=telemetry,
        conversations=conversations,
        plan_resolver=PlanResolver(TextParser(now_provider=lambda: FIXED_NOW)),
        now_provider=lambda: FIXED_NOW,
    )


@pytest.fixture
def session(engine) -> ConversationSession:
    return ConversationSession(engine, workspace_id="test-workspace")
