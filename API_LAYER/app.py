# app.py
import json
import logging
from asyncio import Lock
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import DEBUG, LOG_TO_FILE, PERSONA_SESSION_SEED, STORE_BACKEND, STORE_PATH
from executors.ledger import InMemoryLedger, LedgerQueryEngine
from models.ledger import WorkspaceEntities
from services.conversation_engine import ConversationEngine, ConversationSession, TurnResult
from services.conversation_store import ConversationStore, TelemetryStore, build_key_value_store
from services.persona import PersonaFormatter
from services.utils import deep_serialize


# -----------------------------
# Structured Logging Setup
# -----------------------------
class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(
            {
                "time": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "name": record.name,
                "message": record.getMessage(),
                "exception": record.exc_text,
            }
        )


logger = logging.getLogger("budget_assistant_api")
logger.setLevel(logging.INFO)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    if LOG_TO_FILE:
        fh = logging.FileHandler("budget_assistant_api.log")
        fh.setFormatter(JSONFormatter())
        logger.addHandler(fh)

# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="Budget Assistant API", version="1.0")


# -----------------------------
# Engine + per-workspace state (one conversation per workspace)
# -----------------------------
def build_engine() -> ConversationEngine:
    backend = build_key_value_store(STORE_BACKEND, STORE_PATH)
    return ConversationEngine(
        query_engine=LedgerQueryEngine(),
        mutations=InMemoryLedger(),
        persona=PersonaFormatter(session_seed=PERSONA_SESSION_SEED),
        telemetry=TelemetryStore(backend),
        conversations=ConversationStore(backend),
    )


engine = build_engine()
sessions: Dict[str, ConversationSession] = {}
workspaces: Dict[str, WorkspaceEntities] = {}


def session_for(workspace_id: str) -> ConversationSession:
    if workspace_id not in sessions:
        sessions[workspace_id] = ConversationSession(engine, workspace_id)
    return sessions[workspace_id]


# -----------------------------
# Metrics
# -----------------------------
metrics_lock = Lock()
request_counters = {
    "resolved": 0,
    "clarification": 0,
    "unresolved": 0,
    "command": 0,
    "pending": 0,
    "total": 0,
    "errors": 0,
}


# -----------------------------
# Pydantic Models
# -----------------------------
class UserRequest(BaseModel):
    text: str = Field(..., min_length=1)
    workspace_id: str = "default"
    entities: Optional[WorkspaceEntities] = None


class ClearRequest(BaseModel):
    workspace_id: str = "default"


# -----------------------------
# Failure envelope
# -----------------------------
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"type": "http_error" if exc.status_code < 500 else "internal_error", "message": str(exc.detail)}},
    )


def _pending_summary(result: TurnResult) -> Optional[Dict[str, Any]]:
    pending = result.state.pending
    if pending is None:
        return None
    return {"state": pending.name, "prompt": pending.prompt, "options": list(pending.options)}


def _serialize_turn(result: TurnResult, entities: WorkspaceEntities) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "outcome": result.outcome.value,
        "answer": deep_serialize(result.answer),
        "suggestions": deep_serialize(list(result.suggestions)),
        "pending": _pending_summary(result),
        "context": deep_serialize(result.state.context),
    }
    if result.outcome.value in ("command", "pending"):
        body["entities"] = deep_serialize(entities)
    return body


# -----------------------------
# API Endpoints
# -----------------------------
@app.get("/")
async def root():
    return {"message": "Budget Assistant API is running."}


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {"status": "ok", "store_backend": STORE_BACKEND, "active_sessions": len(sessions)}


@app.get("/metrics")
async def metrics() -> Dict[str, Any]:
    async with metrics_lock:
        return request_counters.copy()


@app.get("/greeting")
async def greeting() -> Dict[str, Any]:
    return {"answer": deep_serialize(engine.greeting())}


@app.post("/process")
async def process_request(request: UserRequest):
    async with metrics_lock:
        request_counters["total"] += 1

    try:
        logger.info(
            f"[REQUEST_START] workspace_id={request.workspace_id}, text_length={len(request.text)}"
        )

        if request.entities is not None:
            workspaces[request.workspace_id] = request.entities
        entities = workspaces.setdefault(request.workspace_id, WorkspaceEntities())

        result = session_for(request.workspace_id).handle(request.text, entities)

        logger.info(
            f"[TURN_DONE] workspace_id={request.workspace_id}, outcome={result.outcome.value}"
        )

        counter = "errors" if result.outcome.value == "error" else result.outcome.value
        async with metrics_lock:
            request_counters[counter] += 1

        return _serialize_turn(result, entities)

    except Exception as e:
        async with metrics_lock:
            request_counters["errors"] += 1

        logger.exception(
            f"[ERROR] workspace_id={request.workspace_id}, exception={e}"
        )

        raise HTTPException(
            status_code=500,
            detail=str(e) if DEBUG else "An unexpected error occurred",
        )


@app.post("/clear")
async def clear_conversation(request: ClearRequest) -> Dict[str, Any]:
    session_for(request.workspace_id).clear()
    logger.info(f"[CLEAR] workspace_id={request.workspace_id}")
    return {"status": "cleared", "workspace_id": request.workspace_id}


# -----------------------------
# Entrypoint
# -----------------------------
if __name__ == "__main__":
    import uvicorn

    from config import PORT

    uvicorn.run("API_LAYER.app:app", host="0.0.0.0", port=PORT, workers=1)
