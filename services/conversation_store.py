# FILE: services/conversation_store.py
"""
Conversation + telemetry persistence

Both stores are append-only lists per workspace with a fixed retention cap,
kept in a key-value backend under "{prefix}.{workspace_id}".
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from executors.base import CollaboratorError
from models.query import Answer

# -----------------------------
# Logging Setup
# -----------------------------
logger = logging.getLogger("conversation_store")
logger.setLevel(logging.INFO)
if not logger.handlers:
    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(sh)

CONVERSATION_KEY_PREFIX = "home.assistant.conversation"
TELEMETRY_KEY_PREFIX = "home.assistant.telemetry"
MAX_STORED_ANSWERS = 50
MAX_STORED_EVENTS = 300


# -----------------------------
# Key-value backends
# -----------------------------
class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self):
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """One JSON object on disk, rewritten on every change."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CollaboratorError(f"Could not read store file {self.path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        temp_path = f"{self.path}.tmp"
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, self.path)
        except OSError as e:
            raise CollaboratorError(f"Could not write store file {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if data.pop(key, None) is not None:
                self._write_all(data)


def build_key_value_store(backend: str, path: Optional[str] = None) -> KeyValueStore:
    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "json":
        if not path:
            raise RuntimeError("STORE_PATH is required when STORE_BACKEND=json")
        return JsonFileKeyValueStore(path)
    raise RuntimeError(f"Unknown STORE_BACKEND '{backend}' (expected 'memory' or 'json')")


def store_key(prefix: str, workspace_id: str) -> str:
    return f"{prefix}.{workspace_id}"


def _load_list(backend: KeyValueStore, key: str) -> List[Any]:
    raw = backend.get(key)
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"[STORE] unreadable payload key={key}, starting empty")
        return []
    return items if isinstance(items, list) else []


# -----------------------------
# Conversation answers
# -----------------------------
class ConversationStore:
    def __init__(self, backend: KeyValueStore, max_answers: int = MAX_STORED_ANSWERS):
        self.backend = backend
        self.max_answers = max_answers

    def load_answers(self, workspace_id: str) -> List[Answer]:
        answers = []
        for item in _load_list(self.backend, store_key(CONVERSATION_KEY_PREFIX, workspace_id)):
            try:
                answers.append(Answer.model_validate(item))
            except ValidationError:
                logger.warning(f"[STORE] skipping malformed answer workspace={workspace_id}")
        return answers

    def save_answers(self, answers: List[Answer], workspace_id: str) -> None:
        kept = answers[-self.max_answers:]
        payload = json.dumps([answer.model_dump(mode="json") for answer in kept])
        self.backend.set(store_key(CONVERSATION_KEY_PREFIX, workspace_id), payload)

    def append_answer(self, answer: Answer, workspace_id: str) -> None:
        self.save_answers(self.load_answers(workspace_id) + [answer], workspace_id)

    def clear(self, workspace_id: str) -> None:
        self.backend.delete(store_key(CONVERSATION_KEY_PREFIX, workspace_id))


# -----------------------------
# Telemetry
# -----------------------------
class TelemetryOutcome(str, Enum):
    RESOLVED = "resolved"
    CLARIFICATION = "clarification"
    UNRESOLVED = "unresolved"


class TelemetryEvent(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    prompt: str
    normalized_prompt: str
    outcome: TelemetryOutcome
    source: str = Field(..., description="parser | context | entityHeuristic | command | pending")
    intent: Optional[str] = None
    confidence: Optional[str] = None
    target_name: Optional[str] = None
    notes: Optional[str] = None


class TelemetryStore:
    def __init__(self, backend: KeyValueStore, max_events: int = MAX_STORED_EVENTS):
        self.backend = backend
        self.max_events = max_events

    def load_events(self, workspace_id: str) -> List[TelemetryEvent]:
        events = []
        for item in _load_list(self.backend, store_key(TELEMETRY_KEY_PREFIX, workspace_id)):
            try:
                events.append(TelemetryEvent.model_validate(item))
            except ValidationError:
                logger.warning(f"[TELEMETRY] skipping malformed event workspace={workspace_id}")
        return events

    def append_event(self, event: TelemetryEvent, workspace_id: str) -> None:
        events = (self.load_events(workspace_id) + [event])[-self.max_events:]
        payload = json.dumps([item.model_dump(mode="json") for item in events])
        self.backend.set(store_key(TELEMETRY_KEY_PREFIX, workspace_id), payload)

    def clear(self, workspace_id: str) -> None:
        self.backend.delete(store_key(TELEMETRY_KEY_PREFIX, workspace_id))
