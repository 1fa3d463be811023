"""
Conversation and telemetry persistence.
"""

import json

import pytest

from executors.base import CollaboratorError
from models.query import Answer, AnswerKind
from services.conversation_store import (
    CONVERSATION_KEY_PREFIX,
    TELEMETRY_KEY_PREFIX,
    ConversationStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    TelemetryEvent,
    TelemetryOutcome,
    TelemetryStore,
    build_key_value_store,
    store_key,
)


def message(title: str) -> Answer:
    return Answer(kind=AnswerKind.MESSAGE, title=title)


def event(prompt: str, outcome: TelemetryOutcome = TelemetryOutcome.RESOLVED) -> TelemetryEvent:
    return TelemetryEvent(prompt=prompt, normalized_prompt=prompt.lower(), outcome=outcome, source="parser")


# ------------------------------------------------------------
# Conversation answers
# ------------------------------------------------------------
def test_answers_round_trip_per_workspace(conversations):
    conversations.append_answer(message("first"), "ws-a")
    conversations.append_answer(message("second"), "ws-a")
    conversations.append_answer(message("other"), "ws-b")

    assert [a.title for a in conversations.load_answers("ws-a")] == ["first", "second"]
    assert [a.title for a in conversations.load_answers("ws-b")] == ["other"]


def test_answers_keep_only_most_recent(kv_backend):
    store = ConversationStore(kv_backend, max_answers=3)

    for n in range(5):
        store.append_answer(message(f"answer {n}"), "ws")

    assert [a.title for a in store.load_answers("ws")] == ["answer 2", "answer 3", "answer 4"]


def test_clear_removes_only_that_workspace(conversations):
    conversations.append_answer(message("keep"), "ws-a")
    conversations.append_answer(message("drop"), "ws-b")

    conversations.clear("ws-b")

    assert conversations.load_answers("ws-b") == []
    assert len(conversations.load_answers("ws-a")) == 1


def test_unreadable_payload_loads_empty(kv_backend, conversations):
    kv_backend.set(store_key(CONVERSATION_KEY_PREFIX, "ws"), "{not json")

    assert conversations.load_answers("ws") == []


def test_malformed_items_are_skipped(kv_backend, conversations):
    good = message("good").model_dump(mode="json")
    kv_backend.set(store_key(CONVERSATION_KEY_PREFIX, "ws"), json.dumps([{"title": 3}, good]))

    assert [a.title for a in conversations.load_answers("ws")] == ["good"]


def test_storage_keys():
    assert store_key(CONVERSATION_KEY_PREFIX, "abc") == "home.assistant.conversation.abc"
    assert store_key(TELEMETRY_KEY_PREFIX, "abc") == "home.assistant.telemetry.abc"


# ------------------------------------------------------------
# Telemetry
# ------------------------------------------------------------
def test_telemetry_cap(kv_backend):
    store = TelemetryStore(kv_backend, max_events=2)

    for prompt in ("one", "two", "three"):
        store.append_event(event(prompt), "ws")

    assert [e.prompt for e in store.load_events("ws")] == ["two", "three"]


def test_telemetry_keeps_fields(telemetry):
    telemetry.append_event(
        TelemetryEvent(
            prompt="Spend on csr",
            normalized_prompt="spend on csr",
            outcome=TelemetryOutcome.CLARIFICATION,
            source="entityHeuristic",
            intent="cardSpendTotal",
            confidence="medium",
            target_name="Chase Sapphire",
            notes="bestEffort",
        ),
        "ws",
    )

    stored = telemetry.load_events("ws")[0]
    assert stored.outcome is TelemetryOutcome.CLARIFICATION
    assert stored.target_name == "Chase Sapphire"
    assert stored.notes == "bestEffort"


def test_telemetry_and_conversations_share_backend_without_collision(kv_backend, telemetry, conversations):
    telemetry.append_event(event("hi"), "ws")
    conversations.append_answer(message("hello"), "ws")

    telemetry.clear("ws")

    assert telemetry.load_events("ws") == []
    assert len(conversations.load_answers("ws")) == 1


# ------------------------------------------------------------
# Backends
# ------------------------------------------------------------
def test_json_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "store.json"
    JsonFileKeyValueStore(str(path)).set("k", "v")

    reopened = JsonFileKeyValueStore(str(path))

    assert reopened.get("k") == "v"
    reopened.delete("k")
    assert reopened.get("k") is None


def test_json_file_store_reports_corrupt_file(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{broken", encoding="utf-8")

    with pytest.raises(CollaboratorError):
        JsonFileKeyValueStore(str(path)).get("k")


def test_build_key_value_store(tmp_path):
    assert isinstance(build_key_value_store("memory"), InMemoryKeyValueStore)
    assert isinstance(build_key_value_store("json", str(tmp_path / "s.json")), JsonFileKeyValueStore)

    with pytest.raises(RuntimeError, match="STORE_PATH"):
        build_key_value_store("json")
    with pytest.raises(RuntimeError, match="Unknown STORE_BACKEND"):
        build_key_value_store("redis")
