import sys

from executors.ledger import InMemoryLedger, LedgerQueryEngine
from models.ledger import WorkspaceEntities
from services.conversation_engine import ConversationEngine, ConversationSession


def main():
    """Small REPL against an empty in-memory workspace."""
    engine = ConversationEngine(query_engine=LedgerQueryEngine(), mutations=InMemoryLedger())
    session = ConversationSession(engine)
    entities = WorkspaceEntities()

    greeting = engine.greeting()
    print(f"{greeting.title}: {greeting.subtitle}")

    for line in sys.stdin:
        text = line.strip()
        if not text:
            continue
        if text.lower() in ("quit", "exit"):
            break
        if text.lower() == "clear":
            session.clear()
            print("(conversation cleared)")
            continue

        result = session.handle(text, entities)
        answer = result.answer
        print(answer.title)
        if answer.primary_value:
            print(f"  {answer.primary_value}")
        if answer.subtitle:
            print(f"  {answer.subtitle}")
        for row in answer.rows:
            print(f"  - {row.title}: {row.value}")
        for suggestion in result.suggestions:
            print(f"  > {suggestion.title}")


if __name__ == "__main__":
    main()
