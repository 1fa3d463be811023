from abc import ABC, abstractmethod
from datetime import datetime

from models.command import CommandPlan, MutationResult
from models.ledger import WorkspaceEntities
from models.query import Answer, Query


class CollaboratorError(RuntimeError):
    """Raised by a query engine, mutation service or store that could not do its job."""


class QueryEngine(ABC):
    """
    Runs a resolved query against workspace data.
    No parsing, no clarification, no persona wording here.
    """

    @abstractmethod
    def execute(self, query: Query, entities: WorkspaceEntities, now: datetime) -> Answer:
        pass


class MutationService(ABC):
    """
    Applies a fully specified command plan.
    Validation problems come back as MutationResult.invalid(...), not exceptions.
    """

    @abstractmethod
    def perform(self, plan: CommandPlan, entities: WorkspaceEntities) -> MutationResult:
        pass
