"""The research thesis seed.

A Contract is frozen once finalized. Evolution never edits it in place:
each round's evolved thesis supersedes ``context`` for the next round, and
only a director override before the first round replaces it wholesale.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ExecutionSchema(StrEnum):
    """Dispatch topology for a round."""

    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    COMPETITIVE = "competitive"


class Contract(BaseModel, frozen=True):
    """Research thesis under iterative refinement.

    Attributes:
        topic: Short statement of what is being researched.
        context: Thesis body: constraints, references, stop conditions.
        created_at: When the contract was finalized (UTC).
        created_by: Who authored it.
        improved_by: Set when the body was rewritten by a refiner model.
        schema: Execution schema used for every round of the session.
    """

    model_config = {"populate_by_name": True}

    topic: str = Field(..., min_length=1)
    context: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    created_by: str = "operator"
    improved_by: str | None = None
    execution_schema: ExecutionSchema = Field(default=ExecutionSchema.PARALLEL, alias="schema")

    def with_context(self, context: str, *, improved_by: str | None = None) -> Contract:
        """Return a copy with the thesis body replaced."""
        update: dict[str, object] = {"context": context}
        if improved_by is not None:
            update["improved_by"] = improved_by
        return self.model_copy(update=update)
