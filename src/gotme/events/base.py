"""Base event definition.

All GOTME domain events are immutable BaseEvent instances following the
dot.notation.past_tense naming convention. The engine returns them with
every cycle outcome; hosts may log, store or forward them.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class BaseEvent(BaseModel, frozen=True):
    """Base class for all GOTME events.

    Attributes:
        id: Unique event identifier (UUID).
        type: Event type following dot.notation.past_tense convention.
              Examples: "session.round.completed", "session.converged"
        timestamp: When the event occurred (UTC).
        aggregate_type: Type of aggregate this event belongs to.
        aggregate_id: Unique identifier of the aggregate.
        data: Event-specific payload data.

    Example:
        event = BaseEvent(
            type="session.round.completed",
            aggregate_type="session",
            aggregate_id="ses_4f1c2a9b7d3e",
            data={"round_number": 2, "char_count": 1840},
        )
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    aggregate_type: str
    aggregate_id: str
    data: dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> dict[str, Any]:
        """Flatten into keyword arguments for a structlog call."""
        return {
            "event_id": self.id,
            "event_type": self.type,
            "aggregate_id": self.aggregate_id,
            **self.data,
        }
