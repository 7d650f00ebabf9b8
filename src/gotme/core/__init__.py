"""GOTME core module - shared types, errors and the session data model."""

from gotme.core.contract import Contract, ExecutionSchema
from gotme.core.errors import (
    ConfigError,
    GotmeError,
    OrchestrationError,
    PersistenceError,
    ProviderError,
    ValidationError,
)
from gotme.core.session import (
    CAPABILITIES,
    ModelClass,
    Partner,
    PartnerMetrics,
    Round,
    Run,
    Session,
    SessionStatus,
    ToolCall,
    new_session,
)
from gotme.core.types import Result

__all__ = [
    # Types
    "Result",
    # Errors
    "GotmeError",
    "ProviderError",
    "ConfigError",
    "ValidationError",
    "OrchestrationError",
    "PersistenceError",
    # Contract
    "Contract",
    "ExecutionSchema",
    # Session
    "CAPABILITIES",
    "ModelClass",
    "Partner",
    "PartnerMetrics",
    "Round",
    "Run",
    "Session",
    "SessionStatus",
    "ToolCall",
    "new_session",
]
