"""Round orchestration: persona rotation, dispatch and synthesis."""

from gotme.orchestrator.dispatcher import (
    ERROR_MARKERS,
    DispatchRequest,
    RunDispatcher,
    build_partner_prompt,
    is_error_response,
)
from gotme.orchestrator.roles import ROLES, Role, RoleAssigner
from gotme.orchestrator.synthesizer import (
    ContractRefiner,
    SynthesisResult,
    Synthesizer,
    parse_synthesis,
)
from gotme.orchestrator.tool_use import extract_tool_calls

__all__ = [
    "ROLES",
    "Role",
    "RoleAssigner",
    "ERROR_MARKERS",
    "DispatchRequest",
    "RunDispatcher",
    "build_partner_prompt",
    "is_error_response",
    "ContractRefiner",
    "SynthesisResult",
    "Synthesizer",
    "parse_synthesis",
    "extract_tool_calls",
]
