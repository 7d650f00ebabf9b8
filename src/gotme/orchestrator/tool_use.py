"""Inline tool-use tags.

Partners may report simulated tool activity inside their text as
``[TOOL_USE: name | action | result]``. Tags are lifted into ``ToolCall``
records and removed from the stored response; nothing is executed.
"""

import re

from gotme.core.session import ToolCall

TOOL_USE_PATTERN = re.compile(
    r"\[TOOL_USE:\s*(?P<name>[^|\]]+?)\s*\|\s*(?P<action>[^|\]]+?)\s*\|\s*(?P<result>[^\]]*?)\s*\]"
)


def extract_tool_calls(text: str) -> tuple[str, tuple[ToolCall, ...]]:
    """Split ``text`` into the cleaned response and its tool-call records.

    Example:
        >>> extract_tool_calls("Result: [TOOL_USE: search | query | 3 hits]")
        ('Result:', (ToolCall(tool_name='search', action='query', result='3 hits'),))
    """
    calls = tuple(
        ToolCall(
            tool_name=match.group("name"),
            action=match.group("action"),
            result=match.group("result"),
        )
        for match in TOOL_USE_PATTERN.finditer(text)
    )
    if not calls:
        return text, ()
    return TOOL_USE_PATTERN.sub("", text).strip(), calls


def tool_instruction(active_tools: tuple[str, ...]) -> str:
    """Prompt note telling partners how to report tool use."""
    if not active_tools:
        return ""
    return (
        f"Enabled tools: {', '.join(active_tools)}. If you use one, report it inline as "
        "[TOOL_USE: <name> | <action> | <result>]."
    )
