"""Agent middleware shared by the chat agents."""

from __future__ import annotations

from langchain.agents.middleware import wrap_tool_call
from langchain_core.messages import ToolMessage

from fluxion.utils.logging import get_logger

logger = get_logger(__name__)

WEB_TOOL_FAILURE_MESSAGE = (
    "I couldn't complete the web search. Let me focus on information from your uploaded documents instead."
)
GENERIC_TOOL_FAILURE_MESSAGE = (
    "I encountered an issue with one of my tools. Let me try to answer based on what I know."
)

_WEB_ERROR_MARKERS = ("serpapi", "search", "web")


def friendly_tool_error_message(tool_name: str, error: BaseException) -> str:
    """Pick the message the agent sees in place of a raised tool error."""
    if tool_name == "search_web":
        return WEB_TOOL_FAILURE_MESSAGE
    text = str(error).lower()
    if any(marker in text for marker in _WEB_ERROR_MARKERS):
        return WEB_TOOL_FAILURE_MESSAGE
    return GENERIC_TOOL_FAILURE_MESSAGE


@wrap_tool_call
def handle_tool_errors(request, handler):
    """Turn tool exceptions into a ToolMessage so the run continues."""
    try:
        return handler(request)
    except Exception as e:
        tool_call = request.tool_call
        tool_name = tool_call.get("name", "")
        logger.error(f"Unhandled error in tool '{tool_name}': {e}")
        return ToolMessage(
            content=friendly_tool_error_message(tool_name, e),
            tool_call_id=tool_call["id"],
            name=tool_name,
        )
