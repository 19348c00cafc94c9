"""
Conversion between the browser chat UI's message objects and LangChain messages.

The UI sends and receives ``{"role": ..., "content": ..., "tool_calls": [...]}``
objects; the agents work on LangChain ``BaseMessage`` instances.
"""

from typing import Any, Dict, Iterable, List

from langchain_core.messages import AIMessage, BaseMessage, ChatMessage, HumanMessage

CLIENT_CHAT_ROLES = ("user", "assistant")


def convert_client_message(message: Dict[str, Any]) -> BaseMessage:
    role = message.get("role")
    content = message.get("content")
    if role == "user":
        return HumanMessage(content=content)
    if role == "assistant":
        return AIMessage(content=content)
    return ChatMessage(content=content, role=str(role))


def _has_content(message: Dict[str, Any]) -> bool:
    content = message.get("content")
    if content is None:
        return False
    if isinstance(content, str):
        return bool(content.strip())
    return True


def parse_client_messages(raw: Iterable[Dict[str, Any]]) -> List[BaseMessage]:
    """Keep user/assistant turns that carry content and convert them."""
    parsed: List[BaseMessage] = []
    for message in raw or []:
        if not isinstance(message, dict):
            continue
        if message.get("role") not in CLIENT_CHAT_ROLES:
            continue
        if not _has_content(message):
            continue
        parsed.append(convert_client_message(message))
    return parsed


def convert_langchain_message(message: BaseMessage) -> Dict[str, Any]:
    if message.type == "human":
        return {"content": message.content, "role": "user"}
    if isinstance(message, AIMessage):
        return {
            "content": message_text(message),
            "role": "assistant",
            "tool_calls": list(message.tool_calls or []),
        }
    return {"content": message.content, "role": message.type}


def message_text(message: Any) -> str:
    # content may be a list of content blocks
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    if content is None:
        return ""
    return str(content)
