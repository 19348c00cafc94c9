"""
ConversationService - Per-project chat transcripts stored as one JSON array.

A transcript is keyed by (project_id, session_id) and holds an ordered list
of message records ``{type, content, tool_calls?, tool_call_id?}``. Writes
rewrite the whole array, so concurrent writers are last-write-wins.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
from psycopg2.extras import Json
from langchain_core.chat_history import BaseChatMessageHistory
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    ChatMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from fluxion.utils.logging import get_logger
from fluxion.utils.sql import (
    SQL_DELETE_CONVERSATION,
    SQL_GET_CONVERSATION_MESSAGES,
    SQL_UPSERT_CONVERSATION_MESSAGES,
)

logger = get_logger(__name__)

DEFAULT_SESSION_ID = "default"


# =============================================================================
# Record <-> message conversion
# =============================================================================

def _content_to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    try:
        return json.dumps(content)
    except (TypeError, ValueError):
        return str(content)


def normalize_message(message: BaseMessage) -> Dict[str, Any]:
    """Flatten a LangChain message into the stored record shape."""
    content = _content_to_text(message.content)

    if isinstance(message, ChatMessage):
        return {"type": message.role, "content": content}

    if isinstance(message, AIMessage):
        return {
            "type": "ai",
            "content": content,
            "tool_calls": list(message.tool_calls or []),
        }
    if isinstance(message, ToolMessage):
        record = {"type": "tool", "content": content}
        if message.tool_call_id:
            record["tool_call_id"] = message.tool_call_id
        return record
    return {"type": message.type, "content": content}


def decode_message(record: Dict[str, Any]) -> BaseMessage:
    """Rebuild a LangChain message from a stored record."""
    msg_type = record.get("type")
    content = record.get("content")
    if content is None:
        content = ""

    if msg_type == "human":
        return HumanMessage(content=content)
    if msg_type == "ai":
        tool_calls = record.get("tool_calls") or []
        if tool_calls:
            return AIMessage(content=content, tool_calls=tool_calls)
        return AIMessage(content=content)
    if msg_type == "system":
        return SystemMessage(content=content)
    if msg_type == "tool":
        tool_call_id = record.get("tool_call_id")
        if tool_call_id:
            return ToolMessage(content=content, tool_call_id=tool_call_id)
        return ChatMessage(content=content, role="tool")
    return ChatMessage(content=content, role=str(msg_type))


def record_to_client_message(record: Dict[str, Any]) -> Dict[str, Any]:
    """Map a stored record to the ``{role, content}`` shape the chat UI renders."""
    msg_type = record.get("type")
    if msg_type == "human":
        return {"content": record.get("content"), "role": "user"}
    if msg_type == "ai":
        return {
            "content": record.get("content"),
            "role": "assistant",
            "tool_calls": record.get("tool_calls") or [],
        }
    return {"content": record.get("content"), "role": msg_type}


# =============================================================================
# Service
# =============================================================================

class ConversationService:
    """
    Reads and writes transcript rows in ``conversation_history``.

    Errors propagate; callers that must keep serving a request (the chat
    history adapter) catch and log them.
    """

    def __init__(self, connection_pool=None, *, pg_config: Optional[Dict[str, Any]] = None):
        self._pool = connection_pool
        self._pg_config = pg_config

    def _get_connection(self) -> psycopg2.extensions.connection:
        """Get a database connection."""
        if self._pool:
            return self._pool.get_connection()
        elif self._pg_config:
            return psycopg2.connect(**self._pg_config)
        else:
            raise ValueError("No connection pool or pg_config provided")

    def _release_connection(self, conn) -> None:
        """Release connection back to pool or close it."""
        if self._pool:
            self._pool.release_connection(conn)
        else:
            conn.close()

    def get_records(self, project_id: str, session_id: str = DEFAULT_SESSION_ID) -> Optional[List[Dict[str, Any]]]:
        """
        Return the stored records for a session.

        Returns None when no transcript row exists yet.
        """
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(SQL_GET_CONVERSATION_MESSAGES, (project_id, session_id))
                row = cursor.fetchone()
        finally:
            self._release_connection(conn)

        if row is None:
            return None
        messages = row[0] if not isinstance(row, dict) else row.get("messages")
        if isinstance(messages, str):
            messages = json.loads(messages)
        return list(messages or [])

    def save_records(self, project_id: str, session_id: str, records: List[Dict[str, Any]]) -> None:
        """Insert or replace the whole transcript for a session."""
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(
                    SQL_UPSERT_CONVERSATION_MESSAGES,
                    (project_id, session_id, Json(records)),
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release_connection(conn)

    def delete_conversation(self, project_id: str, session_id: str = DEFAULT_SESSION_ID) -> bool:
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(SQL_DELETE_CONVERSATION, (project_id, session_id))
                deleted = cursor.rowcount > 0
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release_connection(conn)
        return deleted

    def fetch_client_messages(self, project_id: str, session_id: str = DEFAULT_SESSION_ID) -> List[Dict[str, Any]]:
        """Return the transcript in the chat UI shape ([] when none is stored)."""
        records = self.get_records(project_id, session_id)
        if not records:
            return []
        return [record_to_client_message(record) for record in records]

    def history_for(self, project_id: str, session_id: Optional[str] = None) -> 'PostgresChatMessageHistory':
        return PostgresChatMessageHistory(self, project_id, session_id or DEFAULT_SESSION_ID)


class PostgresChatMessageHistory(BaseChatMessageHistory):
    """
    LangChain chat history over one ``conversation_history`` row.

    The message list is cached after the first successful read. Storage
    failures are logged and never raised, so a chat request keeps streaming
    even when persistence is down; a failed write drops the cache so the next
    read goes back to the database.
    """

    def __init__(self, service: ConversationService, project_id: str, session_id: str = DEFAULT_SESSION_ID):
        self.service = service
        self.project_id = project_id
        self.session_id = session_id or DEFAULT_SESSION_ID
        self._cache: Optional[List[BaseMessage]] = None

    @property
    def messages(self) -> List[BaseMessage]:  # type: ignore[override]
        return self.get_messages()

    def get_messages(self) -> List[BaseMessage]:
        if self._cache is not None:
            return list(self._cache)
        try:
            records = self.service.get_records(self.project_id, self.session_id)
        except Exception as e:
            logger.error(
                "Error fetching message history for project %s session %s: %s",
                self.project_id,
                self.session_id,
                e,
            )
            return []

        if records is None:
            self._cache = []
            return []

        self._cache = [decode_message(record) for record in records]
        return list(self._cache)

    def add_message(self, message: BaseMessage) -> None:
        self.add_messages([message])

    def add_messages(self, messages: Sequence[BaseMessage]) -> None:
        if not messages:
            return
        current = self.get_messages()
        updated = current + list(messages)
        try:
            self.service.save_records(
                self.project_id,
                self.session_id,
                [normalize_message(m) for m in updated],
            )
            self._cache = updated
        except Exception as e:
            logger.error(
                "Error saving message history for project %s session %s: %s",
                self.project_id,
                self.session_id,
                e,
            )
            self._cache = None

    def clear(self) -> bool:
        """Delete the stored transcript. Returns False when the delete failed."""
        try:
            self.service.delete_conversation(self.project_id, self.session_id)
        except Exception as e:
            logger.error(
                "Error clearing message history for project %s session %s: %s",
                self.project_id,
                self.session_id,
                e,
            )
            self._cache = None
            return False
        self._cache = []
        return True
