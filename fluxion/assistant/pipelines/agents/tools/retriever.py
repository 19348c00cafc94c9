"""Document retrieval tool over the vector store."""

from __future__ import annotations

from typing import Callable, Sequence

from langchain.tools import tool
from langchain_core.documents import Document

from fluxion.utils.logging import get_logger

logger = get_logger(__name__)

TOOL_FAILURE_MESSAGE = (
    "I encountered an issue with one of my tools. Let me try to answer based on what I know."
)
NO_DOCUMENTS_MESSAGE = "No relevant information was found in the uploaded documents."


def format_documents(docs: Sequence[Document]) -> str:
    return "\n\n".join(doc.page_content for doc in docs if doc.page_content)


def create_retriever_tool(
    retriever,
    *,
    name: str,
    description: str,
) -> Callable[[str], str]:
    """
    Wrap a LangChain retriever as an agent tool.

    Returns the retrieved chunks joined by blank lines. A failing retriever
    (vector store or embedding endpoint down) yields an explanatory string
    instead of an exception so the agent can keep answering.
    """

    @tool(name, description=description)
    def _retriever_tool(query: str) -> str:
        """Retrieve document chunks relevant to the query."""
        try:
            docs = retriever.invoke(query)
        except Exception as e:
            logger.error(f"Retriever tool '{name}' failed for query '{query}': {e}")
            return TOOL_FAILURE_MESSAGE

        logger.debug("Retriever tool '%s' returned %d document(s)", name, len(docs))
        if not docs:
            return NO_DOCUMENTS_MESSAGE
        return format_documents(docs)

    return _retriever_tool
