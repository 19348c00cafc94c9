from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from fluxion.assistant.pipelines.agents.base_react import BaseReActAgent
from fluxion.assistant.pipelines.agents.tools import create_retriever_tool, create_web_search_tool
from fluxion.assistant.pipelines.agents.tools.web_search import DEFAULT_WEB_SEARCH_DESCRIPTION
from fluxion.assistant.prompts import CHANGE_MANAGEMENT_AGENT_PROMPT, KNOWLEDGE_AGENT_PROMPT
from fluxion.utils.env import read_secret
from fluxion.utils.logging import get_logger

logger = get_logger(__name__)

UPLOADED_DOCUMENTS_TOOL_K = 5


class _RetrievalAgentMixin:
    """Shared retriever plumbing for agents that search the document store."""

    vector_manager: Any
    _retriever: Optional[Any]

    def _get_retriever(self, k: Optional[int] = None):
        if self._retriever is None:
            if self.vector_manager is None:
                raise ValueError(f"{self.__class__.__name__} needs a vector_manager or a retriever")
            self._retriever = self.vector_manager.as_retriever(k=k)
        return self._retriever


class ChangeManagementAgent(_RetrievalAgentMixin, BaseReActAgent):
    """Project chat agent: uploaded documents first, web search as fallback."""

    SYSTEM_PROMPT = CHANGE_MANAGEMENT_AGENT_PROMPT
    DEFAULT_TOOLS = ("search_uploaded_documents", "search_web")

    def __init__(
        self,
        config: Dict[str, Any],
        *args,
        vector_manager: Optional[Any] = None,
        retriever: Optional[Any] = None,
        **kwargs,
    ) -> None:
        super().__init__(config, *args, **kwargs)
        self.vector_manager = vector_manager
        self._retriever = retriever

        self.rebuild_static_tools()
        self.refresh_agent()

    @property
    def _web_search_config(self) -> Dict[str, Any]:
        return self.config.get("services", {}).get("web_search", {}) or {}

    def get_tool_registry(self) -> Dict[str, Callable[[], Any]]:
        return {name: entry["builder"] for name, entry in self._tool_definitions().items()}

    def _tool_definitions(self) -> Dict[str, Dict[str, Any]]:
        return {
            "search_uploaded_documents": {
                "builder": self._build_documents_tool,
                "description": (
                    "Searches through the user's uploaded documents for relevant information. Always try this first."
                ),
            },
            "search_web": {
                "builder": self._build_web_search_tool,
                "description": DEFAULT_WEB_SEARCH_DESCRIPTION,
            },
        }

    def _build_documents_tool(self) -> Callable:
        description = self._tool_definitions()["search_uploaded_documents"]["description"]
        return create_retriever_tool(
            self._get_retriever(k=UPLOADED_DOCUMENTS_TOOL_K),
            name="search_uploaded_documents",
            description=description,
        )

    def _build_web_search_tool(self) -> Callable:
        cfg = self._web_search_config
        api_key = read_secret("SERPAPI_API_KEY")
        if not api_key:
            logger.info("SERPAPI_API_KEY not found; search_web will report itself unavailable")
        return create_web_search_tool(
            api_key=api_key,
            description=self._tool_definitions()["search_web"]["description"],
            location=cfg.get("location", "United States"),
            hl=cfg.get("hl", "en"),
            gl=cfg.get("gl", "us"),
            max_results=cfg.get("max_results", 5),
            timeout=cfg.get("timeout", 15),
        )


class KnowledgeAgent(_RetrievalAgentMixin, BaseReActAgent):
    """Stateless retrieval agent behind the global chat route."""

    SYSTEM_PROMPT = KNOWLEDGE_AGENT_PROMPT
    DEFAULT_TOOLS = ("search_latest_knowledge",)

    def __init__(
        self,
        config: Dict[str, Any],
        *args,
        vector_manager: Optional[Any] = None,
        retriever: Optional[Any] = None,
        **kwargs,
    ) -> None:
        super().__init__(config, *args, **kwargs)
        self.vector_manager = vector_manager
        self._retriever = retriever

        self.rebuild_static_tools()
        self.refresh_agent()

    def get_tool_registry(self) -> Dict[str, Callable[[], Any]]:
        return {"search_latest_knowledge": self._build_knowledge_tool}

    def _build_knowledge_tool(self) -> Callable:
        return create_retriever_tool(
            self._get_retriever(),
            name="search_latest_knowledge",
            description="Searches and returns up-to-date general information.",
        )
