"""
Unit tests for agent tools.

Tests cover:
- search_web (SerpAPI) formatting and failure modes
- retriever tools
- tool error middleware
"""
import pytest
from unittest.mock import MagicMock, patch

import requests
from langchain_core.documents import Document
from langchain_core.messages import ToolMessage

from fluxion.assistant.pipelines.agents.middleware import (
    GENERIC_TOOL_FAILURE_MESSAGE,
    WEB_TOOL_FAILURE_MESSAGE,
    friendly_tool_error_message,
    handle_tool_errors,
)
from fluxion.assistant.pipelines.agents.tools import create_retriever_tool, create_web_search_tool
from fluxion.assistant.pipelines.agents.tools.retriever import NO_DOCUMENTS_MESSAGE, TOOL_FAILURE_MESSAGE
from fluxion.assistant.pipelines.agents.tools.web_search import SERPAPI_SEARCH_URL, format_search_results


SERP_PAYLOAD = {
    "organic_results": [
        {"title": "Prosci ADKAR Model", "snippet": "Awareness, Desire, Knowledge...", "source": "prosci.com"},
        {"title": "Kotter's 8 Steps", "snippet": "Create urgency first."},
    ],
    "related_questions": [
        {"question": "What are the 5 stages of ADKAR?", "snippet": "Awareness through Reinforcement."},
        {"question": "Why do changes fail?", "list": ["Poor sponsorship ", "No urgency"]},
    ],
    "answer_box": {"expanded_list": [{"title": "Hybrid work"}, {"title": "AI adoption"}]},
}


def _response(payload=None, status_error=None):
    response = MagicMock()
    response.json.return_value = payload
    if status_error:
        response.raise_for_status.side_effect = status_error
    return response


# =============================================================================
# Web search
# =============================================================================

class TestFormatSearchResults:

    def test_all_sections(self):
        text = format_search_results("change models", SERP_PAYLOAD)

        assert text.startswith('Based on web search results about "change models":')
        assert "## Top Search Results" in text
        assert "1. Prosci ADKAR Model" in text
        assert "   Source: prosci.com" in text
        assert "## Frequently Asked Questions" in text
        assert "A: Awareness through Reinforcement." in text
        assert "- Poor sponsorship" in text
        assert "## Key Trends" in text
        assert "- AI adoption" in text

    def test_respects_max_results(self):
        text = format_search_results("q", {"organic_results": SERP_PAYLOAD["organic_results"]}, max_results=1)
        assert "Kotter" not in text

    def test_sparse_payload_returns_none(self):
        assert format_search_results("q", {}) is None
        assert format_search_results("q", {"organic_results": [{"snippet": "no title"}]}) is None


class TestWebSearchTool:

    def test_missing_api_key(self):
        search = create_web_search_tool(api_key="")
        with patch("fluxion.assistant.pipelines.agents.tools.web_search.requests.get") as mock_get:
            result = search.invoke({"query": "ADKAR"})

        assert result.startswith('Web search is currently unavailable for "ADKAR"')
        mock_get.assert_not_called()

    @patch("fluxion.assistant.pipelines.agents.tools.web_search.requests.get")
    def test_formats_results(self, mock_get):
        mock_get.return_value = _response(SERP_PAYLOAD)
        search = create_web_search_tool(api_key="key", location="Canada", hl="fr", gl="ca", timeout=5)

        result = search.invoke({"query": "ADKAR"})

        assert "## Top Search Results" in result
        args, kwargs = mock_get.call_args
        assert args[0] == SERPAPI_SEARCH_URL
        assert kwargs["params"] == {
            "engine": "google",
            "q": "ADKAR",
            "location": "Canada",
            "hl": "fr",
            "gl": "ca",
            "api_key": "key",
        }
        assert kwargs["timeout"] == 5

    @patch("fluxion.assistant.pipelines.agents.tools.web_search.requests.get")
    def test_limited_results(self, mock_get):
        mock_get.return_value = _response({"organic_results": []})
        result = create_web_search_tool(api_key="key").invoke({"query": "obscure"})
        assert result.startswith('I found limited information about "obscure"')

    @pytest.mark.parametrize("error", [
        requests.exceptions.Timeout("slow"),
        requests.exceptions.ConnectionError("refused"),
    ])
    @patch("fluxion.assistant.pipelines.agents.tools.web_search.requests.get")
    def test_request_failures(self, mock_get, error):
        mock_get.side_effect = error
        result = create_web_search_tool(api_key="key").invoke({"query": "ADKAR"})
        assert result.startswith("Web search is currently unavailable")

    @patch("fluxion.assistant.pipelines.agents.tools.web_search.requests.get")
    def test_http_error(self, mock_get):
        mock_get.return_value = _response(status_error=requests.exceptions.HTTPError("401"))
        result = create_web_search_tool(api_key="bad").invoke({"query": "ADKAR"})
        assert result.startswith("Web search is currently unavailable")

    @patch("fluxion.assistant.pipelines.agents.tools.web_search.requests.get")
    def test_non_json_body(self, mock_get):
        response = _response()
        response.json.side_effect = ValueError("not json")
        mock_get.return_value = response
        result = create_web_search_tool(api_key="key").invoke({"query": "ADKAR"})
        assert result.startswith("Web search is currently unavailable")

    @patch("fluxion.assistant.pipelines.agents.tools.web_search.requests.get")
    def test_error_payload(self, mock_get):
        mock_get.return_value = _response({"error": "Invalid API key."})
        result = create_web_search_tool(api_key="key").invoke({"query": "ADKAR"})
        assert result.startswith("Web search is currently unavailable")

    def test_tool_name_and_description(self):
        search = create_web_search_tool(api_key="key")
        assert search.name == "search_web"
        assert "uploaded documents" in search.description


# =============================================================================
# Retriever
# =============================================================================

class TestRetrieverTool:

    def test_joins_page_content(self):
        retriever = MagicMock()
        retriever.invoke.return_value = [
            Document(page_content="Sponsor early."),
            Document(page_content="Communicate often."),
        ]
        search = create_retriever_tool(retriever, name="search_uploaded_documents", description="docs")

        result = search.invoke({"query": "sponsorship"})

        assert result == "Sponsor early.\n\nCommunicate often."
        retriever.invoke.assert_called_once_with("sponsorship")

    def test_no_documents(self):
        retriever = MagicMock()
        retriever.invoke.return_value = []
        search = create_retriever_tool(retriever, name="search_latest_knowledge", description="kb")
        assert search.invoke({"query": "x"}) == NO_DOCUMENTS_MESSAGE

    def test_failure_returns_friendly_text(self):
        retriever = MagicMock()
        retriever.invoke.side_effect = RuntimeError("embedding endpoint 503")
        search = create_retriever_tool(retriever, name="search_uploaded_documents", description="docs")
        assert search.invoke({"query": "x"}) == TOOL_FAILURE_MESSAGE


# =============================================================================
# Middleware
# =============================================================================

class TestToolErrorMiddleware:

    def test_web_tool_message(self):
        assert friendly_tool_error_message("search_web", RuntimeError("boom")) == WEB_TOOL_FAILURE_MESSAGE

    def test_web_error_text(self):
        assert friendly_tool_error_message("other", RuntimeError("SerpAPI quota")) == WEB_TOOL_FAILURE_MESSAGE

    def test_generic_message(self):
        assert (
            friendly_tool_error_message("search_uploaded_documents", RuntimeError("timeout"))
            == GENERIC_TOOL_FAILURE_MESSAGE
        )

    def test_wrapped_error_becomes_tool_message(self):
        request = MagicMock()
        request.tool_call = {"name": "search_web", "id": "call-9", "args": {"query": "x"}}
        handler = MagicMock(side_effect=RuntimeError("network"))

        result = handle_tool_errors.wrap_tool_call(request, handler)

        assert isinstance(result, ToolMessage)
        assert result.tool_call_id == "call-9"
        assert result.content == WEB_TOOL_FAILURE_MESSAGE

    def test_success_passes_through(self):
        request = MagicMock()
        request.tool_call = {"name": "search_web", "id": "call-9", "args": {}}
        expected = ToolMessage(content="ok", tool_call_id="call-9")

        assert handle_tool_errors.wrap_tool_call(request, lambda r: expected) is expected
