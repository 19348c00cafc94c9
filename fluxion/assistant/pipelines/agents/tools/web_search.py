"""Web search tool backed by the SerpAPI Google search endpoint."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import requests
from langchain.tools import tool

from fluxion.utils.logging import get_logger

logger = get_logger(__name__)

SERPAPI_SEARCH_URL = "https://serpapi.com/search.json"

DEFAULT_WEB_SEARCH_DESCRIPTION = (
    "Search the web for information not found in the uploaded documents. "
    "Use this only when the document search doesn't provide sufficient information. "
    "If search fails, focus on information from uploaded documents."
)


def limited_results_message(query: str) -> str:
    return (
        f'I found limited information about "{query}" from web search. '
        "I'll rely primarily on information from your uploaded documents."
    )


def unavailable_message(query: str) -> str:
    return (
        f'Web search is currently unavailable for "{query}". '
        "I'll rely on information from your uploaded documents."
    )


def format_search_results(query: str, payload: Dict[str, Any], max_results: int = 5) -> Optional[str]:
    """
    Turn a SerpAPI JSON payload into a compact text digest.

    Returns None when the payload holds too little to be worth showing
    (nothing beyond the header and empty sections).
    """
    lines: List[str] = [f'Based on web search results about "{query}":\n']

    organic = payload.get("organic_results") or []
    if organic:
        lines.append("## Top Search Results")
        for index, item in enumerate(organic[:max_results]):
            if not item.get("title"):
                continue
            lines.append(f"{index + 1}. {item['title']}")
            if item.get("snippet"):
                lines.append(f"   {item['snippet']}")
            if item.get("source"):
                lines.append(f"   Source: {item['source']}")
            lines.append("")

    related = payload.get("related_questions") or []
    if related:
        lines.append("## Frequently Asked Questions")
        for item in related:
            if not item.get("question"):
                continue
            lines.append(f"Q: {item['question']}")
            if item.get("snippet"):
                lines.append(f"A: {item['snippet']}")
            elif item.get("list"):
                lines.append("A:")
                for entry in item["list"]:
                    lines.append(f"- {str(entry).strip()}")
            lines.append("")

    answer_box = payload.get("answer_box") or {}
    expanded = answer_box.get("expanded_list") if isinstance(answer_box, dict) else None
    if expanded:
        lines.append("## Key Trends")
        for item in expanded:
            if isinstance(item, dict) and item.get("title"):
                lines.append(f"- {item['title']}")
        lines.append("")

    if len(lines) > 3:
        return "\n".join(lines)
    return None


def create_web_search_tool(
    *,
    api_key: Optional[str],
    name: str = "search_web",
    description: Optional[str] = None,
    location: str = "United States",
    hl: str = "en",
    gl: str = "us",
    max_results: int = 5,
    timeout: float = 15.0,
) -> Callable[[str], str]:
    """
    Create a LangChain tool that searches the web through SerpAPI.

    The tool never raises: failures (missing key, HTTP errors, timeouts,
    malformed bodies) come back as a short explanation telling the agent to
    fall back to the uploaded documents.

    Args:
        api_key: SerpAPI key. When empty, every call reports web search as unavailable.
        name: The name of the tool (used by the LLM when selecting tools).
        description: Tool description shown to the LLM.
        location, hl, gl: SerpAPI localisation parameters.
        max_results: Number of organic results to include.
        timeout: Request timeout in seconds.
    """
    tool_description = description or DEFAULT_WEB_SEARCH_DESCRIPTION

    @tool(name, description=tool_description)
    def _web_search_tool(query: str) -> str:
        """Search the web for the given query."""
        if not api_key:
            logger.warning("Web search requested but SERPAPI_API_KEY is not configured")
            return unavailable_message(query)

        params = {
            "engine": "google",
            "q": query,
            "location": location,
            "hl": hl,
            "gl": gl,
            "api_key": api_key,
        }
        try:
            logger.info(f"Web search tool querying: {query}")
            response = requests.get(SERPAPI_SEARCH_URL, params=params, timeout=timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.Timeout:
            logger.warning(f"Web search timed out after {timeout}s for query: {query}")
            return unavailable_message(query)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Web search request failed for query '{query}': {type(e).__name__}")
            return unavailable_message(query)
        except ValueError:
            logger.warning(f"Web search returned a non-JSON body for query: {query}")
            return unavailable_message(query)

        if not isinstance(payload, dict) or payload.get("error"):
            logger.warning(f"Web search returned an error for query '{query}': {payload.get('error') if isinstance(payload, dict) else payload}")
            return unavailable_message(query)

        formatted = format_search_results(query, payload, max_results=max_results)
        if formatted is None:
            return limited_results_message(query)
        return formatted

    return _web_search_tool
