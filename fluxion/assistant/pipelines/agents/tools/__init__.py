from .retriever import create_retriever_tool
from .web_search import create_web_search_tool

__all__ = [
    "create_retriever_tool",
    "create_web_search_tool",
]
