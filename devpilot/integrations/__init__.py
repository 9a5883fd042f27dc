"""Clients for external documentation search and memory services."""

from .memory import MemoryStore
from .search import DocSearchClient, SearchResult, fallback_docs, search_deployment_docs

__all__ = [
    "DocSearchClient",
    "MemoryStore",
    "SearchResult",
    "fallback_docs",
    "search_deployment_docs",
]
