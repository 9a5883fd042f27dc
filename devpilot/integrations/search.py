"""Deployment documentation lookup with a static fallback list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config import SearchConfig
from ..errors import ExternalServiceDegradedError
from ..logging import get_logger
from .http import Transport, bearer, post_json

logger = get_logger("integrations.search")

SNIPPET_LENGTH = 200


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    snippet: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "url": self.url, "content": self.snippet}


_BASE_DOCS = (
    SearchResult(
        "Docker Deployment Guide",
        "https://docs.docker.com/get-started/",
        "Comprehensive guide to deploying applications with Docker",
    ),
    SearchResult(
        "GitHub Actions Documentation",
        "https://docs.github.com/en/actions",
        "Complete documentation for GitHub Actions CI/CD",
    ),
)

_STACK_DOCS = (
    (
        "node",
        SearchResult(
            "Deploy Node.js Apps",
            "https://render.com/docs/deploy-node-express-app",
            "Guide to deploying Node.js applications on various platforms",
        ),
    ),
    (
        "react",
        SearchResult(
            "Deploy React Apps",
            "https://create-react-app.dev/docs/deployment/",
            "Official React deployment documentation",
        ),
    ),
    (
        "python",
        SearchResult(
            "Containerize a Python Application",
            "https://docs.docker.com/guides/python/",
            "Docker guide to building and deploying Python applications",
        ),
    ),
)


def fallback_docs(stack: str) -> List[SearchResult]:
    """Static documentation links for ``stack`` (matched by keyword)."""
    lowered = stack.lower()
    docs = list(_BASE_DOCS)
    docs.extend(result for keyword, result in _STACK_DOCS if keyword in lowered)
    return docs


class DocSearchClient:
    """Client for a Tavily-compatible ``/search`` endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.tavily.com",
        max_results: int = 5,
        timeout: float = 15.0,
        transport: Transport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.max_results = max_results
        self.timeout = timeout
        self._transport = transport or post_json

    @classmethod
    def from_config(cls, config: SearchConfig, *, transport: Transport | None = None) -> Optional["DocSearchClient"]:
        if not config.api_key:
            return None
        return cls(
            config.api_key,
            base_url=config.base_url,
            max_results=config.max_results,
            timeout=config.request_timeout,
            transport=transport,
        )

    def search(self, query: str) -> List[SearchResult]:
        """Run ``query``; raises ExternalServiceDegradedError on transport failures."""
        payload = {
            "query": query,
            "search_depth": "basic",
            "include_answer": True,
            "include_raw_content": False,
            "max_results": self.max_results,
        }
        data = self._transport(f"{self.base_url}/search", payload, bearer(self.api_key), self.timeout)
        return _parse_results(data)


def _parse_results(data: Any) -> List[SearchResult]:
    if not isinstance(data, dict):
        return []
    results: List[SearchResult] = []
    for item in data.get("results") or []:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        content = str(item.get("content") or "")
        snippet = content[:SNIPPET_LENGTH] + "..." if len(content) > SNIPPET_LENGTH else content
        results.append(SearchResult(str(item.get("title") or item["url"]), str(item["url"]), snippet))
    return results


def search_deployment_docs(client: Optional[DocSearchClient], stack: str) -> List[SearchResult]:
    """Look up deployment docs for ``stack``; never raises.

    Falls back to the static list when no client is configured, the request
    fails, or the search comes back empty.
    """
    if client is None:
        return fallback_docs(stack)
    query = f"How to deploy a {stack} application to cloud platforms"
    try:
        results = client.search(query)
    except ExternalServiceDegradedError as exc:
        logger.warning("Documentation search failed, using fallback docs: %s", exc)
        return fallback_docs(stack)
    if not results:
        logger.info("Documentation search returned nothing for %s, using fallback docs", stack)
        return fallback_docs(stack)
    return results
