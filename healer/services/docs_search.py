"""
Docs Search Service
===================
Full-text documentation search through the Parallel search API.

Returns ranked excerpts as formatted text the policy can read directly:

    [1] Title
    excerpt...
    Source: https://...

    ---

    [2] ...
"""
import logging
import re
from typing import List, Optional

import httpx

from healer.core.config import PARALLEL_API_KEY, PARALLEL_BASE_URL, HTTP_TIMEOUT_SECONDS
from healer.core.errors import UpstreamError

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No documentation found for this query."

_MAX_RESULTS = 5
_MAX_CHARS_PER_RESULT = 5000
_MAX_KEYWORDS = 5
_STOP_WORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "what", "how", "why", "when",
    "where", "which", "for", "to", "of", "in", "on", "at", "with", "from",
})


def extract_keywords(query: str) -> List[str]:
    """Unique technical terms of the query, in order, at most five."""
    words = re.sub(r"[^\w\s]", " ", (query or "").lower()).split()
    keywords: List[str] = []
    for word in words:
        if len(word) > 2 and word not in _STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords[:_MAX_KEYWORDS]


def format_results(results: List[dict]) -> str:
    if not results:
        return NO_RESULTS_MESSAGE
    blocks = []
    for index, result in enumerate(results, start=1):
        title = f"{result['title']}\n" if result.get("title") else ""
        excerpts = "\n\n".join(result.get("excerpts") or [])
        blocks.append(f"[{index}] {title}{excerpts}\nSource: {result.get('url', '')}")
    return "\n\n---\n\n".join(blocks)


class DocsSearchService:
    """Async client for documentation search."""

    def __init__(
        self,
        api_key: str = PARALLEL_API_KEY or "",
        base_url: str = PARALLEL_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "parallel-beta": "search-extract-2025-10-10",
        }
        self._http = client
        self._timeout = timeout

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def search(self, query: str, api_endpoint: Optional[str] = None) -> str:
        """
        Search documentation for the query.

        Raises
        ------
        UpstreamError
            On network failure or a non-2xx response.
        """
        objective = f"Search for API documentation and technical information about: {query}"
        if api_endpoint:
            objective += f" Prefer results from {api_endpoint} and official documentation."

        payload = {
            "objective": objective,
            "search_queries": extract_keywords(query),
            "max_results": _MAX_RESULTS,
            "excerpts": {"max_chars_per_result": _MAX_CHARS_PER_RESULT},
        }

        http = await self._get_http()
        try:
            resp = await http.post(f"{self.base_url}/search", json=payload, headers=self._headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"Documentation search failed: {e.response.status_code} {e.response.text[:300]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"Documentation search failed: {e}") from e

        results = data.get("results") or []
        logger.info("Documentation search returned %d result(s)", len(results))
        return format_results(results)
