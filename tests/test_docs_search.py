"""
Docs Search Tests
"""
import asyncio
import json

import httpx
import pytest

from healer.core.errors import UpstreamError
from healer.services.docs_search import (
    NO_RESULTS_MESSAGE,
    DocsSearchService,
    extract_keywords,
    format_results,
)


def _service(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DocsSearchService(api_key="par-key", base_url="https://parallel.test/v1beta", client=client)


def test_extract_keywords():
    assert extract_keywords("What are the required fields for POST /users?") == [
        "required", "fields", "post", "users",
    ]


def test_extract_keywords_limit_and_dedupe():
    assert extract_keywords("alpha beta alpha gamma delta epsilon zeta") == [
        "alpha", "beta", "gamma", "delta", "epsilon",
    ]


def test_format_results():
    text = format_results([
        {"title": "Users API", "excerpts": ["POST /users needs email"], "url": "https://docs.test/users"},
        {"excerpts": ["second"], "url": "https://docs.test/2"},
    ])
    assert text.startswith("[1] Users API\nPOST /users needs email\nSource: https://docs.test/users")
    assert "\n\n---\n\n[2] second\nSource: https://docs.test/2" in text


def test_format_no_results():
    assert format_results([]) == NO_RESULTS_MESSAGE


def test_search_sends_objective():
    captured = {}

    def handler(request):
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"results": [{"title": "T", "excerpts": ["e"], "url": "u"}]})

    text = asyncio.run(_service(handler).search("user email validation", "https://api.test/users"))
    assert text.startswith("[1] T")
    assert captured["headers"]["Authorization"] == "Bearer par-key"
    assert captured["body"]["search_queries"] == ["user", "email", "validation"]
    assert "https://api.test/users" in captured["body"]["objective"]
    assert captured["body"]["max_results"] == 5


def test_search_empty_results():
    assert asyncio.run(_service(lambda r: httpx.Response(200, json={})).search("x")) == NO_RESULTS_MESSAGE


def test_search_failure():
    with pytest.raises(UpstreamError, match="401"):
        asyncio.run(_service(lambda r: httpx.Response(401, text="bad key")).search("anything"))
