"""
Request Executor Tests
======================
Conversion of collection request items into HTTP calls and the structured
result returned to the policy. Network replaced by httpx.MockTransport.
"""
import asyncio
import json

import httpx
import pytest

from healer.core.errors import ValidationError
from healer.executor.request_executor import RequestExecutor, build_url, to_httpx_kwargs


def _executor(handler):
    return RequestExecutor(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _item(**request):
    return {"name": "Test", "request": request}


# ===========================================================================
# 1. URL building
# ===========================================================================
class TestBuildUrl:

    def test_string(self):
        assert build_url("https://api.example.com/users") == "https://api.example.com/users"

    def test_raw(self):
        assert build_url({"raw": "https://api.example.com/a?b=1"}) == "https://api.example.com/a?b=1"

    def test_parts_with_query(self):
        url = {
            "protocol": "http",
            "host": ["api", "example", "com"],
            "path": ["v1", "users"],
            "query": [
                {"key": "page", "value": "2"},
                {"key": "debug", "value": "1", "disabled": True},
            ],
        }
        assert build_url(url) == "http://api.example.com/v1/users?page=2"

    def test_parts_default_protocol(self):
        assert build_url({"host": "example.com", "path": "ping"}) == "https://example.com/ping"

    def test_unsupported(self):
        with pytest.raises(ValidationError):
            build_url(42)


# ===========================================================================
# 2. Request conversion
# ===========================================================================
class TestConversion:

    def test_missing_request(self):
        with pytest.raises(ValidationError, match="missing \"request\""):
            to_httpx_kwargs({"name": "x"})

    def test_missing_url(self):
        with pytest.raises(ValidationError, match="url"):
            to_httpx_kwargs(_item(method="GET"))

    def test_headers_skip_disabled(self):
        kwargs = to_httpx_kwargs(_item(
            method="get",
            url="https://x.test",
            header=[
                {"key": "Accept", "value": "application/json"},
                {"key": "X-Old", "value": "1", "disabled": True},
            ],
        ))
        assert kwargs["method"] == "GET"
        assert kwargs["headers"] == {"Accept": "application/json"}

    def test_raw_json_body(self):
        kwargs = to_httpx_kwargs(_item(url="https://x.test", method="POST",
                                       body={"mode": "raw", "raw": '{"a": 1}'}))
        assert kwargs["json"] == {"a": 1}

    def test_raw_text_body(self):
        kwargs = to_httpx_kwargs(_item(url="https://x.test", method="POST",
                                       body={"mode": "raw", "raw": "plain text"}))
        assert kwargs["content"] == "plain text"
        assert "json" not in kwargs

    def test_urlencoded_body(self):
        kwargs = to_httpx_kwargs(_item(url="https://x.test", method="POST", body={
            "mode": "urlencoded",
            "urlencoded": [{"key": "a", "value": "1"}, {"key": "b", "value": "2", "disabled": True}],
        }))
        assert kwargs["data"] == {"a": "1"}

    def test_formdata_body(self):
        kwargs = to_httpx_kwargs(_item(url="https://x.test", method="POST", body={
            "mode": "formdata",
            "formdata": [{"key": "file_name", "value": "a.txt"}],
        }))
        assert kwargs["files"] == {"file_name": (None, "a.txt")}

    @pytest.mark.parametrize("item, fragment", [
        ({"request": "GET https://x.test"}, '"request" must be an object'),
        (_item(url="https://x.test", header=["Accept: */*"]), '"header" must be an array'),
        (_item(url="https://x.test", header={"Accept": "*/*"}), '"header" must be an array'),
        (_item(url={"host": "x.test", "query": ["page=2"]}), '"url.query" must be an array'),
        (_item(url={"raw": ["https://x.test"]}), '"url.raw" must be a string'),
        (_item(url="https://x.test", method=1), '"method" must be a string'),
        (_item(url="https://x.test", body="name=A"), '"body" must be an object'),
        (_item(url="https://x.test", body={"mode": "raw", "raw": {"a": 1}}), '"body.raw" must be a string'),
        (_item(url="https://x.test", body={"mode": "urlencoded", "urlencoded": "a=1"}),
         '"body.urlencoded" must be an array'),
    ])
    def test_malformed_shapes_are_validation_errors(self, item, fragment):
        with pytest.raises(ValidationError, match=fragment):
            to_httpx_kwargs(item)


# ===========================================================================
# 3. Execution
# ===========================================================================
class TestExecute:

    def test_success(self):
        def handler(request):
            assert request.method == "POST"
            assert json.loads(request.content) == {"name": "A"}
            return httpx.Response(201, json={"id": 7})

        async def run_test():
            ex = _executor(handler)
            result = await ex.execute(_item(method="POST", url="https://api.test/users",
                                            body={"mode": "raw", "raw": '{"name": "A"}'}))
            await ex.close()
            return result

        result = asyncio.run(run_test())
        assert result.success is True
        assert result.status_code == 201
        assert result.data == {"id": 7}
        assert result.error is None
        payload = result.to_payload()
        assert payload["statusCode"] == 201
        assert payload["isFormatError"] is False
        assert "error" not in payload

    def test_format_failure(self):
        def handler(request):
            return httpx.Response(400, json={"error": "email is required"})

        result = asyncio.run(_executor(handler).execute(_item(method="POST", url="https://api.test/users")))
        assert result.success is False
        assert result.status_code == 400
        assert result.is_format_error is True
        assert result.error.startswith("Request failed with status code 400")
        assert "email is required" in result.error
        assert result.to_payload()["error"] == result.error

    def test_auth_failure_not_format_error(self):
        def handler(request):
            return httpx.Response(401, text="invalid token format")

        result = asyncio.run(_executor(handler).execute(_item(method="GET", url="https://api.test/me")))
        assert result.success is False
        assert result.is_format_error is False
        assert result.data == "invalid token format"

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = asyncio.run(_executor(handler).execute(_item(method="GET", url="https://down.test")))
        assert result.success is False
        assert result.status_code == 0
        assert result.status_text == "Unknown Error"
        assert "connection refused" in result.error

    def test_invalid_structure_raises(self):
        with pytest.raises(ValidationError):
            asyncio.run(_executor(lambda r: httpx.Response(200)).execute({"url": "https://x.test"}))
