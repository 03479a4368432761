"""
Request Executor
================
Executes a candidate collection request over HTTP and returns a structured
result for the policy.

BOUNDARY RULES:
    - Executor ONLY observes execution.
    - Executor NEVER edits the request.
    - Executor NEVER talks to the collection backend or the fix cache.
    - Classification of failures is delegated to the ErrorClassifier.

Request structure (collection item):
    {"name": ..., "request": {"method": ..., "url": ..., "header": [...], "body": {...}}}

    url may be a plain string, an object with "raw", or an object with
    protocol / host / path / query parts.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from healer.core.config import HTTP_TIMEOUT_SECONDS
from healer.core.errors import ValidationError
from healer.parser.classification import is_format_error

logger = logging.getLogger(__name__)

_EXPECTED_SHAPE = (
    'Expected structure: {request: {url: ..., method: ..., header: [...], body: {...}}}'
)
_ERROR_TEXT_LIMIT = 500


# ---------------------------------------------------------------------------
# Execution Result (returned to the policy via execute_request)
# ---------------------------------------------------------------------------
@dataclass
class ExecutionResult:
    """
    Structured outcome of a single request execution.

    Fields
    ------
    success : bool
        True for 2xx responses only.
    status_code : int
        HTTP status (0 when no response was received).
    status_text : str
        Reason phrase, or "Unknown Error" without a response.
    data : Any
        Decoded JSON body when possible, raw text otherwise.
    headers : dict
        Response headers.
    error : str | None
        Failure description for non-2xx responses and transport errors.
    is_format_error : bool
        ErrorClassifier verdict for failures; always False on success.
    """
    success: bool = False
    status_code: int = 0
    status_text: str = ""
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    is_format_error: bool = False

    def to_payload(self) -> dict:
        payload = {
            "success": self.success,
            "statusCode": self.status_code,
            "statusText": self.status_text,
            "data": self.data,
            "headers": self.headers,
            "isFormatError": self.is_format_error,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


# ---------------------------------------------------------------------------
# Request conversion helpers
# ---------------------------------------------------------------------------
def _invalid(detail: str) -> ValidationError:
    return ValidationError(f"Invalid request format: {detail}. {_EXPECTED_SHAPE}")


def _pair_list(items: Any, field_name: str) -> list:
    if items is None:
        return []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise _invalid(f'"{field_name}" must be an array of {{key, value}} objects')
    return items


def build_url(url: Any) -> str:
    """Build a full URL from a string, a {"raw": ...} object, or URL parts."""
    if isinstance(url, str):
        return url
    if not isinstance(url, dict):
        raise _invalid("unsupported url value")
    if url.get("raw"):
        if not isinstance(url["raw"], str):
            raise _invalid('"url.raw" must be a string')
        return url["raw"]

    protocol = url.get("protocol") or "https"
    host = url.get("host") or ""
    if isinstance(host, list):
        host = ".".join(str(part) for part in host)
    path = url.get("path") or ""
    if isinstance(path, list):
        path = "/".join(str(part) for part in path)
    full_url = f"{protocol}://{host}/{path}"

    enabled = [q for q in _pair_list(url.get("query"), "url.query") if not q.get("disabled")]
    if enabled:
        full_url += "?" + "&".join(f"{q.get('key')}={q.get('value', '')}" for q in enabled)
    return full_url


def _pairs_to_dict(items: Any, field_name: str) -> Dict[str, Any]:
    return {
        item.get("key"): item.get("value")
        for item in _pair_list(items, field_name)
        if item.get("key") is not None and not item.get("disabled")
    }


def to_httpx_kwargs(collection_request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a collection request item into keyword arguments for httpx.

    Raises
    ------
    ValidationError
        If the "request" wrapper or its "url" is missing, or any part of
        the request has the wrong shape.
    """
    if not isinstance(collection_request, dict) or not collection_request.get("request"):
        raise _invalid('missing "request" property')

    request = collection_request["request"]
    if not isinstance(request, dict):
        raise _invalid('"request" must be an object')
    if not request.get("url"):
        raise _invalid('missing "url" property in request')

    method = request.get("method") or "GET"
    if not isinstance(method, str):
        raise _invalid('"method" must be a string')

    kwargs: Dict[str, Any] = {
        "method": method.upper(),
        "url": build_url(request["url"]),
        "headers": _pairs_to_dict(request.get("header"), "header"),
    }

    body = request.get("body") or {}
    if not isinstance(body, dict):
        raise _invalid('"body" must be an object')
    mode = body.get("mode")
    if mode == "raw" and body.get("raw") is not None:
        raw = body["raw"]
        if not isinstance(raw, str):
            raise _invalid('"body.raw" must be a string')
        try:
            kwargs["json"] = json.loads(raw)
        except ValueError:
            kwargs["content"] = raw
    elif mode == "urlencoded":
        kwargs["data"] = _pairs_to_dict(body.get("urlencoded"), "body.urlencoded")
    elif mode == "formdata":
        kwargs["files"] = {
            key: (None, "" if value is None else str(value))
            for key, value in _pairs_to_dict(body.get("formdata"), "body.formdata").items()
        }
    return kwargs


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_text(data: Any) -> str:
    text = data if isinstance(data, str) else json.dumps(data, default=str)
    return text[:_ERROR_TEXT_LIMIT]


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------
class RequestExecutor:
    """
    Async HTTP executor for candidate requests.

    Usage:
        executor = RequestExecutor()
        result = await executor.execute(collection_item)
        await executor.close()
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = HTTP_TIMEOUT_SECONDS) -> None:
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

    async def execute(self, collection_request: Dict[str, Any]) -> ExecutionResult:
        """
        Execute the request. Never raises for HTTP or transport failures;
        raises ValidationError only for a structurally invalid request.
        """
        kwargs = to_httpx_kwargs(collection_request)
        logger.info("Executing %s %s", kwargs["method"], kwargs["url"])

        http = await self._get_http()
        try:
            response = await http.request(**kwargs)
        except httpx.HTTPError as e:
            message = str(e) or e.__class__.__name__
            logger.warning("Request transport failure: %s", message)
            return ExecutionResult(
                success=False,
                status_code=0,
                status_text="Unknown Error",
                error=message,
                is_format_error=is_format_error(0, message),
            )

        data = _decode_body(response)
        headers = dict(response.headers)
        status_text = response.reason_phrase or ""

        if response.is_success:
            logger.info("Request succeeded: %d %s", response.status_code, status_text)
            return ExecutionResult(
                success=True,
                status_code=response.status_code,
                status_text=status_text,
                data=data,
                headers=headers,
            )

        error = f"Request failed with status code {response.status_code}: {_error_text(data)}"
        logger.info("Request failed: %d %s", response.status_code, status_text)
        return ExecutionResult(
            success=False,
            status_code=response.status_code,
            status_text=status_text or "Unknown Error",
            data=data,
            headers=headers,
            error=error,
            is_format_error=is_format_error(response.status_code, error),
        )
