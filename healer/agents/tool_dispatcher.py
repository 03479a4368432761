"""
Tool Dispatcher
===============
Validates and executes the named tool operations the policy may call.

Contract:
    - Inputs are validated against the catalog schema (required fields,
      types, enums) before execution
    - Every failure becomes a structured payload {"error", "error_type",
      "success": False, ...}; nothing raises across the tool boundary
    - The one exception: an unknown tool name raises ProtocolViolation,
      which the orchestrator treats as session-fatal
    - Fix-cache failures on store are reported as UpstreamError
    - The last dispatched tool name and its parsed result are exposed for
      the orchestrator's success short-circuit

BOUNDARY RULES:
    - Dispatcher NEVER decides termination.
    - Dispatcher NEVER talks to the policy.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import jsonschema
import pydantic

from healer.core.constants import (
    CHECK_MEMORY, FETCH_REQUEST, EXECUTE_REQUEST,
    SEARCH_DOCS, UPDATE_REQUEST, STORE_FIX, LOG_PREVIEW_CHARS,
)
from healer.core.errors import (
    CacheUnavailableError, HealerError, NotFoundError,
    ProtocolViolation, UpstreamError, ValidationError,
)
from healer.executor.request_executor import RequestExecutor
from healer.llm.tool_catalog import TOOLS_BY_NAME
from healer.models.fix_record import FixRecord
from healer.models.turn import ToolCall, ToolResult
from healer.services.collection_service import CollectionService
from healer.services.docs_search import DocsSearchService
from healer.services.fix_cache import FixCache

logger = logging.getLogger(__name__)

_VALIDATORS = {
    name: jsonschema.Draft7Validator(tool["input_schema"])
    for name, tool in TOOLS_BY_NAME.items()
}


def validate_arguments(tool_name: str, arguments: Dict[str, Any]) -> List[str]:
    """Return the schema violations of ``arguments``; empty when valid."""
    if not isinstance(arguments, dict):
        return ["arguments must be an object"]
    # Providers send null for omitted optional fields
    instance = {key: value for key, value in arguments.items() if value is not None}
    errors = sorted(_VALIDATORS[tool_name].iter_errors(instance), key=lambda e: (list(e.path), e.message))
    return [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]


def _parse_json_argument(raw: str, field: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid JSON in '{field}': {e}") from e


def _parse_request_object(raw: str, field: str) -> dict:
    value = _parse_json_argument(raw, field)
    if not isinstance(value, dict):
        raise ValidationError(f"'{field}' must encode a JSON object")
    return value


def _preview(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) > LOG_PREVIEW_CHARS:
        return text[:LOG_PREVIEW_CHARS] + "..."
    return text


class ToolDispatcher:
    """
    Executes tool calls against the collaborators and the fix cache.

    Usage:
        dispatcher = ToolDispatcher(collections, executor, docs, cache)
        result = await dispatcher.dispatch(ToolCall(id="t1", name="fetch_request", arguments={...}))
    """

    def __init__(
        self,
        collection_service: CollectionService,
        executor: RequestExecutor,
        docs_search: DocsSearchService,
        fix_cache: FixCache,
    ) -> None:
        self.collection_service = collection_service
        self.executor = executor
        self.docs_search = docs_search
        self.fix_cache = fix_cache
        self.last_tool_name: Optional[str] = None
        self.last_result: Any = None

        self._handlers = {
            CHECK_MEMORY: self._check_memory,
            FETCH_REQUEST: self._fetch_request,
            EXECUTE_REQUEST: self._execute_request,
            SEARCH_DOCS: self._search_docs,
            UPDATE_REQUEST: self._update_request,
            STORE_FIX: self._store_fix,
        }

    async def dispatch(self, call: ToolCall) -> ToolResult:
        """
        Execute one tool call and return its structured result.

        Raises
        ------
        ProtocolViolation
            If the tool name is not in the catalog.
        """
        handler = self._handlers.get(call.name)
        if handler is None:
            raise ProtocolViolation(f"Unknown tool requested by policy: {call.name!r}")

        logger.info("Tool call: %s input=%s", call.name, _preview(call.arguments))

        problems = validate_arguments(call.name, call.arguments)
        if problems:
            payload: Any = ValidationError(
                f"Invalid input for {call.name}: {'; '.join(problems)}"
            ).to_payload()
        else:
            try:
                payload = await handler(call.arguments)
            except HealerError as e:
                logger.warning("Tool %s failed: %s", call.name, e)
                payload = e.to_payload()
            except Exception as e:
                logger.error("Tool %s crashed: %s", call.name, e, exc_info=True)
                payload = UpstreamError(f"{call.name} failed: {e}").to_payload()

        self.last_tool_name = call.name
        self.last_result = payload

        content = payload if isinstance(payload, str) else json.dumps(payload, default=str)
        is_error = isinstance(payload, dict) and "error_type" in payload
        logger.info("Tool result: %s %s", call.name, _preview(content))
        return ToolResult(
            tool_call_id=call.id,
            tool_name=call.name,
            content=content,
            payload=payload,
            is_error=is_error,
        )

    # -------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------
    async def _check_memory(self, args: Dict[str, Any]) -> dict:
        matches = await asyncio.to_thread(
            self.fix_cache.query,
            args["endpoint"],
            args.get("error_message"),
            args.get("status_code"),
        )
        total = await asyncio.to_thread(self.fix_cache.count)
        if not matches:
            return {"found": False, "message": "No similar fixes found in memory", "total_stored": total}
        return {
            "found": True,
            "message": f"Found {len(matches)} similar fix(es) in memory",
            "fixes": [m.to_payload() for m in matches],
            "total_stored": total,
        }

    async def _fetch_request(self, args: Dict[str, Any]) -> Any:
        collection_id, request_id = args["collection_id"], args["request_id"]
        try:
            return await self.collection_service.get_request(collection_id, request_id)
        except NotFoundError as e:
            return e.to_payload(
                error="Request not found",
                detail=str(e),
                collection_id=collection_id,
                request_id=request_id,
            )

    async def _execute_request(self, args: Dict[str, Any]) -> dict:
        request = _parse_request_object(args["request_json"], "request_json")
        result = await self.executor.execute(request)
        return result.to_payload()

    async def _search_docs(self, args: Dict[str, Any]) -> str:
        return await self.docs_search.search(args["query"], args.get("api_endpoint"))

    async def _update_request(self, args: Dict[str, Any]) -> dict:
        collection_id, request_id = args["collection_id"], args["request_id"]
        updated = _parse_request_object(args["updated_request_json"], "updated_request_json")
        await self.collection_service.update_request(collection_id, request_id, updated)
        return {
            "success": True,
            "message": "Request updated successfully",
            "collection_id": collection_id,
            "request_id": request_id,
        }

    async def _store_fix(self, args: Dict[str, Any]) -> dict:
        corrected = _parse_json_argument(args["corrected_request_json"], "corrected_request_json")
        try:
            record = FixRecord(
                endpoint=args["endpoint"],
                method=args["method"],
                status_code=args["status_code"],
                error_message=args["error_message"],
                fix_kind=args["fix_kind"],
                fix_description=args["fix_description"],
                corrected_request=corrected,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid fix record: {e}") from e

        try:
            fix_id = await asyncio.to_thread(self.fix_cache.store, record)
        except CacheUnavailableError as e:
            raise UpstreamError(str(e)) from e

        total = await asyncio.to_thread(self.fix_cache.count)
        return {
            "success": True,
            "message": "Fix stored in memory for future use",
            "fix_id": fix_id,
            "total_fixes_stored": total,
        }
