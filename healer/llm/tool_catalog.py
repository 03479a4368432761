"""
Tool Catalog
============
The closed set of tools exposed to the policy. Each entry carries the JSON
schema the ToolDispatcher validates inputs against before execution.

Schema subset understood by the dispatcher:
    type: object | string | integer
    required: list of field names
    enum: allowed values for a string field
"""
from typing import Dict, List

from healer.core.constants import (
    CHECK_MEMORY, FETCH_REQUEST, EXECUTE_REQUEST,
    SEARCH_DOCS, UPDATE_REQUEST, STORE_FIX, FIX_KINDS,
)

TOOL_DEFINITIONS: List[dict] = [
    {
        "name": CHECK_MEMORY,
        "description": (
            "Searches the fix memory for previously solved errors similar to this one. "
            "Use it right after fetching the request, and again once you know the error. "
            "Returns cached fixes (with their corrected request) ranked by distance; "
            "lower distance means more similar."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "endpoint": {"type": "string", "description": "The request URL or path"},
                "error_message": {"type": "string", "description": "Optional: error text of the failing response"},
                "status_code": {"type": "integer", "description": "Optional: status code of the failing response"},
            },
            "required": ["endpoint"],
        },
    },
    {
        "name": FETCH_REQUEST,
        "description": (
            "Fetches a specific API request from a collection by its id. "
            "Accepts both plain UUIDs and composite ids with an owner prefix."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "collection_id": {"type": "string", "description": "The collection id"},
                "request_id": {"type": "string", "description": "The request id within the collection"},
            },
            "required": ["collection_id", "request_id"],
        },
    },
    {
        "name": EXECUTE_REQUEST,
        "description": (
            "Executes an HTTP request and returns status code, headers, body and error details. "
            "Pass the FULL request item including the outer wrapper, e.g. "
            '{"name":"Create user","request":{"method":"POST","url":{"raw":"https://api.example.com/users"},'
            '"header":[{"key":"Content-Type","value":"application/json"}],'
            '"body":{"mode":"raw","raw":"{\\"name\\":\\"value\\"}"}}}'
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "request_json": {
                    "type": "string",
                    "description": "JSON string of the complete request item with a 'request' property",
                },
            },
            "required": ["request_json"],
        },
    },
    {
        "name": SEARCH_DOCS,
        "description": (
            "Searches API documentation for correct request formats, required fields and "
            "error explanations."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": 'What you need to know, e.g. "required fields for POST /users"',
                },
                "api_endpoint": {"type": "string", "description": "Optional: the endpoint URL to focus on"},
            },
            "required": ["query"],
        },
    },
    {
        "name": UPDATE_REQUEST,
        "description": (
            "Saves the corrected request back into the collection. Only call it after the "
            "corrected request has succeeded (status 200-299)."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "collection_id": {"type": "string", "description": "The collection id"},
                "request_id": {"type": "string", "description": "The request id to update"},
                "updated_request_json": {
                    "type": "string",
                    "description": "JSON string of the complete corrected request item",
                },
            },
            "required": ["collection_id", "request_id", "updated_request_json"],
        },
    },
    {
        "name": STORE_FIX,
        "description": (
            "Stores a successful fix in memory so future sessions can reuse it. "
            "Call it once the corrected request has succeeded, before updating the collection."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "endpoint": {"type": "string", "description": "The original request URL or path"},
                "method": {"type": "string", "description": "HTTP method of the request"},
                "status_code": {"type": "integer", "description": "Status code of the original failure"},
                "error_message": {"type": "string", "description": "Error text of the original failure"},
                "fix_description": {"type": "string", "description": "What was changed and why"},
                "fix_kind": {"type": "string", "enum": list(FIX_KINDS), "description": "Kind of fix applied"},
                "corrected_request_json": {
                    "type": "string",
                    "description": "JSON string of the complete corrected request item",
                },
            },
            "required": [
                "endpoint", "method", "status_code", "error_message",
                "fix_description", "fix_kind", "corrected_request_json",
            ],
        },
    },
]

TOOLS_BY_NAME: Dict[str, dict] = {tool["name"]: tool for tool in TOOL_DEFINITIONS}
