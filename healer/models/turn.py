"""
Transcript Turn Models
======================
Provider-neutral transcript of a healing session.

Turn variants:
    UserTurn        — opening turn describing the session goal
    PolicyTurn      — policy output: optional text plus zero or more tool calls
    ToolResultTurn  — one ToolResult per tool call of the preceding PolicyTurn,
                      in the same order

Every tool call in a PolicyTurn receives exactly one result before the next
policy turn is requested.
"""
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    tool_call_id: str
    tool_name: str
    content: str
    payload: Any = None
    is_error: bool = False


class UserTurn(BaseModel):
    role: Literal["user"] = "user"
    text: str


class PolicyTurn(BaseModel):
    role: Literal["policy"] = "policy"
    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ToolResultTurn(BaseModel):
    role: Literal["tool"] = "tool"
    results: List[ToolResult] = Field(default_factory=list)


Turn = Union[UserTurn, PolicyTurn, ToolResultTurn]
