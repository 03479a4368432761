"""
Healing Result Model
====================
Inputs and final output of one healing session.

SessionOutcome:
    pending         — session still running (never returned)
    success         — update_request reported success (structural short-circuit)
    policy-stop     — policy answered without tool calls; its text is the result
    max-iterations  — iteration cap reached; fixed "could not complete" message
    error           — policy unreachable or protocol violation; explicit description
"""
from enum import Enum
from typing import Annotated, List, Union

from pydantic import BaseModel, Field

from .turn import PolicyTurn, ToolResultTurn, UserTurn


class SessionOutcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    POLICY_STOP = "policy-stop"
    MAX_ITERATIONS = "max-iterations"
    ERROR = "error"


class SessionGoal(BaseModel):
    collection_id: str
    request_id: str


TranscriptTurn = Annotated[
    Union[UserTurn, PolicyTurn, ToolResultTurn], Field(discriminator="role")
]


class HealingResult(BaseModel):
    outcome: SessionOutcome
    message: str
    collection_id: str
    request_id: str
    iterations: int = 0
    tool_call_count: int = 0
    elapsed_seconds: float = 0.0
    transcript: List[TranscriptTurn] = []
