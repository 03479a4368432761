"""
Iteration State
Mutable state owned by exactly one healing session (one orchestrator run).
Never shared across sessions.
"""
from typing import List, TypedDict

from healer.models.healing_result import SessionOutcome
from healer.models.turn import Turn


class IterationState(TypedDict):
    collection_id: str
    request_id: str

    # 0 <= turn_index <= max_iterations
    turn_index: int
    max_iterations: int
    transcript: List[Turn]

    terminal: bool
    outcome: SessionOutcome
    final_message: str

    # Telemetry
    tool_call_count: int
    start_time: float
