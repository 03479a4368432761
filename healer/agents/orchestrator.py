"""
Healing Orchestrator
====================
The bounded healing loop. Drives the Policy → Tool calls → Results loop
for one healing session.

States:
    AWAITING_POLICY   → request one policy turn for the full transcript
    DISPATCHING_TOOLS → run every tool call of that turn, in emission order
    terminal          → success | policy-stop | max-iterations | error

Termination rules:
    - Policy turn without tool calls → policy-stop; its text is the result
    - Last tool call of a batch is update_request and reports success →
      success, without requesting another policy turn
    - turn_index reaches max_iterations → max-iterations (never a crash)
    - ProtocolViolation (unknown tool) or policy unreachable → error

Tool-level failures never end the session: the dispatcher reports them to
the policy as structured results. One orchestrator instance serves exactly
one session; its IterationState is never shared.
"""
import logging
import time
from typing import List, Optional

from healer.agents.tool_dispatcher import ToolDispatcher
from healer.core.config import MAX_ITERATIONS, RESULTS_DIR
from healer.core.constants import (
    UPDATE_REQUEST, SUCCESS_MESSAGE, MAX_ITERATIONS_MESSAGE, ERROR_MESSAGE_PREFIX,
)
from healer.core.errors import HealerError, ProtocolViolation
from healer.llm.client import Policy
from healer.llm.prompts import SYSTEM_PROMPT, build_goal_prompt
from healer.llm.tool_catalog import TOOL_DEFINITIONS
from healer.models.healing_result import HealingResult, SessionGoal, SessionOutcome
from healer.models.turn import ToolResult, ToolResultTurn, UserTurn
from healer.services.results_writer import ResultsWriter
from healer.state.iteration_state import IterationState

logger = logging.getLogger(__name__)


def _update_succeeded(dispatcher: ToolDispatcher) -> bool:
    result = dispatcher.last_result
    return (
        dispatcher.last_tool_name == UPDATE_REQUEST
        and isinstance(result, dict)
        and result.get("success") is True
    )


def _terminate(state: IterationState, outcome: SessionOutcome, message: str) -> None:
    state["terminal"] = True
    state["outcome"] = outcome
    state["final_message"] = message


class HealingOrchestrator:
    """
    Runs one healing session against a policy and a tool dispatcher.

    Usage:
        orchestrator = HealingOrchestrator(policy, dispatcher)
        result = await orchestrator.run(SessionGoal(collection_id="c", request_id="r"))
    """

    def __init__(
        self,
        policy: Policy,
        dispatcher: ToolDispatcher,
        max_iterations: int = MAX_ITERATIONS,
        results_dir: str = RESULTS_DIR,
        tools: Optional[List[dict]] = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.policy = policy
        self.dispatcher = dispatcher
        self.max_iterations = max_iterations
        self.results_dir = results_dir
        self.tools = tools if tools is not None else TOOL_DEFINITIONS
        self.system_prompt = system_prompt

    async def run(self, goal: SessionGoal, max_iterations: Optional[int] = None) -> HealingResult:
        """Execute the full healing loop."""
        cap = self.max_iterations if max_iterations is None else max_iterations
        if cap < 0:
            raise ValueError("max_iterations must be >= 0")

        state: IterationState = {
            "collection_id": goal.collection_id,
            "request_id": goal.request_id,
            "turn_index": 0,
            "max_iterations": cap,
            "transcript": [UserTurn(text=build_goal_prompt(goal))],
            "terminal": False,
            "outcome": SessionOutcome.PENDING,
            "final_message": "",
            "tool_call_count": 0,
            "start_time": time.time(),
        }
        logger.info(
            "Healing session started: collection=%s request=%s max_iterations=%d",
            goal.collection_id, goal.request_id, cap,
        )

        while not state["terminal"] and state["turn_index"] < cap:
            await self._step(state)

        if not state["terminal"]:
            logger.warning("Max iterations (%d) reached without success", cap)
            _terminate(state, SessionOutcome.MAX_ITERATIONS, MAX_ITERATIONS_MESSAGE)

        result = HealingResult(
            outcome=state["outcome"],
            message=state["final_message"],
            collection_id=state["collection_id"],
            request_id=state["request_id"],
            iterations=state["turn_index"],
            tool_call_count=state["tool_call_count"],
            elapsed_seconds=round(time.time() - state["start_time"], 3),
            transcript=state["transcript"],
        )
        logger.info(
            "Healing session finished: outcome=%s iterations=%d tool_calls=%d",
            result.outcome.value, result.iterations, result.tool_call_count,
        )
        ResultsWriter.write_results(result, self.results_dir)
        return result

    async def _step(self, state: IterationState) -> None:
        """One AWAITING_POLICY → DISPATCHING_TOOLS round."""
        state["turn_index"] += 1
        i = state["turn_index"]
        logger.info("--- Iteration %d/%d ---", i, state["max_iterations"])

        # --- (a) Awaiting policy ---
        try:
            turn = await self.policy.get_next_turn(state["transcript"], self.tools, self.system_prompt)
        except HealerError as e:
            logger.error("Policy unavailable at iteration %d: %s", i, e, exc_info=True)
            _terminate(state, SessionOutcome.ERROR, ERROR_MESSAGE_PREFIX + str(e))
            return
        except Exception as e:
            logger.error("Policy call crashed at iteration %d: %s", i, e, exc_info=True)
            _terminate(state, SessionOutcome.ERROR, f"{ERROR_MESSAGE_PREFIX}policy call failed: {e}")
            return

        state["transcript"].append(turn)
        if turn.text:
            logger.info("Policy: %s", turn.text[:500])

        if not turn.has_tool_calls:
            logger.info("Policy finished without tool calls")
            _terminate(state, SessionOutcome.POLICY_STOP, turn.text)
            return

        # --- (b) Dispatching tools, in emission order ---
        results: List[ToolResult] = []
        try:
            for call in turn.tool_calls:
                state["tool_call_count"] += 1
                results.append(await self.dispatcher.dispatch(call))
        except ProtocolViolation as e:
            logger.error("Protocol violation at iteration %d: %s", i, e, exc_info=True)
            state["transcript"].append(ToolResultTurn(results=results))
            _terminate(state, SessionOutcome.ERROR, ERROR_MESSAGE_PREFIX + str(e))
            return

        state["transcript"].append(ToolResultTurn(results=results))

        # --- (c) Success short-circuit ---
        if _update_succeeded(self.dispatcher):
            logger.info("update_request succeeded, session complete")
            _terminate(state, SessionOutcome.SUCCESS, SUCCESS_MESSAGE)
