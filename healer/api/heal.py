"""
POST /heal
Accepts a collection id and a request id.
Runs one healing session to completion and returns its HealingResult.
"""
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from healer.models.healing_result import HealingResult, SessionGoal

router = APIRouter()


class HealRequest(BaseModel):
    collection_id: str = Field(..., min_length=1)
    request_id: str = Field(..., min_length=1)
    max_iterations: Optional[int] = Field(default=None, ge=1)


@router.post("/heal", response_model=HealingResult)
async def heal(body: HealRequest, request: Request) -> HealingResult:
    runtime = request.app.state.runtime
    goal = SessionGoal(collection_id=body.collection_id, request_id=body.request_id)
    return await runtime.build_orchestrator().run(goal, max_iterations=body.max_iterations)
