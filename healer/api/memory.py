"""
GET /memory/stats, POST /memory/search
Observability over the fix cache: how many fixes are stored and which
ones a given error would match.
"""
import asyncio
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

router = APIRouter(prefix="/memory")


class MemorySearchRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    k: Optional[int] = Field(default=None, ge=0)
    max_distance: Optional[float] = Field(default=None, ge=0)


@router.get("/stats")
async def memory_stats(request: Request):
    cache = request.app.state.runtime.fix_cache
    return {"total_stored": await asyncio.to_thread(cache.count)}


@router.post("/search")
async def memory_search(body: MemorySearchRequest, request: Request):
    cache = request.app.state.runtime.fix_cache
    matches = await asyncio.to_thread(
        cache.query, body.endpoint, body.error_message, body.status_code, body.k, body.max_distance,
    )
    return {
        "found": bool(matches),
        "fixes": [m.to_payload() for m in matches],
        "total_stored": await asyncio.to_thread(cache.count),
    }
