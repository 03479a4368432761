"""
Fix Record Model
================
Pydantic models for learned fixes held by the fix cache.

FixRecord fields:
    endpoint            — request URL (or path) the fix applies to
    method              — HTTP verb of the request (never changed by a fix)
    status_code         — status of the failing response
    error_message       — error text of the failing response
    fix_kind            — header / body / url / validation
    fix_description     — human-readable summary of the fix
    corrected_request   — the full corrected request structure (JSON-compatible)
    timestamp           — when the fix was learned

A FixRecord is immutable once stored; newer records with the same
signature supersede it in ranking but never modify it.

SimilarityMatch pairs a stored record with its distance to a query
signature (squared L2, 0 = identical signature text).
"""
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

FixKind = Literal["header", "body", "url", "validation"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FixRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    endpoint: str
    method: str
    status_code: int
    error_message: str
    fix_kind: FixKind
    fix_description: str
    corrected_request: Any
    timestamp: datetime = Field(default_factory=_utcnow)


class SimilarityMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    record: FixRecord
    distance: float

    def to_payload(self) -> dict:
        """Flatten into the shape reported to the policy by check_memory."""
        data = self.record.model_dump(mode="json")
        data["id"] = self.id
        data["distance"] = round(self.distance, 6)
        return data
