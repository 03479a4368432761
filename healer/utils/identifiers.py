"""
Identifier Normalization
========================
Pluggable strategies for resolving request identifiers that the policy
passes to the collection backend.

Collection backends sometimes expose a composite identifier that prefixes
the item UUID with an owner/workspace segment (``<owner>-<uuid>``), while
the collection tree stores the bare UUID. No single heuristic is correct for
every identifier format, so normalizers only propose *candidates*: callers
try the raw identifier first and fall back to the normalized forms.
"""
import logging
from abc import ABC, abstractmethod
from typing import List

logger = logging.getLogger(__name__)

_UUID_SEGMENTS = 5


class IdentifierNormalizer(ABC):
    """Strategy interface: map a raw identifier to lookup candidates."""

    @abstractmethod
    def normalize(self, identifier: str) -> str:
        """Return the normalized form of ``identifier``."""

    def candidates(self, identifier: str) -> List[str]:
        """Raw identifier first, then its normalized form when different."""
        raw = (identifier or "").strip()
        out = [raw]
        normalized = self.normalize(raw)
        if normalized and normalized != raw:
            out.append(normalized)
        return out


class PassthroughNormalizer(IdentifierNormalizer):
    def normalize(self, identifier: str) -> str:
        return identifier


class OwnerPrefixNormalizer(IdentifierNormalizer):
    """
    Strip a leading owner segment from a composite ``<owner>-<uuid>`` id.

    Only identifiers with exactly ``uuid_segments + 1`` dash-separated
    segments whose first segment is numeric are rewritten; anything else is
    returned unchanged.
    """

    def __init__(self, uuid_segments: int = _UUID_SEGMENTS) -> None:
        self.uuid_segments = uuid_segments

    def normalize(self, identifier: str) -> str:
        parts = identifier.split("-")
        if len(parts) == self.uuid_segments + 1 and parts[0].isdigit():
            return "-".join(parts[1:])
        return identifier


_NORMALIZERS = {
    "none": PassthroughNormalizer,
    "owner_prefix": OwnerPrefixNormalizer,
}


def get_normalizer(name: str) -> IdentifierNormalizer:
    """Build a normalizer by config name; unknown names fall back to passthrough."""
    cls = _NORMALIZERS.get((name or "").strip().lower())
    if cls is None:
        logger.warning("Unknown identifier normalizer %r, using passthrough", name)
        cls = PassthroughNormalizer
    return cls()
