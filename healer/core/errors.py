"""
Errors
======
Error taxonomy for the healing session.

Recoverable (reported to the policy as structured tool results):
    ValidationError        — malformed tool input
    UpstreamError          — collaborator network/service failure
    NotFoundError          — target resource absent
    CacheUnavailableError  — fix cache backend or embedding engine unreachable

Session-fatal (abort the loop with the "error" outcome):
    ProtocolViolation       — the policy called a tool outside its catalog
    PolicyUnavailableError  — no policy provider could produce a turn

Running out of iterations is an outcome, not an exception.
"""


class HealerError(Exception):
    """Base class for all healing-session errors."""

    error_type = "HealerError"

    def to_payload(self, **extra) -> dict:
        payload = {"error": str(self), "error_type": self.error_type, "success": False}
        payload.update(extra)
        return payload


class ValidationError(HealerError):
    error_type = "ValidationError"


class UpstreamError(HealerError):
    error_type = "UpstreamError"


class NotFoundError(HealerError):
    error_type = "NotFoundError"


class CacheUnavailableError(HealerError):
    error_type = "CacheUnavailable"


class ProtocolViolation(HealerError):
    error_type = "ProtocolViolation"


class PolicyUnavailableError(HealerError):
    error_type = "PolicyUnavailable"
