"""
Classification
==============
Classifies an execution outcome as a format error or not.

Format errors are failures caused by a malformed request structure (wrong
fields, bad body, wrong path) — the only class of failure the healing loop
is allowed to repair.

Classification Strategy:
    1. HARD EXCLUSION FIRST — authentication (401, 403) and server (>= 500)
       status codes are never format errors, whatever the message says
    2. STATUS CODE — 400 and 422 are format errors
    3. KEYWORDS — a message containing any format keyword (case-insensitive
       substring) is a format error

Steps 2 and 3 are combined with OR: either is sufficient on its own.
"""
from typing import Optional

FORMAT_ERROR = "FORMAT_ERROR"
OTHER = "OTHER"

FORMAT_STATUS_CODES = frozenset({400, 422})
AUTH_STATUS_CODES = frozenset({401, 403})
SERVER_STATUS_FLOOR = 500

FORMAT_KEYWORDS = (
    "invalid",
    "malformed",
    "format",
    "syntax",
    "parse",
    "validation",
    "schema",
)


def is_excluded_status(status_code: int) -> bool:
    """True for status classes the loop must never try to repair."""
    return status_code in AUTH_STATUS_CODES or status_code >= SERVER_STATUS_FLOOR


def classify_error(status_code: int, message: Optional[str] = "") -> str:
    """
    Classify a failed execution.

    Parameters
    ----------
    status_code : int
        HTTP status of the response (0 when no response was received).
    message : str
        Error text of the response or transport failure.

    Returns
    -------
    str
        FORMAT_ERROR or OTHER.
    """
    if is_excluded_status(status_code):
        return OTHER

    if status_code in FORMAT_STATUS_CODES:
        return FORMAT_ERROR

    lowered = (message or "").lower()
    if any(keyword in lowered for keyword in FORMAT_KEYWORDS):
        return FORMAT_ERROR

    return OTHER


def is_format_error(status_code: int, message: Optional[str] = "") -> bool:
    return classify_error(status_code, message) == FORMAT_ERROR
