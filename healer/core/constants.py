"""
Constants
Centralised storage for tool names, fix kinds, and terminal session messages.
"""
CHECK_MEMORY = "check_memory"
FETCH_REQUEST = "fetch_request"
EXECUTE_REQUEST = "execute_request"
SEARCH_DOCS = "search_docs"
UPDATE_REQUEST = "update_request"
STORE_FIX = "store_fix"

FIX_KINDS = ("header", "body", "url", "validation")

SUCCESS_MESSAGE = (
    "Task completed successfully. "
    "The API request has been fixed and updated in the collection."
)
MAX_ITERATIONS_MESSAGE = "Max iterations reached. Could not complete the task."
ERROR_MESSAGE_PREFIX = "Healing session aborted: "

# Characters of tool input/output echoed to the log per call
LOG_PREVIEW_CHARS = 200
