"""Error codes surfaced by TabFocus commands."""

MISSING_API_KEY = "MISSING_API_KEY"
AI_TIMEOUT = "AI_TIMEOUT"
AI_REQUEST_FAILED = "AI_REQUEST_FAILED"
AI_RESPONSE_EMPTY = "AI_RESPONSE_EMPTY"
AI_RESPONSE_INVALID_JSON = "AI_RESPONSE_INVALID_JSON"
AI_RESPONSE_NO_VALID_GROUPS = "AI_RESPONSE_NO_VALID_GROUPS"
NO_PREVIEW_DRAFT = "NO_PREVIEW_DRAFT"
INVALID_PREVIEW_DRAFT = "INVALID_PREVIEW_DRAFT"
SNAPSHOT_NOT_FOUND = "SNAPSHOT_NOT_FOUND"
NO_OPEN_TABS_FROM_SNAPSHOT = "NO_OPEN_TABS_FROM_SNAPSHOT"
NO_UNDO_TOKEN = "NO_UNDO_TOKEN"
UNDO_TOKEN_MISMATCH = "UNDO_TOKEN_MISMATCH"
UNDO_TOKEN_EXPIRED = "UNDO_TOKEN_EXPIRED"
ARCHIVE_NOT_FOUND = "ARCHIVE_NOT_FOUND"
TAB_CLOSE_FAILED = "TAB_CLOSE_FAILED"
HOST_UNAVAILABLE = "HOST_UNAVAILABLE"
NO_SUPPORTED_TABS = "NO_SUPPORTED_TABS"


def ai_http_error(status: int) -> str:
    return f"AI_HTTP_{status}"


class TabFocusError(Exception):
    """Carries one of the error codes above."""

    def __init__(self, code: str, detail: str = ""):
        super().__init__(detail or code)
        self.code = code


class ClassifierError(TabFocusError):
    """Failure from the untrusted classification provider. Always recoverable."""


class HostError(TabFocusError):
    """A single browser call failed."""
