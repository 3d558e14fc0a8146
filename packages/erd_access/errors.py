"""Error taxonomy for access-control decisions."""

from __future__ import annotations

__all__ = ["AccessError", "Unauthorized", "Forbidden", "NotFound", "Invalid"]


class AccessError(Exception):
    """Terminal failure of an access-controlled operation.

    ``reason`` is the human readable message surfaced to callers verbatim,
    ``status_code`` the HTTP-like status the API layer reports.
    """

    status_code: int = 500
    label: str = "Error"

    def __init__(self, action: str, detail: str | None = None) -> None:
        self.action = action
        self.detail = detail
        suffix = self.label if detail is None else f"{self.label} {detail}"
        self.reason = f"Can not {action}. reason: {suffix}"
        super().__init__(self.reason)


class Unauthorized(AccessError):
    status_code = 401
    label = "Unauthorized"


class Forbidden(AccessError):
    status_code = 403
    label = "Forbidden"


class NotFound(AccessError):
    status_code = 404
    label = "Not found"


class Invalid(AccessError):
    """Malformed input that upstream validation should have rejected."""

    status_code = 400
    label = "Invalid"
