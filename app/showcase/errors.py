"""
Error taxonomy shared by the services, the resolver and the JSON transport.

Each error carries the HTTP status the transport renders it with. NotFoundError and
PermissionDenied are kept apart so callers can tell "doesn't exist" from
"exists but you can't touch it".
"""
from __future__ import annotations


class ShowcaseError(Exception):
    status_code = 500
    public_message: str | None = None

    def __init__(self, message: str = "", **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict[str, object] = {"error": self.public_message or self.message}
        if self.details and self.public_message is None:
            body["details"] = self.details
        return body


class ValidationError(ShowcaseError):
    """Payload failed field checks; raised before any write."""

    status_code = 400

    def __init__(self, message: str = "Invalid payload", errors: list[str] | None = None, **details: object) -> None:
        super().__init__(message, **details)
        self.errors = list(errors or [])

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundError(ShowcaseError):
    status_code = 404


class PermissionDenied(ShowcaseError):
    status_code = 403


class ConflictError(ShowcaseError):
    """Unique pair already present, e.g. (team_id, user_id) or (project_id, sdg_id)."""

    status_code = 409


class StoreError(ShowcaseError):
    """The durable store failed. Always fatal to the current call."""

    status_code = 500
    public_message = "Internal store failure"
