"""
Error taxonomy shared by services and routes.

Services raise these; route handlers commit or roll back; the handlers
registered in create_app() turn them into JSON responses. Anything that is
not a CrmError is treated as an internal failure (500, details logged only).
"""

from __future__ import annotations

from dataclasses import dataclass


class CrmError(RuntimeError):
    status_code = 500
    public_message = "Internal server error"

    def to_payload(self) -> dict:
        return {"message": self.public_message}


class Unauthenticated(CrmError):
    status_code = 401
    public_message = "Authentication required"


class LoginRejected(CrmError):
    """
    Base for every login failure. The callback collapses all of these into the
    same generic redirect so callers can't learn which emails are invited.
    """

    status_code = 401
    public_message = "Authentication failed"


class MissingEmail(LoginRejected):
    pass


class NoInvitation(LoginRejected):
    pass


class AccountDeactivated(LoginRejected):
    pass


class NotFound(CrmError):
    status_code = 404
    public_message = "Not found"

    def __init__(self, what: str = "Resource") -> None:
        super().__init__(f"{what} not found")
        self.what = what

    def to_payload(self) -> dict:
        return {"message": f"{self.what} not found"}


class DuplicateInvitation(CrmError):
    status_code = 409
    public_message = "An unused invitation already exists for this email"


class InvalidArgument(CrmError):
    status_code = 400
    public_message = "Invalid argument"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"message": self.message}


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ValidationFailed(CrmError):
    status_code = 400
    public_message = "Validation failed"

    def __init__(self, errors: list[FieldError], message: str = "Validation failed") -> None:
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))
        self.errors = errors
        self.public_message = message

    def to_payload(self) -> dict:
        return {
            "message": self.public_message,
            "errors": [{"field": e.field, "message": e.message} for e in self.errors],
        }
