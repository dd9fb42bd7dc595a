from __future__ import annotations

from dataclasses import dataclass


class KnockbaseError(RuntimeError):
    """Base class for outcomes the API reports to the caller."""

    status_code = 500
    code = "error"
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class TargetNotFound(KnockbaseError):
    status_code = 404
    code = "not_found"
    default_message = "The requested record does not exist."

    def __init__(self, kind: str, target_id: object) -> None:
        super().__init__(f"{kind.replace('_', ' ').capitalize()} {target_id} does not exist.")
        self.kind = kind
        self.target_id = target_id


class AuthorizationDenied(KnockbaseError):
    status_code = 403
    code = "not_permitted"
    default_message = "You are not permitted to do that."


class Conflict(KnockbaseError):
    status_code = 409
    code = "conflict"
    default_message = "The request conflicts with existing data."


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ValidationFailed(KnockbaseError):
    status_code = 400
    code = "invalid"
    default_message = "The request is invalid."

    def __init__(self, errors: list[FieldError] | str) -> None:
        if isinstance(errors, str):
            errors = [FieldError("", errors)]
        super().__init__("; ".join(e.message for e in errors))
        self.errors = errors

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["errors"] = [{"field": e.field, "message": e.message} for e in self.errors]
        return d
