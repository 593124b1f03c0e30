from __future__ import annotations

from app.core.i18n import translate


class StageError(ValueError):
    """Business-rule rejection with a stable code and a readable reason."""

    kind = "error"
    status_code = 400

    def __init__(self, code: str, **params: object) -> None:
        self.code = code
        self.params = params
        template = translate(f"error.{code}")
        try:
            self.message = template.format(**params)
        except (KeyError, IndexError):
            self.message = template
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind, "code": self.code, "message": self.message}


class ValidationError(StageError):
    kind = "validation"
    status_code = 400


class PreconditionError(StageError):
    kind = "precondition"
    status_code = 409


class NotFoundError(StageError):
    kind = "not_found"
    status_code = 404


class PermissionDenied(StageError):
    kind = "permission"
    status_code = 403


class ConflictError(StageError):
    kind = "conflict"
    status_code = 409
