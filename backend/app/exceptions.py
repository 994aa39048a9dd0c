from fastapi import HTTPException
from pydantic import BaseModel
from typing import Optional


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code


class NotFound(DomainException):
    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(
            status_code=404,
            title=f"{resource.capitalize()} not found",
            detail=detail,
            code=f"{resource.replace(' ', '_')}_not_found",
        )
        self.resource = resource


class InvalidStateTransition(DomainException):
    """A lifecycle guard failed; ``required`` names the expected source state."""

    def __init__(
        self, action: str, current: str, required: str, *, subject: str = "match"
    ) -> None:
        super().__init__(
            status_code=409,
            title="Invalid state transition",
            detail=f"cannot {action} a {subject} that is {current}; {subject} must be {required}",
            code="invalid_state_transition",
        )
        self.action = action
        self.current = current
        self.required = required


class MatchNotActive(DomainException):
    def __init__(self, status: str) -> None:
        super().__init__(
            status_code=409,
            title="Match not active",
            detail=f"points can only be recorded while a match is inprogress (currently {status})",
            code="match_not_active",
        )
        self.status = status


class PermissionDenied(DomainException):
    def __init__(self) -> None:
        super().__init__(
            status_code=403,
            title="Permission denied",
            detail="not permitted",
            code="permission_denied",
        )


class InvalidToken(DomainException):
    def __init__(self) -> None:
        super().__init__(
            status_code=403,
            title="Invalid token",
            detail="invalid token",
            code="invalid_token",
        )


class ValidationError(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            title="Validation error",
            detail=detail,
            code="validation_error",
        )


class VersionConflict(DomainException):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            status_code=409,
            title="Version conflict",
            detail=f"match version is {actual}, client sent {expected}; resync and retry",
            code="version_conflict",
        )
        self.expected = expected
        self.actual = actual


class PersistenceError(DomainException):
    def __init__(self, operation: str) -> None:
        super().__init__(
            status_code=500,
            title="Persistence error",
            detail=f"failed to {operation}",
            code="persistence_error",
        )
        self.operation = operation


class PersistenceTimeout(DomainException):
    """The backing store did not answer in time; safe for the caller to retry reads."""

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(
            status_code=503,
            title="Persistence timeout",
            detail=f"timed out after {timeout:g}s while trying to {operation}",
            code="persistence_timeout",
        )
        self.operation = operation
        self.timeout = timeout


def http_problem(
    status_code: int,
    detail: str,
    code: str,
    *,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    """Create an HTTPException with an attached problem code."""

    exc = HTTPException(status_code=status_code, detail=detail, headers=headers)
    setattr(exc, "code", code)
    return exc
