"""
Domain error taxonomy.

Every error is an HTTPException subclass carrying a stable `code`, so
services can raise them the same way they raise plain HTTPExceptions and the
API renders them through a single handler:

    {"error": {"code": "...", "message": "...", "status": 403}}
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException, Request
from starlette.responses import JSONResponse


class TaskMateError(HTTPException):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Something went wrong."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        headers: Optional[dict[str, str]] = None,
        **extra: Any,
    ):
        super().__init__(
            status_code=type(self).status_code,
            detail=message or type(self).message,
            headers=headers,
        )
        self.extra = extra


class NotAuthenticated(TaskMateError):
    status_code = 401
    code = "NOT_AUTHENTICATED"
    message = "Authentication required."


class NotFound(TaskMateError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found."


class Forbidden(TaskMateError):
    status_code = 403
    code = "FORBIDDEN"
    message = "You are not allowed to perform this action."


class WrongOrganization(TaskMateError):
    status_code = 403
    code = "WRONG_ORGANIZATION"
    message = "This resource belongs to a different organization."


class CrossOrgAssignment(TaskMateError):
    status_code = 422
    code = "CROSS_ORG_ASSIGNMENT"
    message = "Tasks can only be assigned to members of the organization."


class MissingOrgContext(TaskMateError):
    status_code = 400
    code = "MISSING_ORG_CONTEXT"
    message = "Organization context missing (x-org-id header)."


class InvalidAction(TaskMateError):
    status_code = 400
    code = "INVALID_ACTION"
    message = "Invalid action."


class AlreadyMember(TaskMateError):
    status_code = 409
    code = "ALREADY_MEMBER"
    message = "You are already a member of this organization."


class DuplicateRequest(TaskMateError):
    status_code = 409
    code = "DUPLICATE_REQUEST"
    message = "Join request already sent."


class ValidationError(TaskMateError):
    status_code = 422
    code = "VALIDATION_ERROR"
    message = "Invalid request."


class PartialCompletion(TaskMateError):
    status_code = 500
    code = "PARTIAL_COMPLETION"
    message = "The operation only partially completed."


class CalendarAuthorizationRequired(TaskMateError):
    status_code = 401
    code = "CALENDAR_AUTHORIZATION_REQUIRED"
    message = "Google Calendar authorization required."


class IntegrationError(TaskMateError):
    status_code = 502
    code = "INTEGRATION_ERROR"
    message = "An external service request failed."


async def taskmate_error_handler(request: Request, exc: TaskMateError) -> JSONResponse:
    """Render a TaskMateError as the standard error envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.detail,
                "status": exc.status_code,
                **exc.extra,
            }
        },
        headers=exc.headers,
    )
