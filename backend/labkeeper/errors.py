"""Domain error taxonomy and its HTTP rendering."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

# purpose: give services one exception family that route handlers never have to translate by hand
# status: active

logger = logging.getLogger(__name__)


class LabkeeperError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, **extra: Any):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body = dict(self.extra)
        body["detail"] = self.detail
        return body


class Unauthenticated(LabkeeperError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(LabkeeperError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        detail: str,
        *,
        required_level: int | None = None,
        actual_level: int | None = None,
        **extra: Any,
    ):
        if required_level is not None:
            extra["required_level"] = required_level
        if actual_level is not None:
            extra["actual_level"] = actual_level
        super().__init__(detail, **extra)
        self.required_level = required_level
        self.actual_level = actual_level


class NotFound(LabkeeperError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(LabkeeperError):
    status_code = status.HTTP_409_CONFLICT


class InvalidInput(LabkeeperError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTag(InvalidInput):
    pass


class Internal(LabkeeperError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class RoleNotFound(Internal):
    pass


class ImmutableRecord(Internal):
    """Raised when something tries to rewrite an audit entry."""


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LabkeeperError)
    async def _labkeeper_error(request: Request, exc: LabkeeperError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
