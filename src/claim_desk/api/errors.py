"""Map domain errors to HTTP responses with a stable JSON error body."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from claim_desk.exceptions import ClaimDeskError

logger = logging.getLogger(__name__)

HTTP_422 = 422

STATUS_BY_CODE: dict[str, int] = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "validation_failed": HTTP_422,
    "authentication_required": status.HTTP_401_UNAUTHORIZED,
    "authorization_denied": status.HTTP_403_FORBIDDEN,
    "invalid_transition": status.HTTP_409_CONFLICT,
    "stale_state": status.HTTP_409_CONFLICT,
    "already_consumed": status.HTTP_409_CONFLICT,
    "expired": status.HTTP_410_GONE,
    "no_active_challenge": status.HTTP_400_BAD_REQUEST,
    "code_mismatch": status.HTTP_400_BAD_REQUEST,
    "notification_dispatch_failed": status.HTTP_502_BAD_GATEWAY,
}


def error_status(error: ClaimDeskError) -> int:
    return STATUS_BY_CODE.get(error.code, status.HTTP_400_BAD_REQUEST)


async def claim_desk_error_handler(request: Request, exc: ClaimDeskError) -> JSONResponse:
    code = error_status(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=code, content=exc.to_dict(), headers=headers)


async def pydantic_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_422,
        content={
            "error": "validation_failed",
            "message": "Invalid claim data",
            "details": exc.errors(include_url=False, include_context=False),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ClaimDeskError, claim_desk_error_handler)
    app.add_exception_handler(ValidationError, pydantic_error_handler)
