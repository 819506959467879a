"""
Exception handlers turning service errors into HTTP responses.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from structlog import get_logger

from groupmod.core.errors import ErrorKind, ModerationError
from groupmod.service.directory import UserDirectoryError

STATUS_FOR_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 422,
}


def moderation_error_handler(request: Request, exc: ModerationError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_FOR_KIND[exc.kind],
        content={"detail": str(exc), "kind": exc.kind.value},
    )


async def directory_error_handler(
    request: Request, exc: UserDirectoryError
) -> JSONResponse:
    log = get_logger()
    await log.awarning(
        "api.directory_unavailable", url=str(request.url), error=str(exc)
    )

    return JSONResponse(
        status_code=502,
        content={"detail": "User lookup is currently unavailable"},
    )


def add_exception_handlers(app: FastAPI) -> FastAPI:
    """
    Adds exception handlers for the service errors. Without these, every
    refused operation comes back as a 500.
    """
    app.add_exception_handler(ModerationError, moderation_error_handler)
    app.add_exception_handler(UserDirectoryError, directory_error_handler)
    return app
