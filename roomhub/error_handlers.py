"""Map core errors onto HTTP responses."""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .errors import (
    Conflict,
    InvalidArgument,
    InvalidState,
    NotFound,
    PermissionDenied,
    RoomHubError,
    StorageUnavailable,
)

STATUS_CODES = {
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    Conflict: status.HTTP_409_CONFLICT,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    InvalidState: status.HTTP_409_CONFLICT,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: RoomHubError) -> int:
    for error_type, code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers so every core failure gets a distinct, stable response."""

    @app.exception_handler(RoomHubError)
    async def roomhub_error_handler(request: Request, exc: RoomHubError) -> JSONResponse:
        content = {
            "error": exc.code,
            "detail": exc.message,
            "path": str(request.url.path),
        }
        if isinstance(exc, Conflict) and exc.conflicting_ids:
            content["conflicting_booking_ids"] = list(exc.conflicting_ids)
        headers = {"Retry-After": "1"} if isinstance(exc, StorageUnavailable) else None
        return JSONResponse(status_code=status_for(exc), content=content, headers=headers)
