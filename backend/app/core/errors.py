"""
Domain errors raised by the service layer.

Routes let these propagate; the handler registered in ``app.main`` renders
them as ``{"error": message}`` with the mapped status code.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class HabitHubError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(HabitHubError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ValidationError(HabitHubError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(HabitHubError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(HabitHubError):
    """Request is well formed but the resource is in the wrong state (OTP flow)"""
    status_code = status.HTTP_409_CONFLICT


class ExternalServiceError(HabitHubError):
    status_code = status.HTTP_502_BAD_GATEWAY


async def habit_hub_error_handler(request: Request, exc: HabitHubError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
