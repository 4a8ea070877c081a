import logging
import uuid

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from nora_today.core.logging import request_id_var

logger = logging.getLogger(__name__)

ERROR_MESSAGES = {
    "NETWORK": "Network error. Please check your connection and try again.",
    "TIMEOUT": "Request timed out. Please check your connection and try again.",
    "UNKNOWN": "Something went wrong. Please try again.",
    "SERVER_ERROR": "We're experiencing technical difficulties. Please try again in a few moments.",
    "NOT_FOUND": "The requested resource was not found.",
    "UNAUTHORIZED": "Please log in to continue.",
    "LESSON_NOT_FOUND": "This lesson is not available. It may have been updated.",
    "CONTENT_UPDATED": "This lesson has been updated. Please select it again to view the latest version.",
    "PROCESSING_FAILED": "We encountered an error while analyzing your recording. Please try recording again.",
    "PROCESSING_TIMEOUT": (
        "Analysis is taking longer than expected. Please try recording again "
        "or contact support if the issue persists."
    ),
}


class NoraError(Exception):
    """Base class for every error raised by the today-state core."""


class StoreError(NoraError):
    """The local key-value store could not complete a read or write."""


class RemoteUnavailableError(NoraError):
    """Transport-level failure talking to a remote service (network, timeout, open breaker)."""


class RemoteTimeoutError(RemoteUnavailableError):
    """The remote service did not answer within the client timeout."""


class ApiError(NoraError):
    def __init__(self, message: str, status: int, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    def is_server_error(self) -> bool:
        return self.status >= 500


class LessonNotFoundError(ApiError):
    def __init__(self, lesson_id: str, message: str = "Lesson not found"):
        super().__init__(message, 404, "NOT_FOUND")
        self.lesson_id = lesson_id


class AnalysisPendingError(ApiError):
    def __init__(self, recording_id: str, message: str = "Analysis still processing"):
        super().__init__(message, 202, "PROCESSING")
        self.recording_id = recording_id


class AnalysisFailedError(ApiError):
    def __init__(self, recording_id: str, message: str = "Analysis failed"):
        super().__init__(message, 422, "PROCESSING_ERROR")
        self.recording_id = recording_id


class ContentUpdatedError(NoraError):
    """Raised after a not-found lesson has been purged; the caller must navigate away."""

    def __init__(self, lesson_id: str, user_message: str = ERROR_MESSAGES["CONTENT_UPDATED"]):
        super().__init__(user_message)
        self.lesson_id = lesson_id
        self.user_message = user_message


def user_message_for(exc: BaseException | None, fallback: str | None = None) -> str:
    if exc is None:
        return fallback or ERROR_MESSAGES["UNKNOWN"]
    if isinstance(exc, ContentUpdatedError):
        return exc.user_message
    if isinstance(exc, LessonNotFoundError):
        return ERROR_MESSAGES["LESSON_NOT_FOUND"]
    if isinstance(exc, AnalysisFailedError):
        return ERROR_MESSAGES["PROCESSING_FAILED"]
    if isinstance(exc, RemoteTimeoutError):
        return ERROR_MESSAGES["TIMEOUT"]
    if isinstance(exc, RemoteUnavailableError):
        return ERROR_MESSAGES["NETWORK"]
    if isinstance(exc, ApiError):
        if exc.status == 401:
            return ERROR_MESSAGES["UNAUTHORIZED"]
        if exc.is_server_error() or exc.code == "INVALID_RESPONSE":
            return ERROR_MESSAGES["SERVER_ERROR"]
        return exc.message or fallback or ERROR_MESSAGES["UNKNOWN"]
    return fallback or ERROR_MESSAGES["UNKNOWN"]


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    status_code: int,
    details=None,
) -> JSONResponse:
    payload = {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
            "details": details,
        },
    }
    return JSONResponse(status_code=status_code, content=payload)


async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(
        request,
        code="http_error",
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        code="validation_error",
        message="Request validation failed",
        status_code=422,
        details=exc.errors(),
    )


async def content_updated_handler(request: Request, exc: ContentUpdatedError):
    return error_response(
        request,
        code="content_updated",
        message=exc.user_message,
        status_code=410,
        details={"lesson_id": exc.lesson_id},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception | request_id=%s", get_request_id(request), exc_info=exc)
    return error_response(
        request,
        code="internal_error",
        message="Internal server error",
        status_code=500,
    )


async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get("x-request-id")
    request.state.request_id = incoming or str(uuid.uuid4())
    token = request_id_var.set(request.state.request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["x-request-id"] = request.state.request_id
    return response
