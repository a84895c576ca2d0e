"""Centralized exception handlers for the FastAPI application.

Service exceptions are mapped to HTTP responses with a consistent body:

    {
        "detail": "Human-readable error message",
        "code": "MACHINE_READABLE_ERROR_CODE"
    }
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from workpack_budget.errors import BudgetServiceError, ErrorCode

logger = structlog.get_logger(__name__)

ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.MALFORMED_INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    # Backend unavailable or returned an error
    ErrorCode.DATA_SOURCE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.BUDGET_LOAD_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _create_error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message, "code": code})


async def budget_service_error_handler(request: Request, exc: BudgetServiceError) -> JSONResponse:
    """Map a BudgetServiceError to its HTTP status; details are logged, never returned."""
    status_code = ERROR_CODE_TO_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)
    log = logger.error if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR else logger.warning
    log(
        "budget_request_failed",
        path=request.url.path,
        code=exc.code.value,
        status_code=status_code,
        details=exc.details,
    )
    return _create_error_response(status_code, exc.message, exc.code.value)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error_type=type(exc).__name__)
    return _create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        ErrorCode.INTERNAL_ERROR.value,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the service's exception handlers on the application."""
    app.add_exception_handler(BudgetServiceError, budget_service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
