"""Maps manager exceptions onto JSON error bodies.

Each ManagerError carries its own error_type and status_code, so a single
handler covers the whole hierarchy.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status
from structlog import get_logger

from antigravity_manager.exceptions import ErrorType, ManagerError


logger = get_logger(__name__)


def _error_body(status_code: int, error_type: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register the ManagerError and catch-all handlers on ``app``."""

    @app.exception_handler(ManagerError)
    async def manager_error_handler(
        request: Request, exc: ManagerError
    ) -> JSONResponse:
        error_type = str(exc.error_type)
        # client mistakes are warnings, everything else is an error
        emit = logger.warning if exc.status_code < 500 else logger.error
        emit(
            "api_request_failed",
            exception=type(exc).__name__,
            error_type=error_type,
            error_message=exc.message,
            status_code=exc.status_code,
            method=request.method,
            path=request.url.path,
        )
        return _error_body(exc.status_code, error_type, exc.message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "api_unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )
        return _error_body(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorType.INTERNAL_SERVER.value,
            "Internal server error",
        )
