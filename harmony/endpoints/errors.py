import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from harmony.errors import CorrelationError, HarmonyError, ValidationError

logger = logging.getLogger(__name__)


def not_found(resource: str, identifier: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={
            "code": "NotFound",
            "description": f"{resource} '{identifier}' not found",
        },
    )


def error_detail(exc: HarmonyError) -> dict:
    detail: dict = {"code": exc.code, "description": exc.message}
    if isinstance(exc, ValidationError):
        detail["errors"] = exc.errors
    return detail


async def _harmony_error_handler(request: Request, exc: HarmonyError) -> JSONResponse:
    if isinstance(exc, CorrelationError):
        # Stale or duplicate backend callback; the requesting client is not involved
        logger.error("Callback %s rejected (consumed=%s)", exc.token, exc.consumed)
    elif exc.status_code >= 500:
        logger.error("Request %s failed: %s", request.url.path, exc.message)
    else:
        logger.info("Request %s rejected: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": error_detail(exc)})


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error handling %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "InternalServerError", "description": "An unexpected error occurred"}},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HarmonyError, _harmony_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
