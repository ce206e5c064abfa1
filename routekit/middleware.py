"""
Request logging and exception rendering

Turns what controllers raise into HTTP responses: a failed validation
renders the response the controller built, a denied ability becomes a
403 and anything else a generic 500.
"""

import logging
import time
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from routekit.errors import AuthorizationDenied, ValidationFailed

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


def _describe(request: Request) -> str:
    return f"{request.method} {request.url.path}"


async def log_requests(request: Request, call_next: Callable):
    """Log rejected, failed and slow requests. Fast successful ones stay quiet."""
    started = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"{_describe(request)} raised {type(e).__name__} after {time.perf_counter() - started:.2f}s")
        raise

    elapsed = time.perf_counter() - started
    if response.status_code >= 500:
        logger.error(f"{_describe(request)} failed with {response.status_code} in {elapsed:.2f}s")
    elif response.status_code >= 400:
        logger.info(f"{_describe(request)} rejected with {response.status_code} in {elapsed:.2f}s")
    elif elapsed > SLOW_REQUEST_SECONDS:
        logger.warning(f"{_describe(request)} took {elapsed:.2f}s")
    return response


async def validation_failed_handler(request: Request, exc: ValidationFailed):
    if exc.response is not None:
        return exc.response
    return JSONResponse(status_code=422, content=exc.errors())


async def authorization_denied_handler(request: Request, exc: AuthorizationDenied):
    content = {"detail": exc.message}
    if exc.code is not None:
        content["code"] = exc.code
    return JSONResponse(status_code=403, content=content)


async def unhandled_error_handler(request: Request, exc: Exception):
    # Details stay in the log; clients only see a generic body.
    logger.error(f"Controller error in {_describe(request)}: {type(exc).__name__}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    """Render controller exceptions: 422 for validation, 403 for authorization, 500 otherwise."""
    app.add_exception_handler(ValidationFailed, validation_failed_handler)
    app.add_exception_handler(AuthorizationDenied, authorization_denied_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
