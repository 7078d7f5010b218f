import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from taskvault.config import get_settings
from taskvault.exceptions import (
    AuthenticationError,
    InvalidStatusError,
    NoUpdatableFieldsError,
    StoreError,
    TaskNotFoundError,
)
from taskvault.logging_setup import setup_logging
from taskvault.models.common import ErrorResponse
from taskvault.routers.tasks import router as tasks_router

logger = logging.getLogger(__name__)

ALLOWED_METHODS = "GET,POST,PUT,DELETE,OPTIONS"
ALLOWED_HEADERS = "Content-Type,Authorization"


def cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": get_settings().allowed_origin,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


def _error(status_code: int, error: str, details: str | None = None, **extra) -> JSONResponse:
    content = ErrorResponse(error=error, details=details).model_dump(exclude_none=True)
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


# --- CORS middleware ---

class CorsHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp the fixed CORS header set on every response, including unhandled errors."""

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            response = _error(500, "Internal Server Error", str(exc))
        response.headers.update(cors_headers())
        return response


# --- FastAPI app ---

api = FastAPI(title="Taskvault", version="0.1.0")
api.add_middleware(CorsHeadersMiddleware)
api.include_router(tasks_router)


# --- Exception handlers ---

@api.exception_handler(AuthenticationError)
async def auth_error_handler(request: Request, exc: AuthenticationError):
    return _error(401, "Unauthorized", str(exc))


@api.exception_handler(InvalidStatusError)
async def invalid_status_handler(request: Request, exc: InvalidStatusError):
    return _error(400, "Invalid status", allowed=exc.allowed)


@api.exception_handler(NoUpdatableFieldsError)
async def no_fields_handler(request: Request, exc: NoUpdatableFieldsError):
    return _error(400, "No updatable fields provided")


@api.exception_handler(TaskNotFoundError)
async def task_not_found_handler(request: Request, exc: TaskNotFoundError):
    return _error(404, "Task not found", str(exc))


@api.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, "Internal Server Error", str(exc))


@api.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return _error(400, "Invalid request body", str(exc.errors()))


@api.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # Unknown routes and wrong methods both answer 404.
    if exc.status_code in (404, 405):
        return _error(404, "Not found")
    return _error(exc.status_code, str(exc.detail))


def run():
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        "taskvault.main:api",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
