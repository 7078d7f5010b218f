"""Local client companion: handles the login redirect and talks to the task API."""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskvault.auth import get_flow, router as auth_router
from taskvault.config import get_settings
from taskvault.exceptions import AuthenticationError, IntegrationError
from taskvault.logging_setup import setup_logging
from taskvault.models.common import ErrorResponse
from taskvault.routers.remote_tasks import router as remote_tasks_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The process may have restarted between receiving a code and exchanging it.
    get_flow().resume()
    yield


client_app = FastAPI(title="Taskvault client", version="0.1.0", lifespan=lifespan)
client_app.include_router(auth_router)
client_app.include_router(remote_tasks_router)


@client_app.exception_handler(AuthenticationError)
async def auth_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(status_code=401, content=ErrorResponse(error="Unauthorized", details=str(exc)).model_dump())


@client_app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    return JSONResponse(status_code=502, content=ErrorResponse(error="Task API error", details=str(exc)).model_dump())


def run():
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        "taskvault.client:client_app",
        host=settings.host,
        port=settings.client_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
