"""
Error envelopes

CRUD endpoints answer `{"success": false, "error": "<message>"}`; the AI
endpoints answer `{"error": "<message>"}` without the success flag, which is
what the streaming client has always checked for.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from ..services.llm import RelayConfigurationError, RelayError, UpstreamStatusError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

PRE_STREAM_RELAY_ERRORS = (RelayConfigurationError, UpstreamUnavailableError, UpstreamStatusError)


def success(data, status_code: int = status.HTTP_200_OK):
    return JSONResponse(status_code=status_code, content={"success": True, "data": data})


def crud_error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def ai_error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def format_validation_errors(exc: RequestValidationError) -> str:
    """Flatten pydantic errors into one readable line"""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return crud_error(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        message = format_validation_errors(exc)
        logger.info(f"Rejected {request.method} {request.url.path}: {message}")
        if request.url.path.startswith("/ai"):
            return ai_error(message, status.HTTP_400_BAD_REQUEST)
        return crud_error(message, status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
        return crud_error("Database error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    async def relay_exception_handler(request: Request, exc: RelayError):
        return ai_error(exc.message, exc.status_code)

    # Only failures raised before the body starts can become a response;
    # UpstreamStreamError surfaces from the streamed body and aborts it
    for exc_class in PRE_STREAM_RELAY_ERRORS:
        app.add_exception_handler(exc_class, relay_exception_handler)
