from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.types import Message as ASGIMessage

from app.services import DEFAULT_SESSION_ID, BackendError
from app.utils import g_config

MAX_SESSION_ID_LENGTH = 128


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def global_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, BackendError):
        logger.error(f"Backend error on {request.url.path} ({exc.kind}): {exc}")
        return error_response(exc.status_code, str(exc))

    if isinstance(exc, StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    logger.opt(exception=exc).error(f"Server error on {request.url.path}: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected request to {request.url.path}: {exc.errors()}")
    return error_response(422, "Invalid request body.")


class BodySizeLimitMiddleware:
    """
    Reject request bodies larger than `server.max_body_size`.

    A declared Content-Length is checked up front. Bodies without one (chunked
    uploads) are counted as they are received and abort the request once the
    limit is crossed.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = g_config.server.max_body_size
        path = scope.get("path", "")
        too_large = f"Request body exceeds {limit} bytes."

        length = Headers(scope=scope).get("content-length")
        if length is not None:
            try:
                declared = int(length)
            except ValueError:
                response = error_response(
                    status.HTTP_400_BAD_REQUEST, "Invalid Content-Length header."
                )
                await response(scope, receive, send)
                return
            if declared > limit:
                logger.warning(f"Rejected {declared} byte body on {path}")
                await error_response(413, too_large)(scope, receive, send)
                return

        received = 0

        async def limited_receive() -> ASGIMessage:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    logger.warning(f"Rejected streamed body over {limit} bytes on {path}")
                    raise HTTPException(413, detail=too_large)
            return message

        await self.app(scope, limited_receive, send)


def get_session_id(
    x_session_id: str | None = Header(default=None, alias="X-Session-ID"),
) -> str:
    """Resolve the conversation session for a request; blank means the shared default."""
    if x_session_id is None or not x_session_id.strip():
        return DEFAULT_SESSION_ID

    session_id = x_session_id.strip()
    if len(session_id) > MAX_SESSION_ID_LENGTH:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail=f"Session id longer than {MAX_SESSION_ID_LENGTH} characters.",
        )
    return session_id


def add_exception_handler(app: FastAPI):
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(BackendError, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)


def add_body_limit_middleware(app: FastAPI):
    app.add_middleware(BodySizeLimitMiddleware)


def add_cors_middleware(app: FastAPI):
    if g_config.cors.enabled:
        cors = g_config.cors
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors.allow_origins,
            allow_credentials=cors.allow_credentials,
            allow_methods=cors.allow_methods,
            allow_headers=cors.allow_headers,
        )
