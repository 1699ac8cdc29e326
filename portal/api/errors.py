import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from portal.exceptions import PortalError

logger = logging.getLogger("portal.api")


def _get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _error_response(request: Request, status_code: int, message: str, error=None) -> JSONResponse:
    request_id = _get_request_id(request)
    payload: dict = {"success": False, "message": message}
    if error is not None:
        payload["error"] = jsonable_encoder(error)
    if request_id:
        payload["request_id"] = request_id

    response = JSONResponse(status_code=status_code, content=payload)
    if request_id:
        response.headers["X-Request-ID"] = request_id
    return response


def register_exception_handlers(app: FastAPI, *, cors_headers: dict[str, str] | None = None) -> None:
    """Install the error envelope handlers.

    The catch-all handler runs in the outermost server-error middleware, past
    the CORS middleware, so it sets ``cors_headers`` itself.
    """

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        return _error_response(request, exc.status_code, exc.message, exc.error)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(request, exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(request, 400, "Request body is missing or invalid", exc.errors())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_exception request_id=%s", _get_request_id(request))
        # The raw message is echoed to the caller; this is an internal tool.
        response = _error_response(request, 500, "Internal server error", str(exc))
        response.headers.update(cors_headers or {})
        return response
