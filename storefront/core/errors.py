"""Application error taxonomy and the handlers that render it as JSON.

Every failure leaves the API as ``{"error": <message>}`` (plus a ``code`` for
domain errors); nothing internal is echoed back to the client.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(AppError):
    status_code = 400
    code = 'VALIDATION_ERROR'

class Unauthenticated(AppError):
    status_code = 401
    code = 'UNAUTHENTICATED'

class Forbidden(AppError):
    status_code = 403
    code = 'FORBIDDEN'

class NotFound(AppError):
    status_code = 404
    code = 'NOT_FOUND'

class Conflict(AppError):
    status_code = 409
    code = 'CONFLICT'

class InvalidState(AppError):
    status_code = 400
    code = 'INVALID_STATE'

class EmptyCart(AppError):
    status_code = 400
    code = 'EMPTY_CART'

class InternalError(AppError):
    status_code = 500
    code = 'INTERNAL_ERROR'


def _describe(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = '.'.join(str(p) for p in err.get('loc', ()) if p != 'body')
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get('msg', 'Invalid input'))
    return '; '.join(parts) or 'Invalid input'


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content={'error': exc.message, 'code': exc.code})

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={'error': str(exc.detail)}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={'error': _describe(exc), 'code': 'VALIDATION_ERROR'})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        return JSONResponse(status_code=500, content={'error': 'Internal server error'})
