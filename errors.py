import jwt
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Error raised where it is detected, carrying the HTTP status to answer with."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _fail(status_code: int, key: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, key: message})


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation error"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))


def register_error_handlers(app: FastAPI, show_internal_errors: bool = False) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("request.app_error", path=request.url.path, method=request.method, message=exc.message)
        return _fail(exc.status_code, "message", exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _fail(400, "message", _validation_message(exc))

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        return _fail(409, "error", "Resource already exists")

    @app.exception_handler(jwt.ExpiredSignatureError)
    async def expired_token_handler(request: Request, exc: jwt.ExpiredSignatureError):
        return _fail(401, "error", "Token expired")

    @app.exception_handler(jwt.PyJWTError)
    async def invalid_token_handler(request: Request, exc: jwt.PyJWTError):
        return _fail(401, "error", "Invalid token")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _fail(exc.status_code, "message", str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("request.unhandled_error", path=request.url.path, method=request.method)
        message = str(exc) if show_internal_errors else "Internal server error"
        return _fail(500, "error", message)
