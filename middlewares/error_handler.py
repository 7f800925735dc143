import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from schemas.common import ErrorDetail, ErrorResponse
from services.errors import SchoolPortalError
from services.school_client import SchoolAPIError

logger = logging.getLogger(__name__)


def _error_response(status_code: int, code: str, message: str, details=None, headers=None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def add_error_handlers(app: FastAPI):
    # ✅ 서비스 레이어 예외: 예외 클래스에 상태코드/코드가 붙어 있음
    @app.exception_handler(SchoolPortalError)
    async def school_portal_error_handler(request: Request, exc: SchoolPortalError):
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        return _error_response(exc.status_code, exc.code, exc.message, exc.details)

    # ✅ 원격 백엔드 오류: 4xx 는 그대로, 5xx/네트워크는 502
    @app.exception_handler(SchoolAPIError)
    async def school_api_error_handler(request: Request, exc: SchoolAPIError):
        status_code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 502
        logger.warning(
            "%s %s -> remote error (%s): %s",
            request.method, request.url.path, exc.status_code, exc.message,
        )
        return _error_response(status_code, "REMOTE_ERROR", exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(
            exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail), headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(e.get("loc", [])), "msg": e.get("msg", "")}
            for e in exc.errors()
        ]
        return _error_response(422, "VALIDATION_ERROR", "Validation failed. Please check your input.", errors)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled error: %s %s", request.method, request.url.path)
        return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred.")
