"""
Error taxonomy for the HTTP layer.

Endpoints raise ``ApiError`` with an ``ErrorKind``; the handlers registered
here map each kind to a status code exactly once and render every failure as
an ``application/problem+json`` document.
"""
import enum
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

FieldErrors = dict[str, list[str]]


class ErrorKind(enum.Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
}

_TITLES: dict[int, str] = {
    400: "One or more validation errors occurred.",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "An error occurred while processing your request.",
}


class ApiError(Exception):
    def __init__(
        self,
        kind: ErrorKind,
        detail: str | None = None,
        *,
        title: str | None = None,
        errors: FieldErrors | None = None,
    ):
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail
        self.title = title
        self.errors = errors

    @property
    def status_code(self) -> int:
        return _STATUS[self.kind]

    @classmethod
    def validation(cls, errors: FieldErrors) -> "ApiError":
        return cls(ErrorKind.VALIDATION, errors=errors)

    @classmethod
    def field(cls, field: str, message: str) -> "ApiError":
        return cls(ErrorKind.VALIDATION, errors={field: [message]})


def problem_response(
    status_code: int,
    *,
    title: str | None = None,
    detail: str | None = None,
    errors: FieldErrors | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict = {
        "type": f"https://httpstatuses.io/{status_code}",
        "title": title or _TITLES.get(status_code, "Error"),
        "status": status_code,
    }
    if detail:
        body["detail"] = detail
    if errors:
        body["errors"] = errors
    return JSONResponse(body, status_code=status_code, media_type="application/problem+json", headers=headers)


# ─── Handlers ──────────────────────────────────────────────────────────────────

async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind is ErrorKind.UNAUTHORIZED else None
    return problem_response(
        exc.status_code,
        title=exc.title,
        detail=exc.detail,
        errors=exc.errors,
        headers=headers,
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: FieldErrors = {}
    for err in exc.errors():
        loc = [
            part for part in err.get("loc", ())
            if isinstance(part, str) and part not in ("body", "query", "path")
        ]
        key = loc[-1] if loc else "request"
        errors.setdefault(key, []).append(err.get("msg", "Invalid value."))
    return problem_response(400, errors=errors)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else None
    return problem_response(exc.status_code, detail=detail, headers=getattr(exc, "headers", None))


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return problem_response(500)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
