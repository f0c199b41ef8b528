"""
HTTP exception helpers for FastAPI.

This module provides helper functions for raising HTTP exceptions that carry
an error kind, so the application exception handlers can render every failure
as the `{error, error_description}` envelope.
"""
from typing import NoReturn

from fastapi import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from code_runner.models.errors import (
    HTTP_422_UNPROCESSABLE,
    UNEXPECTED_ERROR_DESCRIPTION,
    ClassifiedError,
    ErrorKind,
)


class ClassifiedHTTPException(HTTPException):
    """HTTPException tagged with the error kind reported to the client."""
    def __init__(self, status_code: int, kind: ErrorKind, detail: str):
        self.kind = kind
        super().__init__(status_code=status_code, detail=detail)


_KIND_BY_STATUS: dict[int, ErrorKind] = {
    HTTP_400_BAD_REQUEST: ErrorKind.INVALID_REQUEST,
    HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED: ErrorKind.METHOD_NOT_ALLOWED,
    HTTP_422_UNPROCESSABLE: ErrorKind.INVALID_REQUEST,
}


def kind_for_status(status_code: int) -> ErrorKind:
    """Error kind for an HTTPException raised without one (framework routing errors)."""
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        return ErrorKind.SERVER_ERROR
    return _KIND_BY_STATUS.get(status_code, ErrorKind.INVALID_REQUEST)


def raise_classified(error: ClassifiedError) -> NoReturn:
    """Raises the HTTP exception for a classified pipeline failure."""
    raise ClassifiedHTTPException(status_code=error.status_code, kind=error.kind, detail=error.message)


def raise_internal_error(detail: str = UNEXPECTED_ERROR_DESCRIPTION) -> NoReturn:
    """Raises an HTTP 500 Internal Server Error exception."""
    raise ClassifiedHTTPException(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        kind=ErrorKind.SERVER_ERROR,
        detail=detail,
    )
