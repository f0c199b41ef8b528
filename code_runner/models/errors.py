"""
Error taxonomy and classifier.

Every failure in the run pipeline is described as a (stage, cause) pair and
mapped through a single table to one of eight error kinds with an HTTP status.
Only `{error, error_description}` crosses the response boundary.
"""
from enum import StrEnum
from http import HTTPStatus

from loguru import logger as l
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_504_GATEWAY_TIMEOUT,
)

from code_runner import meta_config
from .base import ModelBase
from .field_types import HttpStatusCode

# Starlette renamed the 422 constant across releases.
HTTP_422_UNPROCESSABLE = int(HTTPStatus.UNPROCESSABLE_ENTITY)


class ErrorKind(StrEnum):
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    FETCH_FAILED = "fetch_failed"
    FETCH_TIMEOUT = "fetch_timeout"
    EXECUTION_FAILED = "execution_failed"
    EXECUTION_TIMEOUT = "execution_timeout"
    SERVER_ERROR = "server_error"


class ErrorStage(StrEnum):
    PARSE = "parse"
    VALIDATE = "validate"
    FETCH = "fetch"
    EXECUTE = "execute"
    ROUTING = "routing"
    ANYWHERE = "anywhere"


class FailureCause(StrEnum):
    MALFORMED_REQUEST = "malformed_request"
    CODE_TOO_LONG = "code_too_long"
    BAD_SCHEME = "bad_scheme"
    BLOCKED_ADDRESS = "blocked_address"
    DNS_FAILURE = "dns_failure"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    COMPILE_ERROR = "compile_error"
    RUNTIME_ERROR = "runtime_error"
    SERIALIZATION_ERROR = "serialization_error"
    UNKNOWN_ROUTE = "unknown_route"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    UNEXPECTED = "unexpected"


_CLASSIFICATION: dict[tuple[ErrorStage, FailureCause], tuple[ErrorKind, int]] = {
    (ErrorStage.PARSE, FailureCause.MALFORMED_REQUEST): (ErrorKind.INVALID_REQUEST, HTTP_400_BAD_REQUEST),
    (ErrorStage.PARSE, FailureCause.CODE_TOO_LONG): (ErrorKind.INVALID_REQUEST, HTTP_400_BAD_REQUEST),
    (ErrorStage.VALIDATE, FailureCause.BAD_SCHEME): (ErrorKind.INVALID_REQUEST, HTTP_400_BAD_REQUEST),
    (ErrorStage.VALIDATE, FailureCause.BLOCKED_ADDRESS): (ErrorKind.INVALID_REQUEST, HTTP_400_BAD_REQUEST),
    (ErrorStage.VALIDATE, FailureCause.DNS_FAILURE): (ErrorKind.FETCH_FAILED, HTTP_502_BAD_GATEWAY),
    (ErrorStage.FETCH, FailureCause.TIMEOUT): (ErrorKind.FETCH_TIMEOUT, HTTP_504_GATEWAY_TIMEOUT),
    (ErrorStage.FETCH, FailureCause.NETWORK_ERROR): (ErrorKind.FETCH_FAILED, HTTP_502_BAD_GATEWAY),
    (ErrorStage.FETCH, FailureCause.BLOCKED_ADDRESS): (ErrorKind.INVALID_REQUEST, HTTP_400_BAD_REQUEST),
    (ErrorStage.EXECUTE, FailureCause.CODE_TOO_LONG): (ErrorKind.INVALID_REQUEST, HTTP_400_BAD_REQUEST),
    (ErrorStage.EXECUTE, FailureCause.COMPILE_ERROR): (ErrorKind.EXECUTION_FAILED, HTTP_422_UNPROCESSABLE),
    (ErrorStage.EXECUTE, FailureCause.RUNTIME_ERROR): (ErrorKind.EXECUTION_FAILED, HTTP_422_UNPROCESSABLE),
    (ErrorStage.EXECUTE, FailureCause.SERIALIZATION_ERROR): (ErrorKind.EXECUTION_FAILED, HTTP_422_UNPROCESSABLE),
    (ErrorStage.EXECUTE, FailureCause.TIMEOUT): (ErrorKind.EXECUTION_TIMEOUT, HTTP_422_UNPROCESSABLE),
    (ErrorStage.ROUTING, FailureCause.UNKNOWN_ROUTE): (ErrorKind.NOT_FOUND, HTTP_404_NOT_FOUND),
    (ErrorStage.ROUTING, FailureCause.METHOD_NOT_ALLOWED): (ErrorKind.METHOD_NOT_ALLOWED, HTTP_405_METHOD_NOT_ALLOWED),
    (ErrorStage.ANYWHERE, FailureCause.UNEXPECTED): (ErrorKind.SERVER_ERROR, HTTP_500_INTERNAL_SERVER_ERROR),
}

_FALLBACK: tuple[ErrorKind, int] = (ErrorKind.SERVER_ERROR, HTTP_500_INTERNAL_SERVER_ERROR)

UNEXPECTED_ERROR_DESCRIPTION = "An unexpected error occurred"


class ErrorEnvelope(ModelBase):
    """Error response body."""
    error: ErrorKind
    """Machine-readable error kind"""
    error_description: str
    """Human-readable, pre-truncated description"""


class ClassifiedError(ModelBase):
    """A failure mapped to its error kind and HTTP status."""
    stage: ErrorStage
    cause: FailureCause
    kind: ErrorKind
    status_code: HttpStatusCode
    message: str

    def to_envelope(self) -> ErrorEnvelope:
        return ErrorEnvelope(error=self.kind, error_description=self.message)


def truncate(text: str, limit: int) -> str:
    """Shortens `text` to at most `limit` characters, marking the cut with '...'."""
    if len(text) <= limit:
        return text
    return text[:max(0, limit - 3)] + '...'


def classify(
    stage: ErrorStage,
    cause: FailureCause,
    message: str,
    **context: object,
) -> ClassifiedError:
    """
    Maps a (stage, cause) failure to its error kind and status and logs it.

    Pairs missing from the table are reported as `server_error` so the mapping
    stays total. `context` (hostname, url, upstream status, ...) only goes to
    the log.
    """
    kind, status_code = _CLASSIFICATION.get((stage, cause), _FALLBACK)
    description = truncate(message, meta_config.MAX_ERROR_DESCRIPTION_LENGTH)

    details = ", ".join(f"{key}={value}" for key, value in context.items() if value is not None)
    log_line = (
        f"Classified {stage}/{cause} as {kind} ({status_code}): "
        f"{truncate(message, meta_config.LOG_MESSAGE_PREVIEW_LENGTH)}"
        + (f" [{details}]" if details else "")
    )
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        l.error(log_line)
    else:
        l.warning(log_line)

    return ClassifiedError(
        stage=stage,
        cause=cause,
        kind=kind,
        status_code=status_code,
        message=description,
    )
