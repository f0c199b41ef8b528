"""
Main FastAPI application for the crawler code runner.

Fetches a caller-supplied URL (with SSRF protection) and runs a
caller-supplied Python callable against the response body in a sandbox.
"""
import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger as l
from starlette.exceptions import HTTPException as StarletteHTTPException

from code_runner import meta_config
from code_runner.fastapis import router
from code_runner.models import (
    UNEXPECTED_ERROR_DESCRIPTION,
    ClassifiedError,
    ErrorEnvelope,
    ErrorKind,
    ErrorStage,
    FailureCause,
    GuardedResolver,
    classify,
)
from code_runner.sandbox import start_process_server
from code_runner.utils.aiohttp_client_session_mixin import AioHttpClientSessionClassVarMixin
from code_runner.utils.cors import AllowListCORSMiddleware
from code_runner.utils.http_exceptions import ClassifiedHTTPException, kind_for_status


# --- Application Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    l.info("Code runner is starting up...")
    # Every connect-time DNS answer is re-checked against the address denylist.
    await AioHttpClientSessionClassVarMixin.initialize_http_session(resolver=GuardedResolver())
    # Sandbox children fork from a preloaded server; start it before the first run.
    await asyncio.to_thread(start_process_server)
    yield
    l.info("Code runner is shutting down...")
    await AioHttpClientSessionClassVarMixin.close_http_session()


# --- FastAPI Application Instance ---
app = FastAPI(title="Crawler Code Runner", lifespan=lifespan)


@app.middleware("http")
async def answer_options_and_head(request: Request, call_next):
    l.info(
        f"Request received: {request.method} {request.url.path} "
        f"origin={request.headers.get('origin', '')}"
    )
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    if request.method == "HEAD":
        return Response(status_code=status.HTTP_200_OK, media_type="application/json")
    return await call_next(request)


# Added last, so CORS is the outermost layer.
app.add_middleware(
    AllowListCORSMiddleware,
    allow_origins=meta_config.CORS_ALLOWED_ORIGINS,
    allow_credentials=meta_config.CORS_ALLOWED_ORIGINS != ['*'],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# --- Error Envelope ---
def _envelope_response(
    status_code: int,
    kind: ErrorKind,
    description: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    envelope = ErrorEnvelope(error=kind, error_description=description)
    return JSONResponse(status_code=status_code, content=envelope.model_dump(mode='json'), headers=headers)


def _classified_response(error: ClassifiedError, headers: dict[str, str] | None = None) -> JSONResponse:
    return _envelope_response(error.status_code, error.kind, error.message, headers=headers)


def describe_validation_error(errors: list[dict]) -> tuple[FailureCause, str]:
    """Turns the first request validation error into a client-facing message."""
    if not errors:
        return FailureCause.MALFORMED_REQUEST, "Request body must be valid JSON"

    error = errors[0]
    error_type = error.get("type", "")
    loc = tuple(error.get("loc", ()))
    field = loc[1] if len(loc) > 1 and loc[0] == "body" else (loc[-1] if loc else "body")

    if error_type == "json_invalid":
        return FailureCause.MALFORMED_REQUEST, "Request body must be valid JSON"
    if loc == ("body",):
        if error_type == "missing":
            return FailureCause.MALFORMED_REQUEST, "Request body must be valid JSON"
        return FailureCause.MALFORMED_REQUEST, "Request body must be a JSON object"
    if field == "type":
        return FailureCause.MALFORMED_REQUEST, "Field 'type' must be 'test' or 'run'"
    if field == "code" and error_type == "string_too_long":
        return (
            FailureCause.CODE_TOO_LONG,
            f"Field 'code' exceeds maximum length of {meta_config.MAX_CODE_LENGTH} characters",
        )

    match error_type:
        case "missing" | "string_type" | "string_too_short":
            message = f"Field '{field}' is required and must be a string"
        case "extra_forbidden":
            message = f"Field '{field}' is not allowed"
        case "value_error":
            message = str(error.get("msg", "")).removeprefix("Value error, ")
        case _:
            message = f"Field '{field}': {error.get('msg', 'invalid value')}"
    return FailureCause.MALFORMED_REQUEST, message


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    cause, message = describe_validation_error(list(exc.errors()))
    return _classified_response(classify(ErrorStage.PARSE, cause, message, path=request.url.path))


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    if isinstance(exc, ClassifiedHTTPException):
        return _envelope_response(exc.status_code, exc.kind, str(exc.detail), headers=exc.headers)

    match exc.status_code:
        case status.HTTP_404_NOT_FOUND:
            error = classify(
                ErrorStage.ROUTING, FailureCause.UNKNOWN_ROUTE, "Endpoint not found",
                method=request.method, path=request.url.path,
            )
            return _classified_response(error, headers=exc.headers)
        case status.HTTP_405_METHOD_NOT_ALLOWED:
            error = classify(
                ErrorStage.ROUTING, FailureCause.METHOD_NOT_ALLOWED,
                f"Method {request.method} is not allowed for {request.url.path}",
                method=request.method, path=request.url.path,
            )
            return _classified_response(error, headers=exc.headers)
        case _:
            return _envelope_response(
                exc.status_code, kind_for_status(exc.status_code), str(exc.detail), headers=exc.headers,
            )


@app.exception_handler(Exception)
async def handle_unexpected_exceptions(request: Request, exc: Exception):
    """
    Catches all unhandled exceptions to prevent sensitive information leakage.
    """
    # Log detailed error information with full stack trace for developers
    l.exception(
        f"An unhandled exception occurred for request: {request.method} {request.url.path}"
    )
    error = classify(ErrorStage.ANYWHERE, FailureCause.UNEXPECTED, UNEXPECTED_ERROR_DESCRIPTION)
    return _classified_response(error)


# --- API Endpoints ---
app.include_router(router)
