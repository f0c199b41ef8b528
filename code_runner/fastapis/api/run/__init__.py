"""
/run endpoint.
"""
from loguru import logger as l

from code_runner.fastapis.deps import PipelineDep
from code_runner.fastapis.tagged_api_router import TaggedAPIRouter
from code_runner.models import ClassifiedError, RunRequest, RunResponse
from code_runner.utils.http_exceptions import raise_classified, raise_internal_error

router = TaggedAPIRouter(prefix="/run", tag="Run code")


@router.post("", response_model=RunResponse)
async def run_code(request: RunRequest, pipeline: PipelineDep) -> RunResponse:
    """
    Fetch `url` and run `code` against the response body.

    **Request**:
    - `type`: `test` or `run` (echoed back)
    - `url`: http(s) URL; private, loopback and link-local destinations are rejected
    - `code`: a Python callable taking the body text, e.g. `lambda text: len(text)`

    **Response** (200 OK): `{type, result}` where `result` is the callable's JSON return value.

    **Errors**: `{error, error_description}` with `invalid_request` (400),
    `fetch_failed` (502), `fetch_timeout` (504), `execution_failed` (422)
    or `execution_timeout` (422).
    """
    l.debug(f"Run request: type={request.type} url={request.url}")
    result = await pipeline.run(request)

    match result:
        case RunResponse():
            return result
        case ClassifiedError():
            raise_classified(result)
        case _:
            l.error(f"Run pipeline returned unexpected result: {type(result).__name__}")
            raise_internal_error()
