from typing import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from code_runner.client import CodeRunnerClient, CodeRunnerError
from code_runner.fastapis.deps import get_pipeline
from code_runner.main import app
from code_runner.models import ErrorKind, ErrorStage, FailureCause, RunMode, RunResponse, classify


@pytest.fixture
def stub_pipeline() -> Generator[MagicMock, None, None]:
    pipeline = MagicMock()
    pipeline.run = AsyncMock()
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield pipeline
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def runner(stub_pipeline: MagicMock) -> AsyncGenerator[CodeRunnerClient, None]:
    async with CodeRunnerClient("http://testserver/", transport=httpx.ASGITransport(app=app)) as client:
        yield client


@pytest.mark.asyncio
async def test_run_returns_response(runner: CodeRunnerClient, stub_pipeline: MagicMock) -> None:
    stub_pipeline.run.return_value = RunResponse(type=RunMode.RUN, result={"count": 3})

    response = await runner.run("http://public.test/", "lambda text: {'count': 3}", mode=RunMode.RUN)

    assert response.type == RunMode.RUN
    assert response.result == {"count": 3}
    request = stub_pipeline.run.await_args.args[0]
    assert request.url == "http://public.test/"
    assert request.type == RunMode.RUN


@pytest.mark.asyncio
async def test_run_raises_error_envelope(runner: CodeRunnerClient, stub_pipeline: MagicMock) -> None:
    stub_pipeline.run.return_value = classify(ErrorStage.FETCH, FailureCause.TIMEOUT, "Fetch timed out")

    with pytest.raises(CodeRunnerError) as exc_info:
        await runner.run("http://public.test/", "lambda text: text")

    assert exc_info.value.kind == ErrorKind.FETCH_TIMEOUT
    assert exc_info.value.status_code == 504
    assert exc_info.value.message == "fetch_timeout: Fetch timed out"


@pytest.mark.asyncio
async def test_help(runner: CodeRunnerClient) -> None:
    document = await runner.help()

    assert document.name == "crawler-code-runner"
    assert any(endpoint.path == "/run" for endpoint in document.endpoints)


@pytest.mark.asyncio
async def test_non_envelope_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(502, text="Bad Gateway"))

    async with CodeRunnerClient("http://runner.test", transport=transport) as client:
        with pytest.raises(CodeRunnerError) as exc_info:
            await client.run("http://public.test/", "lambda text: text")

    assert exc_info.value.kind is None
    assert exc_info.value.status_code == 502
