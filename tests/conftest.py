import asyncio
import socket
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.abc import AbstractResolver, ResolveResult
from aiohttp.test_utils import TestServer

from code_runner.models import TargetValidator
from code_runner.sandbox import start_process_server
from code_runner.utils.aiohttp_client_session_mixin import AioHttpClientSessionClassVarMixin

PUBLIC_ADDRESS = "93.184.216.34"
TARGET_HOST = "target.test"


@pytest.fixture(scope="session", autouse=True)
def sandbox_process_server() -> None:
    """Starts the sandbox forkserver once, so its import time is not charged to a timed test."""
    start_process_server()


class StaticResolver(AbstractResolver):
    """Answers DNS queries from a fixed table; unknown names fail like NXDOMAIN."""

    def __init__(self, answers: dict[str, list[str]]) -> None:
        self.answers = answers

    async def resolve(
        self,
        host: str,
        port: int = 0,
        family: socket.AddressFamily = socket.AF_INET,
    ) -> list[ResolveResult]:
        if host not in self.answers:
            raise OSError(f"Name or service not known: {host}")
        return [
            ResolveResult(
                hostname=host,
                host=address,
                port=port,
                family=socket.AF_INET6 if ":" in address else socket.AF_INET,
                proto=0,
                flags=socket.AI_NUMERICHOST,
            )
            for address in self.answers[host]
        ]

    async def close(self) -> None:
        pass


async def _hello(request: web.Request) -> web.Response:
    return web.Response(text="hello world")


async def _async_words(request: web.Request) -> web.Response:
    return web.Response(text="async test")


async def _missing(request: web.Request) -> web.Response:
    return web.Response(status=404, text="not here")


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(2)
    return web.Response(text="too late")


async def _binary(request: web.Request) -> web.Response:
    return web.Response(body=b"ok \xff\xfe end", content_type="text/plain", charset="utf-8")


async def _redirect_relative(request: web.Request) -> web.Response:
    raise web.HTTPFound("/hello")


async def _redirect_loopback(request: web.Request) -> web.Response:
    raise web.HTTPFound(f"http://127.0.0.1:{request.url.port}/hello")


async def _redirect_loop(request: web.Request) -> web.Response:
    raise web.HTTPFound("/redirect-loop")


@pytest_asyncio.fixture
async def target_server() -> AsyncGenerator[TestServer, None]:
    app = web.Application()
    app.router.add_get("/hello", _hello)
    app.router.add_get("/async", _async_words)
    app.router.add_get("/missing", _missing)
    app.router.add_get("/slow", _slow)
    app.router.add_get("/binary", _binary)
    app.router.add_get("/redirect-relative", _redirect_relative)
    app.router.add_get("/redirect-loopback", _redirect_loopback)
    app.router.add_get("/redirect-loop", _redirect_loop)

    server = TestServer(app, host="127.0.0.1")
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def target_url(target_server: TestServer) -> Callable[[str], str]:
    def build(path: str) -> str:
        return f"http://{TARGET_HOST}:{target_server.port}{path}"
    return build


@pytest.fixture
def validator() -> TargetValidator:
    """Validator that sees the test host as a public address."""
    return TargetValidator(resolver=StaticResolver({
        TARGET_HOST: [PUBLIC_ADDRESS],
        "public.test": [PUBLIC_ADDRESS, "2606:2800:220:1:248:1893:25c8:1946"],
        "mixed.test": [PUBLIC_ADDRESS, "10.0.0.5"],
        "loopback6.test": ["::1"],
        "mapped.test": ["::ffff:127.0.0.1"],
        "metadata.test": ["169.254.169.254"],
    }))


@pytest_asyncio.fixture
async def http_session() -> AsyncGenerator[None, None]:
    """Shared fetch session whose connector sends the test host to the local target server."""
    await AioHttpClientSessionClassVarMixin.initialize_http_session(
        resolver=StaticResolver({TARGET_HOST: ["127.0.0.1"]}),
    )
    yield
    await AioHttpClientSessionClassVarMixin.close_http_session()
