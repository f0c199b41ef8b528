"""
Shared aiohttp ClientSession for outbound target fetches.

The session lives in a ClassVar: it is opened once in the application lifespan
and every fetcher instance reuses its connection pool and DNS cache.

Usage example:
    ```python
    await AioHttpClientSessionClassVarMixin.initialize_http_session(resolver=GuardedResolver())

    class Fetcher(AioHttpClientSessionClassVarMixin):
        async def head(self, url: str) -> int:
            async with self.http_session.head(url) as resp:
                return resp.status

    await AioHttpClientSessionClassVarMixin.close_http_session()
    ```
"""
from types import SimpleNamespace
from typing import ClassVar

import aiohttp
from aiohttp.abc import AbstractResolver
from loguru import logger as l


async def _on_request_end(
    session: aiohttp.ClientSession,
    ctx: SimpleNamespace,
    params: aiohttp.TraceRequestEndParams,
) -> None:
    l.debug(f"[fetch] {params.method} {params.url} -> {params.response.status}")


async def _on_request_exception(
    session: aiohttp.ClientSession,
    ctx: SimpleNamespace,
    params: aiohttp.TraceRequestExceptionParams,
) -> None:
    l.error(f"[fetch] {params.method} {params.url} failed: {type(params.exception).__name__}: {params.exception}")


def _fetch_trace_config() -> aiohttp.TraceConfig:
    trace_config = aiohttp.TraceConfig()
    trace_config.on_request_end.append(_on_request_end)
    trace_config.on_request_exception.append(_on_request_exception)
    return trace_config


class AioHttpClientSessionClassVarMixin:
    """
    Gives subclasses `http_session`, one ClientSession shared process-wide.

    `initialize_http_session()` must run inside the event loop (FastAPI
    lifespan) before the first fetch.
    """

    _http_session: ClassVar[aiohttp.ClientSession | None] = None

    @classmethod
    async def initialize_http_session(cls, resolver: AbstractResolver | None = None) -> None:
        """
        Opens the shared session.

        Args:
            resolver: Used by the connector for every connect-time lookup.
                aiohttp's default resolver when omitted.
        """
        assert cls._http_session is None or cls._http_session.closed, "HTTP session already initialized"

        # Resolver answers are cached per host; a blocked answer raises and is never cached.
        connector = aiohttp.TCPConnector(
            limit=100,
            limit_per_host=10,
            ttl_dns_cache=60,
            enable_cleanup_closed=True,
            resolver=resolver,
        )
        cls._http_session = aiohttp.ClientSession(
            connector=connector,
            # Callers pass a per-request timeout; this only caps a forgotten one.
            timeout=aiohttp.ClientTimeout(total=60),
            # Proxy variables from the environment would bypass the guarded resolver.
            trust_env=False,
            trace_configs=[_fetch_trace_config()],
        )
        l.info(f"{cls.__name__}: fetch session opened")

    @classmethod
    def get_http_session(cls) -> aiohttp.ClientSession:
        assert cls._http_session is not None and not cls._http_session.closed, (
            "HTTP session not initialized. Call "
            "`AioHttpClientSessionClassVarMixin.initialize_http_session()` in the application lifespan."
        )
        return cls._http_session

    @property
    def http_session(self) -> aiohttp.ClientSession:
        return self.__class__.get_http_session()

    @classmethod
    async def close_http_session(cls) -> None:
        assert cls._http_session is not None and not cls._http_session.closed, "HTTP session not initialized or already closed"
        await cls._http_session.close()
        cls._http_session = None
        l.info(f"{cls.__name__}: fetch session closed")
