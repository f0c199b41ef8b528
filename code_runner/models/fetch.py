"""
Bounded fetch of a validated target URL.
"""
import time
from enum import StrEnum
from typing import ClassVar

import aiohttp
from loguru import logger as l
from yarl import URL

from code_runner import meta_config
from code_runner.utils.aiohttp_client_session_mixin import AioHttpClientSessionClassVarMixin
from .base import ModelBase
from .target import BlockedAddressError, TargetURL, TargetValidator, ValidationStatus


class FetchStatus(StrEnum):
    OK = "ok"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    BLOCKED = "blocked"


class FetchOutcome(ModelBase):
    """Result of fetching a target. Non-2xx responses still count as OK."""
    status: FetchStatus
    url: str
    """Final URL after redirects"""
    body_text: str | None = None
    status_code: int | None = None
    """Upstream status, passed through as-is"""
    message: str | None = None


class TargetFetcher(AioHttpClientSessionClassVarMixin):
    """
    Fetches a target's body as text within a fixed wall-clock budget.

    Redirects are followed by hand so every hop goes through the target
    validator before it is requested. All hops share one budget.
    Inherits AioHttpClientSessionClassVarMixin for shared HTTP session.
    """
    REDIRECT_STATUSES: ClassVar[frozenset[int]] = frozenset({301, 302, 303, 307, 308})

    def __init__(
        self,
        validator: TargetValidator,
        timeout: float = meta_config.FETCH_TIMEOUT,
        max_redirects: int = meta_config.MAX_REDIRECTS,
    ) -> None:
        self._validator = validator
        self.timeout = timeout
        self.max_redirects = max_redirects

    async def fetch(self, target: TargetURL) -> FetchOutcome:
        url = URL(target.url)
        timeout_ms = int(self.timeout * 1000)
        deadline = time.monotonic() + self.timeout
        l.info(f"Fetching target URL: {url}")

        try:
            for _ in range(self.max_redirects + 1):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError

                async with self.http_session.get(
                    url,
                    allow_redirects=False,
                    timeout=aiohttp.ClientTimeout(total=remaining),
                ) as response:
                    location = response.headers.get("Location")
                    if response.status in self.REDIRECT_STATUSES and location:
                        next_url = url.join(URL(location))
                        l.info(f"Target {url} redirected ({response.status}) to {next_url}")
                        rejected = await self._check_redirect(next_url, target.url)
                        if rejected is not None:
                            return rejected
                        url = next_url
                        continue

                    body_text = await response.text(errors="replace")
                    l.info(
                        f"Target URL fetched: {url} status={response.status} "
                        f"contentLength={len(body_text)}"
                    )
                    return FetchOutcome(
                        status=FetchStatus.OK,
                        url=str(url),
                        body_text=body_text,
                        status_code=response.status,
                    )
        except TimeoutError:
            l.error(f"Fetch timed out: {url} (timeout {timeout_ms}ms)")
            return FetchOutcome(
                status=FetchStatus.TIMEOUT,
                url=str(url),
                message=f"Fetch timed out after {timeout_ms}ms for URL: {url}",
            )
        except BlockedAddressError as e:
            return FetchOutcome(status=FetchStatus.BLOCKED, url=str(url), message=e.message)
        except (aiohttp.ClientError, ValueError) as e:
            l.error(f"Failed to fetch target URL {url}: {type(e).__name__}: {e}")
            return FetchOutcome(
                status=FetchStatus.NETWORK_ERROR,
                url=str(url),
                message=f"Failed to fetch URL: {url}",
            )

        l.error(f"Too many redirects fetching {target.url} (limit {self.max_redirects})")
        return FetchOutcome(
            status=FetchStatus.NETWORK_ERROR,
            url=str(url),
            message=f"Failed to fetch URL: {target.url} (too many redirects)",
        )

    async def _check_redirect(self, next_url: URL, original_url: str) -> FetchOutcome | None:
        """Validates a redirect hop; returns the failed outcome or None to follow it."""
        validation = await self._validator.validate(next_url)
        match validation.status:
            case ValidationStatus.OK:
                return None
            case ValidationStatus.DNS_FAILURE:
                return FetchOutcome(
                    status=FetchStatus.NETWORK_ERROR,
                    url=str(next_url),
                    message=f"Failed to fetch URL: {original_url} ({validation.message})",
                )
            case _:
                return FetchOutcome(
                    status=FetchStatus.BLOCKED,
                    url=str(next_url),
                    message=f"Redirect rejected: {validation.message}",
                )
