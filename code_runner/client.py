"""
Async HTTP client for the code runner service.

Usage example:
    ```python
    async with CodeRunnerClient("http://127.0.0.1:8080") as client:
        response = await client.run("https://example.com/", "lambda text: len(text)")
        print(response.result)
    ```
"""
import httpx
from loguru import logger as l
from pydantic import ValidationError

from code_runner.models import ErrorEnvelope, ErrorKind, HelpResponse, RunMode, RunResponse

DEFAULT_CLIENT_TIMEOUT: float = 30.0


class CodeRunnerError(Exception):
    """Error returned by the service (or a response that could not be understood)."""
    def __init__(self, kind: ErrorKind | None, description: str, status_code: int):
        self.kind = kind
        self.description = description
        self.status_code = status_code
        self.message = f"{kind}: {description}" if kind else description
        super().__init__(self.message)


class CodeRunnerClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_CLIENT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            timeout=timeout,
            transport=transport,
            headers={'Content-Type': 'application/json'},
        )

    async def __aenter__(self) -> "CodeRunnerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def run(self, url: str, code: str, mode: RunMode = RunMode.TEST) -> RunResponse:
        """
        Fetches `url` on the service side and runs `code` against the body.

        Raises:
            CodeRunnerError: The service answered with an error envelope or an
                unexpected body.
            httpx.TransportError: The service could not be reached.
        """
        l.info(f"Running code against {url} (mode {mode})")
        response = await self._client.post('/run', json={'type': mode, 'url': url, 'code': code})
        if not response.is_success:
            raise self._error_from(response)
        try:
            return RunResponse.model_validate_json(response.content)
        except ValidationError:
            raise CodeRunnerError(None, "Unexpected response body from /run", response.status_code) from None

    async def help(self) -> HelpResponse:
        response = await self._client.get('/help')
        if not response.is_success:
            raise self._error_from(response)
        return HelpResponse.model_validate_json(response.content)

    @staticmethod
    def _error_from(response: httpx.Response) -> CodeRunnerError:
        try:
            envelope = ErrorEnvelope.model_validate_json(response.content)
        except ValidationError:
            l.warning(f"Code runner returned {response.status_code} without an error envelope")
            return CodeRunnerError(None, f"Request failed with status {response.status_code}", response.status_code)
        l.warning(f"Code runner returned {envelope.error} ({response.status_code}): {envelope.error_description}")
        return CodeRunnerError(envelope.error, envelope.error_description, response.status_code)
