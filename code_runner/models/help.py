"""
Help document served on `GET /` and `GET /help`.
"""
from .base import ModelBase
from .field_types import Str64, Str256


class HelpEndpoint(ModelBase):
    method: Str64
    path: Str256
    description: str
    body: dict[str, str] | None = None


class HelpResponse(ModelBase):
    """Static description of the service's endpoints."""
    name: str
    endpoints: list[HelpEndpoint]


SERVICE_NAME = "crawler-code-runner"

HELP = HelpResponse(
    name=SERVICE_NAME,
    endpoints=[
        HelpEndpoint(method="GET", path="/", description="Show this help"),
        HelpEndpoint(method="GET", path="/help", description="Show this help"),
        HelpEndpoint(
            method="POST",
            path="/run",
            description="Fetch a URL and run code against the response body",
            body={
                "type": "'test' | 'run'",
                "url": "string - The URL to fetch",
                "code": "string - Python callable (lambda or def / async def) invoked with the response body text",
            },
        ),
    ],
)
