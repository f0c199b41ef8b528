"""
Run-related models.
"""
from enum import StrEnum
from typing import Any

from pydantic import field_validator
from yarl import URL

from .base import ModelBase
from .field_types import SandboxCodeStr, TargetUrlStr


class RunMode(StrEnum):
    TEST = "test"
    RUN = "run"


class RunRequest(ModelBase):
    """Request to fetch a URL and run code against its body."""
    type: RunMode
    """Echoed back in the response; both modes behave the same"""
    url: TargetUrlStr
    """URL to fetch"""
    code: SandboxCodeStr
    """Python callable source, invoked with the fetched body text"""

    @field_validator('url')
    @classmethod
    def url_must_parse(cls, value: str) -> str:
        try:
            url = URL(value)
            valid = bool(url.scheme) and (url.scheme not in ('http', 'https') or bool(url.raw_host))
        except (ValueError, TypeError):
            valid = False
        if not valid:
            raise ValueError("Field 'url' must be a valid URL")
        return value

    def target_url(self) -> URL:
        return URL(self.url)


class RunResponse(ModelBase):
    """Successful run result."""
    type: RunMode
    result: Any = None
    """JSON value returned by the code"""
