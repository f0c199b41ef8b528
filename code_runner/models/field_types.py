"""
Common type aliases for the code runner.

This module provides reusable type aliases with validation constraints.
Uses Field() for all constraints.
"""
from typing import Annotated, TypeAlias

from pydantic import Field

from code_runner import meta_config


# =============================================================================
# String Length Constraints
# =============================================================================

Str64: TypeAlias = Annotated[str, Field(max_length=64)]
Str256: TypeAlias = Annotated[str, Field(max_length=256)]


# =============================================================================
# Numeric Constraints
# =============================================================================

HttpStatusCode: TypeAlias = Annotated[int, Field(ge=100, le=599)]


# =============================================================================
# Request Constraints
# =============================================================================

TargetUrlStr: TypeAlias = Annotated[str, Field(min_length=1, max_length=2048)]
"""
Absolute http(s) URL of the page to fetch.
Scheme and destination are checked later by the target validator.
"""

SandboxCodeStr: TypeAlias = Annotated[
    str,
    Field(min_length=1, max_length=meta_config.MAX_CODE_LENGTH),
]
"""
Python source for the sandboxed callable: one expression evaluating to a
callable (e.g. `lambda text: len(text)`) or one `def` / `async def`.
"""
