"""
Code runner utilities.
"""
from .cors import AllowListCORSMiddleware
from .http_exceptions import (
    ClassifiedHTTPException,
    kind_for_status,
    raise_classified,
    raise_internal_error,
)
