"""
Code runner models package.

Request/response shapes and the domain objects of the run pipeline. The
pipeline itself lives in `code_runner.models.pipeline`, which depends on the
sandbox package and is imported directly.
"""
from .base import ModelBase
from .field_types import (
    Str64,
    Str256,
    HttpStatusCode,
    TargetUrlStr,
    SandboxCodeStr,
)
from .errors import (
    ClassifiedError,
    ErrorEnvelope,
    ErrorKind,
    ErrorStage,
    FailureCause,
    UNEXPECTED_ERROR_DESCRIPTION,
    classify,
    truncate,
)
from .target import (
    BLOCKED_NETWORKS,
    BlockedAddressError,
    GuardedResolver,
    TargetURL,
    TargetValidator,
    ValidationOutcome,
    ValidationStatus,
    is_blocked_address,
)
from .fetch import FetchOutcome, FetchStatus, TargetFetcher
from .run import RunMode, RunRequest, RunResponse
from .help import HELP, HelpEndpoint, HelpResponse
