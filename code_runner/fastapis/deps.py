"""
Global FastAPI dependencies.
"""
from typing import Annotated

from fastapi import Depends

from code_runner.models import TargetFetcher, TargetValidator
from code_runner.models.pipeline import RunPipeline
from code_runner.sandbox import SandboxExecutor


async def get_pipeline() -> RunPipeline:
    """Dependency to build the run pipeline for one request."""
    validator = TargetValidator()
    return RunPipeline(
        validator=validator,
        fetcher=TargetFetcher(validator),
        executor=SandboxExecutor(),
    )


PipelineDep = Annotated[RunPipeline, Depends(get_pipeline)]
