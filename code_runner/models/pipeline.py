"""
Run pipeline: validate -> fetch -> execute.

Components return tagged outcomes; this module is the only place they are
turned into classified errors.
"""
from enum import StrEnum

from loguru import logger as l

from code_runner.sandbox import ExecutionResult, ExecutionResultType, ExecutionStatus, SandboxExecutor
from .errors import UNEXPECTED_ERROR_DESCRIPTION, ClassifiedError, ErrorStage, FailureCause, classify
from .fetch import FetchOutcome, FetchStatus, TargetFetcher
from .run import RunRequest, RunResponse
from .target import TargetValidator, ValidationOutcome, ValidationStatus


class PipelineStage(StrEnum):
    RECEIVED = "received"
    PARSED = "parsed"
    VALIDATED = "validated"
    FETCHED = "fetched"
    EXECUTED = "executed"
    RESPONDED = "responded"
    FAILED = "failed"


class RunPipeline:
    """
    Sequences one run request. Holds collaborators only, no request state.

    A request reaches this class already parsed: shape and code length are
    enforced by RunRequest, so an over-long snippet never triggers a fetch.
    """

    def __init__(
        self,
        validator: TargetValidator,
        fetcher: TargetFetcher,
        executor: SandboxExecutor,
    ) -> None:
        self.validator = validator
        self.fetcher = fetcher
        self.executor = executor

    async def run(self, request: RunRequest) -> RunResponse | ClassifiedError:
        stage = PipelineStage.PARSED
        url = request.target_url()
        l.debug(f"Run {request.type}: {PipelineStage.RECEIVED} -> {stage} ({url})")
        try:
            validation = await self.validator.validate(url)
            if validation.status != ValidationStatus.OK:
                return self._failed(stage, self._classify_validation(validation, str(url)))
            stage = self._advance(stage, PipelineStage.VALIDATED)

            fetched = await self.fetcher.fetch(validation.target)
            if fetched.status != FetchStatus.OK:
                return self._failed(stage, self._classify_fetch(fetched, validation.hostname))
            stage = self._advance(stage, PipelineStage.FETCHED)

            executed = await self.executor.execute(request.code, fetched.body_text)
            if executed.status != ExecutionStatus.OK:
                return self._failed(stage, self._classify_execution(executed, fetched))
            stage = self._advance(stage, PipelineStage.EXECUTED)
        except Exception:
            l.exception(f"Unexpected error in run pipeline at stage {stage} ({url})")
            return self._failed(
                stage,
                classify(ErrorStage.ANYWHERE, FailureCause.UNEXPECTED, UNEXPECTED_ERROR_DESCRIPTION, url=url),
            )

        self._advance(stage, PipelineStage.RESPONDED)
        return RunResponse(type=request.type, result=executed.value)

    @staticmethod
    def _advance(current: PipelineStage, following: PipelineStage) -> PipelineStage:
        l.debug(f"Run pipeline: {current} -> {following}")
        return following

    @staticmethod
    def _failed(current: PipelineStage, error: ClassifiedError) -> ClassifiedError:
        l.debug(f"Run pipeline: {current} -> {PipelineStage.FAILED}({error.kind})")
        return error

    @staticmethod
    def _classify_validation(validation: ValidationOutcome, url: str) -> ClassifiedError:
        match validation.status:
            case ValidationStatus.BAD_SCHEME:
                cause = FailureCause.BAD_SCHEME
            case ValidationStatus.BLOCKED_ADDRESS:
                cause = FailureCause.BLOCKED_ADDRESS
            case ValidationStatus.DNS_FAILURE:
                cause = FailureCause.DNS_FAILURE
            case _:
                cause = FailureCause.UNEXPECTED
        return classify(
            ErrorStage.VALIDATE,
            cause,
            validation.message or UNEXPECTED_ERROR_DESCRIPTION,
            url=url,
            hostname=validation.hostname,
            address=validation.offending_address,
        )

    @staticmethod
    def _classify_fetch(fetched: FetchOutcome, hostname: str | None) -> ClassifiedError:
        match fetched.status:
            case FetchStatus.TIMEOUT:
                cause = FailureCause.TIMEOUT
            case FetchStatus.BLOCKED:
                cause = FailureCause.BLOCKED_ADDRESS
            case FetchStatus.NETWORK_ERROR:
                cause = FailureCause.NETWORK_ERROR
            case _:
                cause = FailureCause.UNEXPECTED
        return classify(
            ErrorStage.FETCH,
            cause,
            fetched.message or UNEXPECTED_ERROR_DESCRIPTION,
            url=fetched.url,
            hostname=hostname,
        )

    @staticmethod
    def _classify_execution(executed: ExecutionResult, fetched: FetchOutcome) -> ClassifiedError:
        match executed.type:
            case ExecutionResultType.CODE_TOO_LONG:
                cause = FailureCause.CODE_TOO_LONG
            case ExecutionResultType.COMPILE_ERROR:
                cause = FailureCause.COMPILE_ERROR
            case ExecutionResultType.RUNTIME_ERROR:
                cause = FailureCause.RUNTIME_ERROR
            case ExecutionResultType.SERIALIZATION_ERROR:
                cause = FailureCause.SERIALIZATION_ERROR
            case ExecutionResultType.TIMEOUT_ERROR:
                cause = FailureCause.TIMEOUT
            case _:
                cause = FailureCause.UNEXPECTED
        return classify(
            ErrorStage.EXECUTE,
            cause,
            executed.message or UNEXPECTED_ERROR_DESCRIPTION,
            url=fetched.url,
            upstream_status=fetched.status_code,
        )
