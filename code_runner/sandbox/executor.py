"""
Sandbox executor.

Every invocation runs in its own child process forked from a preloaded
forkserver. Inside the child a single Deadline drives two mechanisms:

- the trace hook interrupts sandboxed frames (synchronous loops);
- `asyncio.wait_for` races an awaitable result (async code that never settles).

The parent waits for the child's result at most `timeout + watchdog_grace`
seconds and kills the child otherwise (code stuck inside a C-level builtin).
"""
import asyncio
import inspect
import multiprocessing
import time
from enum import StrEnum
from multiprocessing import forkserver
from multiprocessing.connection import Connection
from typing import Any, Awaitable

import orjson
from loguru import logger as l

from code_runner import meta_config
from code_runner.models.base import ModelBase
from code_runner.models.errors import truncate
from .capabilities import DEFAULT_CAPABILITIES, Capabilities
from .compiler import CodeForm, CompiledCode, SandboxCompileError, compile_function
from .deadline import Deadline, DeadlineExceeded, interrupt_on_deadline

# Children fork from a server that has already imported this module.
_PROCESS_CONTEXT = multiprocessing.get_context("forkserver")
_PROCESS_CONTEXT.set_forkserver_preload([__name__])


class ExecutionStatus(StrEnum):
    OK = "ok"
    ERROR = "error"
    TIMEOUT = "timeout"
    REJECTED = "rejected"


class ExecutionResultType(StrEnum):
    VALUE = "value"
    CODE_TOO_LONG = "code_too_long"
    COMPILE_ERROR = "compile_error"
    RUNTIME_ERROR = "runtime_error"
    SERIALIZATION_ERROR = "serialization_error"
    TIMEOUT_ERROR = "timeout_error"


class ExecutionResult(ModelBase):
    """Result from code execution."""
    status: ExecutionStatus
    type: ExecutionResultType
    value: Any = None
    """JSON-compatible return value (only for status OK)"""
    message: str | None = None


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def to_json_value(value: Any) -> Any:
    """
    Normalizes `value` to plain JSON data.

    Tuples, sets and frozensets become lists and NaN/Infinity become null.

    Raises:
        TypeError: The value (or something inside it) cannot be represented as JSON.
    """
    return orjson.loads(orjson.dumps(value, default=_json_default, option=orjson.OPT_NON_STR_KEYS))


def start_process_server() -> None:
    """Starts the sandbox forkserver now instead of on the first invocation."""
    forkserver.ensure_running()


def _timeout_result(budget_ms: int) -> ExecutionResult:
    return ExecutionResult(
        status=ExecutionStatus.TIMEOUT,
        type=ExecutionResultType.TIMEOUT_ERROR,
        message=f"Code execution timed out after {budget_ms}ms",
    )


# =============================================================================
# Child Process Side
# =============================================================================

def run_invocation(
    compiled: CompiledCode,
    body: str,
    capabilities: Capabilities,
    deadline: Deadline,
) -> ExecutionResult:
    """Runs `compiled` against `body` on the current thread. Never raises."""
    namespace: dict[str, Any] = {"__builtins__": capabilities.as_builtins()}
    try:
        with interrupt_on_deadline(deadline):
            value = _call(compiled, namespace, body, deadline)
    except DeadlineExceeded:
        return _timeout_result(deadline.budget_ms)
    except Exception as e:
        if deadline.interrupted:
            return _timeout_result(deadline.budget_ms)
        return ExecutionResult(
            status=ExecutionStatus.ERROR,
            type=ExecutionResultType.RUNTIME_ERROR,
            message=f"{type(e).__name__}: {e}",
        )

    if deadline.interrupted:
        return _timeout_result(deadline.budget_ms)

    try:
        json_value = to_json_value(value)
    except TypeError as e:
        return ExecutionResult(
            status=ExecutionStatus.ERROR,
            type=ExecutionResultType.SERIALIZATION_ERROR,
            message=f"Result is not JSON serializable: {e}",
        )
    return ExecutionResult(status=ExecutionStatus.OK, type=ExecutionResultType.VALUE, value=json_value)


def _call(compiled: CompiledCode, namespace: dict[str, Any], body: str, deadline: Deadline) -> Any:
    match compiled.form:
        case CodeForm.EXPRESSION:
            function = eval(compiled.code, namespace)
        case CodeForm.FUNCTION | CodeForm.ASYNC_FUNCTION:
            exec(compiled.code, namespace)
            function = namespace[compiled.function_name]

    if not callable(function):
        raise TypeError(f"Code must evaluate to a function, got {type(function).__name__}")

    outcome = function(body)
    if inspect.isawaitable(outcome):
        outcome = asyncio.run(_race(outcome, deadline))
    return outcome


async def _race(awaitable: Awaitable[Any], deadline: Deadline) -> Any:
    try:
        return await asyncio.wait_for(awaitable, timeout=deadline.remaining())
    except TimeoutError:
        if not deadline.expired():
            raise
        deadline.interrupt()


def _sandbox_process(
    connection: Connection,
    source: str,
    body: str,
    capabilities: Capabilities,
    timeout: float,
) -> None:
    """Child process entry point: sends back one orjson-encoded ExecutionResult."""
    result = run_invocation(compile_function(source), body, capabilities, Deadline(timeout))
    connection.send_bytes(orjson.dumps(result.model_dump(mode='json')))
    connection.close()


# =============================================================================
# Server Side
# =============================================================================

def _receive(connection: Connection, timeout: float) -> bytes | None:
    """Blocks until the child reports. None on timeout, b'' when the child died silently."""
    if not connection.poll(timeout):
        return None
    try:
        return connection.recv_bytes()
    except EOFError:
        return b""


class SandboxExecutor:
    """
    Compiles caller code and invokes it against a fetched body.

    The executor holds no per-request state, so one instance serves every request.
    Capabilities are pickled into the child process, so every member must be
    importable by reference.
    """

    def __init__(
        self,
        capabilities: Capabilities = DEFAULT_CAPABILITIES,
        timeout: float = meta_config.EXECUTION_TIMEOUT,
        max_code_length: int = meta_config.MAX_CODE_LENGTH,
        watchdog_grace: float = meta_config.EXECUTION_WATCHDOG_GRACE,
    ) -> None:
        self.capabilities = capabilities
        self.timeout = timeout
        self.max_code_length = max_code_length
        self.watchdog_grace = watchdog_grace

    async def execute(self, source: str, body: str) -> ExecutionResult:
        """Checks length, compiles and invokes `source` with `body`."""
        if len(source) > self.max_code_length:
            return ExecutionResult(
                status=ExecutionStatus.REJECTED,
                type=ExecutionResultType.CODE_TOO_LONG,
                message=f"Field 'code' exceeds maximum length of {self.max_code_length} characters",
            )

        try:
            compiled = compile_function(source)
        except SandboxCompileError as e:
            l.warning(f"Code rejected at compile time: {e.message}")
            return ExecutionResult(
                status=ExecutionStatus.ERROR,
                type=ExecutionResultType.COMPILE_ERROR,
                message=e.message,
            )

        limit = meta_config.CODE_PREVIEW_LENGTH
        code_preview = (source[:limit - 3] + '...' if len(source) > limit else source).replace('\n', ' ')
        l.info(f"Preparing to execute code: {code_preview.strip()}")
        return await self.invoke(compiled, body)

    async def invoke(self, compiled: CompiledCode, body: str) -> ExecutionResult:
        """
        Runs `compiled` against `body` in a fresh child process.

        Returns within `timeout + watchdog_grace` seconds of the child starting,
        whatever the code does; a child still running by then is killed.
        """
        start_time = time.monotonic()
        receiver, sender = _PROCESS_CONTEXT.Pipe(duplex=False)
        process = _PROCESS_CONTEXT.Process(
            target=_sandbox_process,
            args=(sender, compiled.source, body, self.capabilities, self.timeout),
            name="sandbox-invocation",
            daemon=True,
        )
        try:
            try:
                await asyncio.to_thread(process.start)
            finally:
                sender.close()
            payload = await asyncio.to_thread(_receive, receiver, self.timeout + self.watchdog_grace)
        finally:
            if process.is_alive():
                process.kill()
            if process.pid is not None:
                await asyncio.to_thread(process.join)
                process.close()
            receiver.close()

        match payload:
            case None:
                l.error(f"Sandbox process still running {self.watchdog_grace}s past its deadline; killed it")
                result = _timeout_result(int(self.timeout * 1000))
            case b"":
                l.error("Sandbox process exited without reporting a result")
                result = ExecutionResult(
                    status=ExecutionStatus.ERROR,
                    type=ExecutionResultType.RUNTIME_ERROR,
                    message="RuntimeError: sandbox process exited unexpectedly",
                )
            case _:
                result = ExecutionResult.model_validate(orjson.loads(payload))

        if result.type == ExecutionResultType.RUNTIME_ERROR:
            l.warning(
                f"Sandboxed code raised "
                f"{truncate(result.message or '', meta_config.LOG_MESSAGE_PREVIEW_LENGTH)}"
            )
        duration_secs = time.monotonic() - start_time
        l.info(f"Code execution completed. Status: {result.status.upper()}, Duration: {duration_secs:.2f}s")
        return result
