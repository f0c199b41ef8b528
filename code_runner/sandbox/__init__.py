"""
Sandboxed execution of caller-supplied Python callables.
"""
from .capabilities import DEFAULT_CAPABILITIES, Capabilities, FrozenNamespace
from .compiler import BLOCKED_ATTRIBUTES, SANDBOX_FILENAME, CodeForm, CompiledCode, SandboxCompileError, compile_function
from .deadline import Deadline, DeadlineExceeded, interrupt_on_deadline
from .executor import (
    ExecutionResult,
    ExecutionResultType,
    ExecutionStatus,
    SandboxExecutor,
    run_invocation,
    start_process_server,
    to_json_value,
)
