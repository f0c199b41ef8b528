"""
Wall-clock deadline shared by every timeout mechanism of one invocation.
"""
import sys
import time
from contextlib import contextmanager
from types import FrameType
from typing import Any, Iterator

from .compiler import SANDBOX_FILENAME


class DeadlineExceeded(BaseException):
    """
    Raised inside sandboxed frames once the deadline has passed.

    Derives from BaseException so `except Exception` in sandboxed code
    cannot swallow it.
    """


class Deadline:
    def __init__(self, budget: float) -> None:
        self.budget = budget
        self.expires_at = time.monotonic() + budget
        # Sticky: stays set even if sandboxed code swallowed the interrupt.
        self.interrupted = False

    @property
    def budget_ms(self) -> int:
        return int(self.budget * 1000)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self) -> None:
        if self.expired():
            self.interrupt()

    def interrupt(self) -> None:
        self.interrupted = True
        raise DeadlineExceeded(f"Code execution timed out after {self.budget_ms}ms")


@contextmanager
def interrupt_on_deadline(deadline: Deadline) -> Iterator[None]:
    """
    Installs a trace hook on the current thread that interrupts sandboxed
    frames after `deadline`.

    Only frames compiled from sandboxed code are traced; host frames
    (asyncio, capability functions) run at full speed. C-level calls are
    not observable here.
    """
    def trace_line(frame: FrameType, event: str, arg: Any):
        deadline.check()
        return trace_line

    def trace_call(frame: FrameType, event: str, arg: Any):
        if frame.f_code.co_filename != SANDBOX_FILENAME:
            return None
        deadline.check()
        return trace_line

    previous = sys.gettrace()
    sys.settrace(trace_call)
    try:
        yield
    finally:
        sys.settrace(previous)
