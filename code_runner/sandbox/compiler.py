"""
Compilation and static screening of sandboxed code.

Accepted forms are a single expression evaluating to a callable
(`lambda text: text.upper()`) or a single `def` / `async def`.
"""
import ast
from dataclasses import dataclass
from enum import StrEnum
from types import CodeType
from typing import Final

SANDBOX_FILENAME: Final[str] = "<sandbox>"
"""Filename of every code object compiled here; the deadline tracer keys on it"""

BLOCKED_ATTRIBUTES: Final[frozenset[str]] = frozenset({
    # string formatting reaches attributes through the format mini-language
    "format", "format_map",
    # generators / coroutines / async generators
    "gi_frame", "gi_code", "gi_yieldfrom", "gi_running", "gi_suspended",
    "cr_frame", "cr_code", "cr_await", "cr_origin", "cr_running", "cr_suspended",
    "ag_frame", "ag_code", "ag_await", "ag_running",
    # frames
    "f_back", "f_builtins", "f_code", "f_globals", "f_locals", "f_trace",
    # tracebacks
    "tb_frame", "tb_next",
    # code objects
    "co_code", "co_consts", "co_names",
    "mro",
})


class SandboxCompileError(Exception):
    """Raised when code cannot be parsed or fails screening."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class CodeForm(StrEnum):
    EXPRESSION = "expression"
    FUNCTION = "function"
    ASYNC_FUNCTION = "async_function"


@dataclass(frozen=True, slots=True)
class CompiledCode:
    """Code object ready to be loaded into a sandbox namespace."""
    source: str
    code: CodeType
    form: CodeForm
    function_name: str | None = None


def _reject(node: ast.AST, reason: str) -> SandboxCompileError:
    lineno = getattr(node, "lineno", None)
    where = f" (line {lineno})" if lineno is not None else ""
    return SandboxCompileError(f"SyntaxError: {reason}{where}")


def _check_attribute(node: ast.AST, attr: str) -> None:
    if attr.startswith("_") or attr in BLOCKED_ATTRIBUTES:
        raise _reject(node, f"access to attribute '{attr}' is not allowed")


def _screen(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        match node:
            case ast.Import() | ast.ImportFrom():
                raise _reject(node, "import statements are not allowed")
            case ast.Global() | ast.Nonlocal():
                raise _reject(node, "global and nonlocal declarations are not allowed")
            case ast.ClassDef():
                raise _reject(node, "class definitions are not allowed")
            case ast.ExceptHandler(type=None):
                raise _reject(node, "bare 'except:' is not allowed")
            case ast.Name(id=name) if name.startswith("__"):
                raise _reject(node, f"name '{name}' is not allowed")
            case ast.arg(arg=name) if name.startswith("__"):
                raise _reject(node, f"name '{name}' is not allowed")
            case ast.FunctionDef(name=name) | ast.AsyncFunctionDef(name=name) if name.startswith("__"):
                raise _reject(node, f"name '{name}' is not allowed")
            case ast.Attribute(attr=attr):
                _check_attribute(node, attr)
            case ast.MatchClass(kwd_attrs=attrs):
                for attr in attrs:
                    _check_attribute(node, attr)


def compile_function(source: str) -> CompiledCode:
    """
    Parses, screens and compiles `source`.

    Raises:
        SandboxCompileError: syntax errors, wrong shape or a screening violation.
            The message always starts with `SyntaxError: `.
    """
    try:
        module = ast.parse(source, filename=SANDBOX_FILENAME, mode="exec")
    except (SyntaxError, ValueError) as e:
        raise SandboxCompileError(f"SyntaxError: {e}") from None
    except RecursionError:
        raise SandboxCompileError("SyntaxError: code is nested too deeply") from None

    if len(module.body) != 1:
        raise SandboxCompileError(
            "SyntaxError: code must be a single expression or a single function definition"
        )

    statement = module.body[0]
    function_name = None
    match statement:
        case ast.Expr(value=value):
            form = CodeForm.EXPRESSION
            tree: ast.AST = ast.Expression(body=value)
            mode = "eval"
        case ast.FunctionDef(name=name):
            form, function_name, tree, mode = CodeForm.FUNCTION, name, module, "exec"
        case ast.AsyncFunctionDef(name=name):
            form, function_name, tree, mode = CodeForm.ASYNC_FUNCTION, name, module, "exec"
        case _:
            raise _reject(statement, "code must be a single expression or a single function definition")

    _screen(tree)

    try:
        code = compile(tree, SANDBOX_FILENAME, mode)
    except SyntaxError as e:
        raise SandboxCompileError(f"SyntaxError: {e}") from None
    except RecursionError:
        raise SandboxCompileError("SyntaxError: code is nested too deeply") from None

    return CompiledCode(source=source, code=code, form=form, function_name=function_name)
