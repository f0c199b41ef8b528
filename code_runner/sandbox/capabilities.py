"""
Capability set exposed to sandboxed code.

Sandboxed code sees these names as its only builtins. Everything else,
including `open`, `__import__`, `eval`, `getattr` and `type`, is absent.
"""
import html
import json
import math
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import parse_qs, quote, quote_plus, unquote, unquote_plus, urlencode, urljoin, urlsplit


class FrozenNamespace:
    """Read-only attribute namespace (stands in for a module inside the sandbox)."""
    __slots__ = ("_name", "_members")

    def __init__(self, name: str, **members: Any) -> None:
        object.__setattr__(self, "_name", name)
        object.__setattr__(self, "_members", MappingProxyType(dict(members)))

    def __getattr__(self, item: str) -> Any:
        try:
            return self._members[item]
        except KeyError:
            raise AttributeError(f"'{self._name}' has no attribute '{item}'") from None

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"'{self._name}' is read-only")

    def __delattr__(self, key: str) -> None:
        raise AttributeError(f"'{self._name}' is read-only")

    def __dir__(self) -> list[str]:
        return sorted(self._members)

    def __repr__(self) -> str:
        return f"<namespace '{self._name}'>"

    def __reduce__(self):
        return _rebuild_namespace, (self._name, dict(self._members))


def _rebuild_namespace(name: str, members: dict[str, Any]) -> FrozenNamespace:
    return FrozenNamespace(name, **members)


def _public_members(module: Any, names: tuple[str, ...] | None = None) -> dict[str, Any]:
    if names is None:
        names = tuple(name for name in dir(module) if not name.startswith("_"))
    return {name: getattr(module, name) for name in names}


MATH_NAMESPACE = FrozenNamespace("math", **_public_members(math))

JSON_NAMESPACE = FrozenNamespace(
    "json",
    loads=json.loads,
    dumps=json.dumps,
    JSONDecodeError=json.JSONDecodeError,
)

RE_NAMESPACE = FrozenNamespace(
    "re",
    **_public_members(re, (
        "compile", "search", "match", "fullmatch", "findall", "finditer",
        "sub", "subn", "split", "escape", "error",
        "IGNORECASE", "MULTILINE", "DOTALL", "VERBOSE", "ASCII",
        "I", "M", "S", "X", "A",
    )),
)

HTML_NAMESPACE = FrozenNamespace("html", escape=html.escape, unescape=html.unescape)


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Immutable set of names made available to sandboxed code.

    Example:
        ```python
        caps = DEFAULT_CAPABILITIES.extend(slugify=my_slugify)
        namespace = {"__builtins__": caps.as_builtins()}
        ```
    """

    members: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "members", MappingProxyType(dict(self.members)))

    def extend(self, **extra: Any) -> "Capabilities":
        """Return a new capability set with `extra` added or replaced."""
        return Capabilities({**self.members, **extra})

    def as_builtins(self) -> dict[str, Any]:
        """Return a fresh builtins dict for one invocation."""
        return dict(self.members)

    def names(self) -> frozenset[str]:
        return frozenset(self.members)

    def __reduce__(self):
        # MappingProxyType does not pickle; children rebuild from a plain dict.
        return Capabilities, (dict(self.members),)


DEFAULT_CAPABILITIES = Capabilities({
    # data types
    "bool": bool,
    "int": int,
    "float": float,
    "str": str,
    "list": list,
    "dict": dict,
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
    # pure builtins
    "abs": abs,
    "all": all,
    "any": any,
    "callable": callable,
    "chr": chr,
    "divmod": divmod,
    "enumerate": enumerate,
    "filter": filter,
    "isinstance": isinstance,
    "len": len,
    "map": map,
    "max": max,
    "min": min,
    "next": next,
    "ord": ord,
    "pow": pow,
    "range": range,
    "repr": repr,
    "reversed": reversed,
    "round": round,
    "sorted": sorted,
    "sum": sum,
    "zip": zip,
    # exceptions
    "Exception": Exception,
    "ArithmeticError": ArithmeticError,
    "IndexError": IndexError,
    "KeyError": KeyError,
    "LookupError": LookupError,
    "RuntimeError": RuntimeError,
    "StopIteration": StopIteration,
    "TypeError": TypeError,
    "ValueError": ValueError,
    "ZeroDivisionError": ZeroDivisionError,
    # read-only namespaces
    "math": MATH_NAMESPACE,
    "json": JSON_NAMESPACE,
    "re": RE_NAMESPACE,
    "html": HTML_NAMESPACE,
    # URL helpers
    "quote": quote,
    "quote_plus": quote_plus,
    "unquote": unquote,
    "unquote_plus": unquote_plus,
    "urlencode": urlencode,
    "urljoin": urljoin,
    "urlsplit": urlsplit,
    "parse_qs": parse_qs,
    # constants
    "nan": math.nan,
    "inf": math.inf,
})
