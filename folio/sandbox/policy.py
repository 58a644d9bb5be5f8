"""
Capability policy applied inside an isolated context.

Cell code runs against a private builtins table rather than the real one:
no file, dynamic-evaluation or interactive builtins, and an import hook that
only admits an allowlist of pure modules.
"""

from __future__ import annotations

import builtins
from collections.abc import Callable, Iterable, Sequence
from types import ModuleType
from typing import Any

BLOCKED_BUILTINS = frozenset(
    {
        "open",
        "eval",
        "exec",
        "compile",
        "input",
        "breakpoint",
        "exit",
        "quit",
        "help",
        "globals",
        "locals",
        "vars",
        "memoryview",
        "getattr",
        "setattr",
        "delattr",
    }
)

ALLOWED_MODULES = frozenset(
    {
        "math",
        "cmath",
        "statistics",
        "random",
        "json",
        "re",
        "string",
        "textwrap",
        "itertools",
        "functools",
        "operator",
        "collections",
        "heapq",
        "bisect",
        "datetime",
        "decimal",
        "fractions",
        "dataclasses",
        "enum",
        "typing",
    }
)

# Bound into every cell namespace so cells never need an import statement.
PRELOADED_MODULES = ("math", "statistics", "random", "json", "re", "itertools", "functools", "collections", "datetime")

ImportHook = Callable[..., ModuleType]


def sanitized_module(module: ModuleType) -> ModuleType:
    """Copy a module's public API into a fresh module object.

    Cells never see the real module: underscore names and imported helper
    modules (``random._os``, ``json.codecs``) are left out, so the clone
    offers no path back to the host. Submodules of the same package are
    kept, sanitized in turn.
    """
    public = getattr(module, "__all__", None)
    clone = ModuleType(module.__name__, module.__doc__)
    exported: list[str] = []
    for name in dir(module):
        if name.startswith("_"):
            continue
        value = getattr(module, name)
        if isinstance(value, ModuleType):
            if not value.__name__.startswith(module.__name__ + "."):
                continue
            value = sanitized_module(value)
        elif public is not None and name not in public:
            continue
        setattr(clone, name, value)
        exported.append(name)
    clone.__all__ = exported  # type: ignore[attr-defined]
    return clone


def build_import_guard(allowed_modules: Iterable[str] | None = None) -> ImportHook:
    """Build an __import__ replacement that only admits allowlisted modules.

    The importer hands back sanitized copies, never the loaded module itself.
    """
    allowed = frozenset(allowed_modules if allowed_modules is not None else ALLOWED_MODULES)
    original_import = builtins.__import__

    def guarded_import(
        name: str,
        globals: dict[str, object] | None = None,
        locals: dict[str, object] | None = None,
        fromlist: Sequence[str] = (),
        level: int = 0,
    ) -> ModuleType:
        root = name.split(".")[0]
        if level != 0 or root not in allowed:
            raise ImportError(f"Import of '{name}' blocked by sandbox policy")
        return sanitized_module(original_import(name, globals, locals, fromlist, level))

    return guarded_import


def restricted_builtins(allowed_modules: Iterable[str] | None = None) -> dict[str, Any]:
    """Return a copy of the builtins table with blocked names removed."""
    table = {name: value for name, value in vars(builtins).items() if name not in BLOCKED_BUILTINS}
    table["__import__"] = build_import_guard(allowed_modules)
    return table


def preload_modules() -> dict[str, ModuleType]:
    """Import the preloaded modules with the real importer and sanitize them."""
    return {name: sanitized_module(builtins.__import__(name)) for name in PRELOADED_MODULES}


def limit_resources(cpu_seconds: int, memory_limit_mb: int) -> Callable[[], None]:
    """Return a preexec_fn enforcing CPU and memory limits on Unix."""

    def _apply_limits() -> None:
        try:
            import resource
        except ImportError:
            return
        memory_bytes = int(memory_limit_mb * 1024 * 1024)
        resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds + 1))
        if hasattr(resource, "RLIMIT_AS"):
            resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
        elif hasattr(resource, "RLIMIT_DATA"):
            resource.setrlimit(resource.RLIMIT_DATA, (memory_bytes, memory_bytes))

    return _apply_limits
