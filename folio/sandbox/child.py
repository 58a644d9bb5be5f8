"""
Entry point of an isolated context process.

Reads one request line from stdin, evaluates the source under the sandbox
policy and writes one response line to stdout. Only the standard library and
``folio.sandbox.policy`` are imported here to keep start-up cheap.
"""

from __future__ import annotations

import ast
import contextlib
import io
import json
import math
import sys
from datetime import UTC, datetime
from typing import Any

from folio.sandbox import policy

CHILD_TEMPLATE = """
from folio.sandbox.child import child_main
child_main()
""".strip()

_MAX_DEPTH = 20


def to_jsonable(value: Any, depth: int = 0) -> Any:
    """Convert a cell value into something json.dumps accepts, falling back to repr."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if depth < _MAX_DEPTH:
        if isinstance(value, (list, tuple, set, frozenset)):
            return [to_jsonable(v, depth + 1) for v in value]
        if isinstance(value, dict):
            return {str(k): to_jsonable(v, depth + 1) for k, v in value.items()}
    return repr(value)


class Console:
    """The ``console`` object visible to cell code; records emissions in order."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def _emit(self, level: str, args: tuple[Any, ...]) -> None:
        self.records.append({"level": level, "args": [to_jsonable(a) for a in args]})

    def log(self, *args: Any) -> None:
        self._emit("log", args)

    def info(self, *args: Any) -> None:
        self._emit("info", args)

    def warn(self, *args: Any) -> None:
        self._emit("warn", args)

    def error(self, *args: Any) -> None:
        self._emit("error", args)

    def print(self, *args: Any, **_kwargs: Any) -> None:
        self._emit("log", args)


def _format_error(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


def evaluate(source: str, console: Console) -> Any:
    """Run source in a fresh restricted namespace.

    When the last statement is an expression its value is returned, the way a
    notebook displays the value of a cell.
    """
    tree = ast.parse(source, filename="<cell>", mode="exec")
    last_expr: ast.Expression | None = None
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        last_expr = ast.Expression(body=tree.body.pop().value)

    table = policy.restricted_builtins()
    table["print"] = console.print
    namespace: dict[str, Any] = {"__builtins__": table, "__name__": "__cell__", "console": console}
    namespace.update(policy.preload_modules())

    exec(compile(tree, "<cell>", "exec"), namespace)  # noqa: S102 - this is the sandbox
    if last_expr is None:
        return None
    return eval(compile(last_expr, "<cell>", "eval"), namespace)  # noqa: S307


def child_main() -> None:
    """Entry point for the context process."""
    out = sys.stdout
    raw = sys.stdin.readline()
    console = Console()
    response: dict[str, Any]

    try:
        payload = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        payload = {}
    request_id = str(payload.get("requestId", ""))
    source = str(payload.get("sourceCode", ""))

    captured = io.StringIO()
    try:
        with contextlib.redirect_stdout(captured):
            value = evaluate(source, console)
        response = {"requestId": request_id, "status": "success", "value": to_jsonable(value)}
    except BaseException as exc:  # noqa: BLE001 - capture all child errors
        response = {"requestId": request_id, "status": "error", "errorMessage": _format_error(exc)}

    stray = captured.getvalue()
    if stray:
        console.records.append({"level": "log", "args": [stray]})
    response["console"] = console.records
    response["timestamp"] = datetime.now(UTC).isoformat()
    out.write(json.dumps(response) + "\n")
    out.flush()


if __name__ == "__main__":
    child_main()
