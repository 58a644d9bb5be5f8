"""Static pre-execution scan of code cell source.

A syntactic deny-list of capability-invoking patterns. It is a first line of
defense only: obfuscated equivalents slip through, and the restrictions of the
isolated context (see ``folio.sandbox.policy``) are the real boundary.
"""

from __future__ import annotations

import re
from enum import StrEnum

from folio.core import Result

MAX_SOURCE_LENGTH = 10_000


class Capability(StrEnum):
    DYNAMIC_EVAL = "dynamic_eval"
    NETWORK = "network"
    TIMER = "timer"
    STORAGE = "storage"
    HOST_ENVIRONMENT = "host_environment"
    IMPORT = "import"
    UNCONDITIONAL_LOOP = "unconditional_loop"


_DENYLIST: tuple[tuple[Capability, str, re.Pattern[str]], ...] = (
    (
        Capability.DYNAMIC_EVAL,
        "dynamic code evaluation",
        re.compile(r"(?<![.\w])(?:eval|exec|compile)\s*\("),
    ),
    (
        Capability.NETWORK,
        "network request",
        re.compile(
            r"\b(?:fetch|urlopen)\s*\("
            r"|\b(?:socket|urllib3?|requests|httpx|aiohttp|ftplib|smtplib|telnetlib)\b"
            r"|\bhttp\.client\b"
        ),
    ),
    (
        Capability.TIMER,
        "timer scheduling",
        re.compile(r"\bsleep\s*\(|\b(?:threading|sched|asyncio)\b|\bsignal\.(?:alarm|setitimer)\b"),
    ),
    (
        Capability.STORAGE,
        "persistent storage access",
        re.compile(r"(?<![.\w])open\s*\(|\b(?:shelve|sqlite3|pickle|dbm|pathlib|tempfile)\b"),
    ),
    (
        Capability.HOST_ENVIRONMENT,
        "host environment access",
        re.compile(
            r"\b(?:os|sys)\.|\b(?:subprocess|webbrowser|ctypes|__builtins__)\b"
            r"|\b(?:input|exit|quit|breakpoint|globals|getattr|setattr|delattr)\s*\("
            r"|\.\s*_\w*"
        ),
    ),
    (
        Capability.IMPORT,
        "module import",
        re.compile(
            r"^\s*import\s+\w|^\s*from\s+[\w.]+\s+import\b|\b__import__\s*\(|\bimportlib\b",
            re.MULTILINE,
        ),
    ),
    (
        Capability.UNCONDITIONAL_LOOP,
        "unconditional loop",
        re.compile(r"\bwhile\s*\(?\s*(?:True|1)\s*\)?\s*:"),
    ),
)


def validate_source(source: str, *, max_length: int = MAX_SOURCE_LENGTH) -> Result[str]:
    """Scan source for disallowed capability patterns.

    Every check runs; each violation becomes one error diagnostic, in check
    order, so callers see all of them at once. Returns the source on success.
    """
    result: Result[str] = Result()

    if len(source) > max_length:
        result.error(
            "SOURCE_TOO_LONG",
            f"Code too long ({len(source)} characters, max {max_length})",
            hint="Split the code across several cells",
        )

    for capability, label, pattern in _DENYLIST:
        match = pattern.search(source)
        if match:
            result.error(
                f"DENIED_{capability.upper()}",
                f"Dangerous pattern detected ({label}): {match.group(0).strip()}",
            )

    if result.ok:
        result.data = source

    return result
