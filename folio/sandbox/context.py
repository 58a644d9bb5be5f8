"""Disposable subprocess that evaluates one request and is then thrown away."""

from __future__ import annotations

import asyncio
import logging
import math
import os
import sys
import tempfile
from pathlib import Path
from typing import Protocol

from folio.core import DispatchError
from folio.sandbox import policy
from folio.sandbox.child import CHILD_TEMPLATE
from folio.sandbox.protocol import ExecutionRequest

logger = logging.getLogger("folio.sandbox")

_STREAM_LIMIT = 4 * 1024 * 1024


class ExecutionContext(Protocol):
    """Channel to one isolated runtime. Created per request, never reused."""

    async def start(self) -> None: ...

    async def send(self, request: ExecutionRequest) -> None: ...

    async def receive(self) -> str | None:
        """Return the next reply line, or None once the channel is closed."""
        ...

    async def terminate(self) -> None: ...


class SubprocessContext:
    """Run cell code in a fresh Python process with best-effort limits.

    On Unix, CPU and memory limits are enforced via resource.setrlimit.
    Elsewhere only the broker's wall-clock timeout applies.
    """

    DEFAULT_MEMORY_LIMIT_MB: int = 256

    def __init__(self, *, timeout_seconds: float = 5.0, memory_limit_mb: int | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        self.memory_limit_mb: int = memory_limit_mb or self.DEFAULT_MEMORY_LIMIT_MB
        self._process: asyncio.subprocess.Process | None = None
        self._workdir: tempfile.TemporaryDirectory[str] | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    def _env(self) -> dict[str, str]:
        project_root = str(Path(__file__).resolve().parents[2])
        env = {"PYTHONPATH": project_root, "PYTHONDONTWRITEBYTECODE": "1", "PYTHONIOENCODING": "utf-8"}
        if "SYSTEMROOT" in os.environ:
            env["SYSTEMROOT"] = os.environ["SYSTEMROOT"]
        return env

    async def start(self) -> None:
        if self._process is not None:
            raise DispatchError("Context already started; contexts are single-use")
        self._workdir = tempfile.TemporaryDirectory(prefix="folio-ctx-")
        cpu_seconds = max(1, math.ceil(self.timeout_seconds) + 1)
        try:
            self._process = await asyncio.create_subprocess_exec(
                sys.executable,
                "-c",
                CHILD_TEMPLATE,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._workdir.name,
                env=self._env(),
                limit=_STREAM_LIMIT,
                start_new_session=os.name != "nt",
                preexec_fn=policy.limit_resources(cpu_seconds, self.memory_limit_mb) if os.name != "nt" else None,
            )
        except OSError as e:
            self._workdir.cleanup()
            self._workdir = None
            raise DispatchError(f"Failed to start isolated context: {e}") from e
        logger.debug("Started context pid=%s", self._process.pid)

    async def send(self, request: ExecutionRequest) -> None:
        process = self._require_process()
        if process.stdin is None:
            raise DispatchError("Context has no input pipe")
        try:
            process.stdin.write((request.to_wire() + "\n").encode())
            await process.stdin.drain()
            process.stdin.close()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise DispatchError(f"Context closed its input before the request was sent: {e}") from e

    async def receive(self) -> str | None:
        process = self._require_process()
        if process.stdout is None:
            raise DispatchError("Context has no output pipe")
        line = await process.stdout.readline()
        if line:
            return line.decode("utf-8", errors="replace")
        # EOF: the process is gone; surface whatever it left on stderr
        if process.stderr is not None:
            stderr = (await process.stderr.read()).decode("utf-8", errors="replace").strip()
            if stderr:
                logger.warning("Context pid=%s stderr: %s", process.pid, stderr[-2000:])
        return None

    async def terminate(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass  # already gone
            await process.wait()
            logger.debug("Terminated context pid=%s", process.pid)
        if self._workdir is not None:
            self._workdir.cleanup()
            self._workdir = None

    def _require_process(self) -> asyncio.subprocess.Process:
        if self._process is None:
            raise DispatchError("Context was not started")
        return self._process
