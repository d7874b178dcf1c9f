"""Worker invoker that runs an agent CLI as a subprocess per invocation."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from tenacity import RetryCallState

from swarmweave.config.schema import WorkerConfig
from swarmweave.errors import ExecutionFailure, TransientWorkerError
from swarmweave.protocol.interfaces import WorkerReply
from swarmweave.utilities.retry import retry_async

logger = logging.getLogger(__name__)

TRANSIENT_PATTERNS = (
    "rate limit",
    "rate_limit",
    "429",
    "overloaded",
    "connection reset",
    "connection refused",
    "temporary failure",
    "timed out",
    "econnreset",
)

_COST_LINE_RE = re.compile(r"(?:cost|cost_usd|usd)\s*[:=]\s*\$?([0-9]*\.?[0-9]+)", re.IGNORECASE)

# Set by a parent agent session; nested agent CLIs refuse to start when present.
_STRIP_ENV_VARS = frozenset({"CLAUDECODE", "CLAUDE_CODE_ENTRYPOINT", "CLAUDE_REPL", "CLAUDE_CODE_PACKAGE_DIR"})


async def terminate_process(process: asyncio.subprocess.Process, grace: float) -> None:
    """SIGTERM, wait *grace* seconds, then SIGKILL."""
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except asyncio.TimeoutError:
        logger.warning("Worker process %s ignored SIGTERM; killing", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


def build_argv(template: Sequence[str], role: str, prompt: str) -> list[str]:
    """Fill ``{prompt}`` and ``{role}`` placeholders; append the prompt if none."""
    argv: list[str] = []
    has_prompt = False
    for arg in template:
        if "{prompt}" in arg:
            has_prompt = True
        argv.append(arg.replace("{role}", role).replace("{prompt}", prompt))
    if not has_prompt:
        argv.append(prompt)
    return argv


def parse_worker_output(stdout: str) -> tuple[str, float]:
    """Extract ``(text, cost)`` from worker stdout.

    Understands a whole-output JSON envelope (``result`` plus
    ``total_cost_usd`` or ``cost_usd``) and, failing that, a trailing
    ``cost=0.12`` style line.
    """
    stripped = stdout.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            text = data.get("result", data.get("text", ""))
            cost = data.get("total_cost_usd", data.get("cost_usd", 0.0))
            return str(text), float(cost) if isinstance(cost, (int, float)) else 0.0

    cost = 0.0
    for line in reversed(stripped.splitlines()[-5:]):
        match = _COST_LINE_RE.search(line)
        if match:
            cost = float(match.group(1))
            break
    return stdout, cost


def is_transient(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(p in lowered for p in TRANSIENT_PATTERNS)


@dataclass(slots=True)
class SubprocessWorkerInvoker:
    """Runs ``command`` once per invocation and returns its stdout.

    Transient failures (non-zero exit with a rate-limit or network message
    on stderr) are retried with exponential backoff. Timeouts are not
    retried: the process has already been killed.
    """

    command: list[str]
    cwd: str | None = None
    timeout: float = 300.0
    kill_grace: float = 5.0
    max_attempts: int = 3
    min_retry_wait: float = 1.0
    max_retry_wait: float = 30.0
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(
        cls,
        config: WorkerConfig,
        *,
        cwd: str | None = None,
        timeout: float = 300.0,
        kill_grace: float = 5.0,
    ) -> SubprocessWorkerInvoker:
        return cls(
            command=list(config.command),
            cwd=cwd,
            timeout=timeout,
            kill_grace=kill_grace,
            max_attempts=config.max_attempts,
            min_retry_wait=config.min_retry_wait_seconds,
            max_retry_wait=config.max_retry_wait_seconds,
        )

    def with_cwd(self, path: str) -> SubprocessWorkerInvoker:
        return replace(self, cwd=path, env=dict(self.env))

    async def invoke(self, role: str, prompt: str) -> WorkerReply:
        def _log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning("Worker '%s' attempt %d failed: %s; retrying", role, state.attempt_number, exc)

        return await retry_async(
            self._invoke_once,
            role,
            prompt,
            max_attempts=self.max_attempts,
            min_wait=self.min_retry_wait,
            max_wait=self.max_retry_wait,
            on_retry=_log_retry,
        )

    async def _invoke_once(self, role: str, prompt: str) -> WorkerReply:
        argv = build_argv(self.command, role, prompt)
        env = {k: v for k, v in os.environ.items() if k not in _STRIP_ENV_VARS}
        env.update(self.env)

        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=env,
            )
        except FileNotFoundError as exc:
            raise ExecutionFailure(f"Worker binary not found: {argv[0]}", role=role) from exc

        try:
            stdout_b, stderr_b = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await terminate_process(process, self.kill_grace)
            raise ExecutionFailure(f"Worker '{role}' timed out after {self.timeout:g}s", role=role)
        except asyncio.CancelledError:
            await terminate_process(process, self.kill_grace)
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        stdout = stdout_b.decode("utf-8", errors="replace")
        stderr = stderr_b.decode("utf-8", errors="replace")

        if process.returncode != 0:
            tail = stderr.strip()[-2000:] or stdout.strip()[-2000:]
            message = f"Worker '{role}' exited with code {process.returncode}: {tail}"
            if is_transient(stderr):
                raise TransientWorkerError(message, role=role)
            raise ExecutionFailure(message, role=role)

        text, cost = parse_worker_output(stdout)
        return WorkerReply(text=text, cost=cost, duration_ms=duration_ms)
