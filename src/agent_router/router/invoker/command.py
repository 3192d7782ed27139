"""Subprocess-based invoker for command transports."""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
import tempfile
import threading
import time
from typing import IO

from agent_router.router.errors import AgentInvocationError
from agent_router.router.failure_classifier import classify_failure
from agent_router.router.invoker.base import InvocationRequest, InvocationResult
from agent_router.router.models import ErrorKind

logger = logging.getLogger(__name__)

COMMAND_TRANSPORT = "command"
AUTH_TOKEN_ENV = "AGENT_ROUTER_AUTH_TOKEN"
POLL_INTERVAL_SECONDS = 0.05
STDERR_PREVIEW_CHARS = 500


class CommandAgentInvoker:
    """Render the agent's command template and run it as a subprocess."""

    def __init__(self, *, transient_exit_codes: tuple[int, ...] = (137, 143)) -> None:
        self.transient_exit_codes = transient_exit_codes

    def invoke(self, request: InvocationRequest) -> InvocationResult:
        transport = request.transport
        if transport.kind != COMMAND_TRANSPORT:
            raise AgentInvocationError(
                f"Unsupported transport kind {transport.kind!r} for agent {request.agent_id}",
                error_kind=ErrorKind.BACKEND_NON_RETRYABLE,
            )
        run_args = build_run_args(
            command_template=transport.target,
            prompt=request.task.description,
            agent_id=request.agent_id,
            tier=request.tier.value,
        )

        env = os.environ.copy()
        env["AGENT_ROUTER_AGENT_ID"] = request.agent_id
        env["AGENT_ROUTER_TASK_ID"] = request.task.task_id
        if transport.auth_ref:
            secret = os.getenv(transport.auth_ref)
            if secret is None:
                raise AgentInvocationError(
                    f"Credential {transport.auth_ref!r} for agent {request.agent_id} is not set",
                    error_kind=ErrorKind.ACCESS_OR_AUTH,
                )
            env[AUTH_TOKEN_ENV] = secret

        started = time.monotonic()
        with (
            tempfile.TemporaryFile("w+", encoding="utf-8") as stdout_handle,
            tempfile.TemporaryFile("w+", encoding="utf-8") as stderr_handle,
        ):
            try:
                exit_code = _run_subprocess(
                    run_args=run_args,
                    env=env,
                    timeout_seconds=request.timeout_seconds,
                    cancel_event=request.cancel_event,
                    stdout_handle=stdout_handle,
                    stderr_handle=stderr_handle,
                )
            except FileNotFoundError as error:
                raise AgentInvocationError(
                    f"Agent command not found: {run_args[0]}",
                    error_kind=ErrorKind.UNREACHABLE,
                ) from error
            except OSError as error:
                raise AgentInvocationError(
                    f"Agent command failed to start: {error}",
                    error_kind=ErrorKind.UNREACHABLE,
                ) from error
            stdout = _read_all(stdout_handle)
            stderr = _read_all(stderr_handle)
        latency_ms = int((time.monotonic() - started) * 1000)

        if exit_code is None:
            raise AgentInvocationError(
                f"Agent {request.agent_id} stopped after {request.timeout_seconds}s",
                error_kind=ErrorKind.TIMEOUT,
            )
        if exit_code != 0:
            preview = (stderr.strip() or stdout.strip())[:STDERR_PREVIEW_CHARS]
            classified = classify_failure(
                agent_id=request.agent_id,
                message=f"{stderr}\n{stdout}",
                exit_code=exit_code,
                transient_exit_codes=self.transient_exit_codes,
            )
            raise AgentInvocationError(
                f"Agent {request.agent_id} exited with {exit_code}: {preview}",
                error_kind=classified.error_kind,
            )
        return parse_agent_stdout(stdout, latency_ms=latency_ms)


def build_run_args(*, command_template: str, prompt: str, agent_id: str, tier: str) -> list[str]:
    """Render a POSIX command template into argv."""

    stripped = command_template.strip()
    if not stripped:
        raise AgentInvocationError(
            "Agent command template is empty.",
            error_kind=ErrorKind.BACKEND_NON_RETRYABLE,
        )
    try:
        rendered = stripped.format(
            prompt=shlex.quote(prompt),
            agent_id=shlex.quote(agent_id),
            tier=shlex.quote(tier),
        )
    except (KeyError, IndexError) as error:
        raise AgentInvocationError(
            f"Unsupported command template placeholder: {error}",
            error_kind=ErrorKind.BACKEND_NON_RETRYABLE,
        ) from error
    argv = shlex.split(rendered)
    if not argv:
        raise AgentInvocationError(
            "Agent command template rendered empty command.",
            error_kind=ErrorKind.BACKEND_NON_RETRYABLE,
        )
    return argv


def parse_agent_stdout(stdout: str, *, latency_ms: int | None = None) -> InvocationResult:
    """Use the last stdout line as a JSON result when it is one, else raw text."""

    lines = [line for line in stdout.splitlines() if line.strip()]
    if lines:
        try:
            payload = json.loads(lines[-1])
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict) and "output" in payload:
            cost = payload.get("cost_usd")
            return InvocationResult(
                output=str(payload["output"]),
                cost_usd=float(cost) if isinstance(cost, (int, float)) else None,
                latency_ms=latency_ms,
            )
    return InvocationResult(output=stdout.strip(), cost_usd=None, latency_ms=latency_ms)


def _run_subprocess(  # noqa: PLR0913
    *,
    run_args: list[str],
    env: dict[str, str],
    timeout_seconds: float,
    cancel_event: threading.Event,
    stdout_handle: IO[str],
    stderr_handle: IO[str],
) -> int | None:
    """Return the exit code, or None when stopped by timeout or cancellation."""

    process = subprocess.Popen(  # noqa: S603
        run_args,
        env=env,
        stdout=stdout_handle,
        stderr=stderr_handle,
        text=True,
    )
    deadline = time.monotonic() + timeout_seconds
    while True:
        returncode = process.poll()
        if returncode is not None:
            return returncode
        if cancel_event.is_set():
            logger.info("Cancelling agent command %s", run_args[0])
            _terminate_process(process)
            return None
        if time.monotonic() >= deadline:
            _terminate_process(process)
            return None
        time.sleep(POLL_INTERVAL_SECONDS)


def _read_all(handle: IO[str]) -> str:
    handle.flush()
    handle.seek(0)
    return handle.read()


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
